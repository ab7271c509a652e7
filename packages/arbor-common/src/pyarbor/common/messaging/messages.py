import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def find_locales_dir() -> Optional[Path]:
    # locales 目录作为 pyarbor.common 的包数据一同安装
    locales_path = Path(__file__).parent.parent / "locales"
    if locales_path.is_dir():
        logger.debug(f"Found locales directory at: {locales_path}")
        return locales_path

    logger.warning("Could not find the 'locales' directory.")
    return None
