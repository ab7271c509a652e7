import logging
from pathlib import Path
from typing import Optional

from pyarbor.engine.config import ARBOR_DIR_NAME

logger = logging.getLogger(__name__)


def find_workspace_root(start_path: Path) -> Optional[Path]:
    """向上递归查找包含 .arbor 的目录作为工作区根目录"""
    current = start_path.resolve()
    for parent in [current] + list(current.parents):
        if (parent / ARBOR_DIR_NAME).is_dir():
            return parent
    return None
