import logging
import sys
from pathlib import Path

from pyarbor.engine.config import ARBOR_DIR_NAME

from .config import LOG_FILE, LOG_LEVEL

logger = logging.getLogger(__name__)

AUDIT_LOGGER_NAME = "pyarbor.engine.audit"
AUDIT_FILE_NAME = "audit.log"


def _formatter(datefmt: str) -> logging.Formatter:
    return logging.Formatter(fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt=datefmt)


def setup_logging():
    root_logger = logging.getLogger()
    root_logger.setLevel(LOG_LEVEL)

    if LOG_FILE:
        redirect_to_file(Path(LOG_FILE))
    elif not root_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_formatter("%Y-%m-%d %H:%M:%S"))
        root_logger.addHandler(handler)

    return root_logger


def redirect_to_file(log_path: Path):
    root_logger = logging.getLogger()

    # ARBOR_LOG_FILE 接管全部输出，stderr 只留给消息总线
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setFormatter(_formatter("%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(file_handler)
    root_logger.setLevel(logging.DEBUG)

    logging.info(f"🚀 Logging redirected to file: {log_path}")


def configure_audit_logging(work_dir: Path) -> logging.Logger:
    """
    将节点变更记录追加到工作区的 .arbor/audit.log。

    变更记录只写入审计文件，不再冒泡到 root logger，
    因此在 INFO 级别下不会与命令输出混在一起。
    """
    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    audit_path = (work_dir.resolve() / ARBOR_DIR_NAME / AUDIT_FILE_NAME).resolve()

    # 每个进程只审计一个工作区：同一路径不重复挂载，其他路径的旧 handler 被替换
    for handler in audit_logger.handlers[:]:
        if not isinstance(handler, logging.FileHandler):
            continue
        if Path(handler.baseFilename) == audit_path:
            return audit_logger
        audit_logger.removeHandler(handler)
        handler.close()

    if not audit_path.parent.is_dir():
        logger.debug(f"工作区 {work_dir} 尚未初始化，跳过审计日志")
        return audit_logger

    handler = logging.FileHandler(audit_path, mode="a", encoding="utf-8")
    handler.setFormatter(_formatter("%Y-%m-%d %H:%M:%S"))
    audit_logger.addHandler(handler)
    audit_logger.setLevel(logging.INFO)
    audit_logger.propagate = False
    return audit_logger
