import os
from pathlib import Path

# 全局配置中心

# 默认的工作区根目录，可以通过环境变量覆盖
# 在实际运行时，通常由 CLI 参数 --work-dir 指定
DEFAULT_WORK_DIR: Path = Path(os.getenv("ARBOR_WORK_DIR", "."))

# 日志级别
# 使用项目特定的环境变量 ARBOR_LOG_LEVEL，并确保其值为大写
LOG_LEVEL: str = os.getenv("ARBOR_LOG_LEVEL", "INFO").upper()

# 日志文件，设置后所有日志写入该文件而不是 stderr
LOG_FILE: str = os.getenv("ARBOR_LOG_FILE", "")
