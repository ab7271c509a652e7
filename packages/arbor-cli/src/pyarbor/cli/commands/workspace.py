import logging
from pathlib import Path
from typing import Annotated

import typer
import yaml
from pyarbor.common.messaging import bus
from pyarbor.engine.config import ConfigManager

from ..config import DEFAULT_WORK_DIR
from .helpers import engine_context

logger = logging.getLogger(__name__)


def register(app: typer.Typer):
    @app.command()
    def init(
        work_dir: Annotated[
            Path,
            typer.Option(
                "--work-dir", "-w", help="操作执行的根目录（工作区）", file_okay=False, dir_okay=True, resolve_path=True
            ),
        ] = DEFAULT_WORK_DIR,
        strategy: Annotated[str, typer.Option("--cascade", help="级联策略: prefix 或 scan。")] = "prefix",
    ):
        if strategy not in ("prefix", "scan"):
            raise typer.BadParameter(bus.get("workspace.init.error.strategy", strategy=strategy))

        work_dir.mkdir(parents=True, exist_ok=True)
        config = ConfigManager(work_dir)
        config.set("cascade.strategy", strategy)
        config.save()

        # 打开一次引擎即可完成 schema 初始化
        with engine_context(work_dir):
            pass
        bus.success("workspace.init.success", path=work_dir)

    @app.command()
    def config(
        work_dir: Annotated[Path, typer.Option("--work-dir", "-w", help="工作区根目录。")] = DEFAULT_WORK_DIR,
    ):
        settings = ConfigManager(work_dir).effective()
        bus.data(yaml.dump(settings, default_flow_style=False, allow_unicode=True).rstrip())
