import logging
from pathlib import Path
from typing import Annotated

import typer
from pyarbor.common.messaging import bus
from pyarbor.interfaces.exceptions import ConfigurationError

from ..config import DEFAULT_WORK_DIR
from .helpers import engine_context

logger = logging.getLogger(__name__)

relation_app = typer.Typer(name="relation", help="管理可被继承引用的关联实体 (compute_profile, smart_proxy, ...)。")


@relation_app.command("add")
def relation_add(
    target: Annotated[str, typer.Argument(help="关联类型，例如 smart_proxy。")],
    name: Annotated[str, typer.Argument(help="实体名称。")],
    work_dir: Annotated[Path, typer.Option("--work-dir", "-w", help="工作区根目录。")] = DEFAULT_WORK_DIR,
):
    with engine_context(work_dir) as engine:
        try:
            store = engine.relations.get(target)
        except ConfigurationError:
            bus.error("relation.error.unknown", target=target, available=", ".join(engine.relations.targets()))
            raise typer.Exit(1)
        entity = store.add(name)
        bus.success("relation.add.success", target=target, name=name, entity_id=entity.id)


@relation_app.command("list")
def relation_list(
    target: Annotated[str, typer.Argument(help="关联类型。")],
    work_dir: Annotated[Path, typer.Option("--work-dir", "-w", help="工作区根目录。")] = DEFAULT_WORK_DIR,
):
    with engine_context(work_dir) as engine:
        try:
            entities = engine.relations.get(target).all()
        except ConfigurationError:
            bus.error("relation.error.unknown", target=target, available=", ".join(engine.relations.targets()))
            raise typer.Exit(1)
        if not entities:
            bus.info("relation.list.info.empty", target=target)
            return
        for entity in entities:
            bus.data(f"{entity.id:>5}  {entity.name}")
