import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from pyarbor.common.messaging import bus
from pyarbor.engine.titles import matcher_key
from pyarbor.interfaces.models import MatcherRecord

from ..config import DEFAULT_WORK_DIR
from .helpers import engine_context, report_errors, resolve_kind

logger = logging.getLogger(__name__)

matcher_app = typer.Typer(name="matcher", help="管理引用节点标题的 lookup matcher。")


@matcher_app.command("add")
def matcher_add(
    kind: Annotated[str, typer.Argument(help="节点类型。")],
    node_id: Annotated[int, typer.Argument(help="节点 ID。")],
    lookup_key: Annotated[str, typer.Argument(help="被覆盖的参数名。")],
    value: Annotated[str, typer.Argument(help="覆盖值。")],
    work_dir: Annotated[Path, typer.Option("--work-dir", "-w", help="工作区根目录。")] = DEFAULT_WORK_DIR,
):
    node_kind = resolve_kind(kind)
    with engine_context(work_dir) as engine, report_errors():
        node = engine.get(node_kind, node_id)
        record = engine.matchers.add(
            MatcherRecord(match=matcher_key(node.type_tag, engine.title_of(node)), value=value, lookup_key=lookup_key)
        )
        bus.success("matcher.add.success", match=record.match, lookup_key=lookup_key)


@matcher_app.command("list")
def matcher_list(
    element: Annotated[Optional[str], typer.Option("--kind", "-k", help="仅列出指定类型的 matcher。")] = None,
    work_dir: Annotated[Path, typer.Option("--work-dir", "-w", help="工作区根目录。")] = DEFAULT_WORK_DIR,
):
    with engine_context(work_dir) as engine:
        records = engine.matchers.all()
        if element:
            records = [r for r in records if r.element == element.lower()]
        if not records:
            bus.info("matcher.list.info.empty")
            return
        for record in records:
            bus.data(f"{record.id:>5}  {record.match:<40} {record.lookup_key} = {record.value}")
