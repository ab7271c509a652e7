import logging
from pathlib import Path
from typing import Annotated, List, Optional

import typer
from pyarbor.common.messaging import bus

from ..config import DEFAULT_WORK_DIR
from ..ui_utils import prompt_for_confirmation
from .helpers import engine_context, parse_references, report_errors, resolve_kind

logger = logging.getLogger(__name__)


def _report_cascade(result):
    if result.retitled:
        bus.info("node.cascade.info.retitled", count=len(result.retitled))
        for change in result.retitled:
            bus.data(f"  {change.old_title} -> {change.new_title}")
    if result.matchers_rewritten:
        bus.info("node.matchers.info.rewritten", count=result.matchers_rewritten)


def register(app: typer.Typer):
    @app.command()
    def create(
        kind: Annotated[str, typer.Argument(help="节点类型: hostgroup / location / organization。")],
        name: Annotated[str, typer.Argument(help="节点名称（标题的最后一段）。")],
        parent: Annotated[Optional[int], typer.Option("--parent", "-p", help="父节点 ID。")] = None,
        ref: Annotated[
            Optional[List[str]], typer.Option("--ref", "-r", help="引用字段，格式 field=id (可多次使用)。")
        ] = None,
        work_dir: Annotated[
            Path,
            typer.Option(
                "--work-dir", "-w", help="操作执行的根目录（工作区）", file_okay=False, dir_okay=True, resolve_path=True
            ),
        ] = DEFAULT_WORK_DIR,
    ):
        node_kind = resolve_kind(kind)
        references = parse_references(ref)
        with engine_context(work_dir) as engine, report_errors():
            node = engine.create(node_kind, name, parent_id=parent, references=references)
            bus.success("node.create.success", kind=node.type_tag, node_id=node.id, title=node.title)

    @app.command()
    def rename(
        kind: Annotated[str, typer.Argument(help="节点类型。")],
        node_id: Annotated[int, typer.Argument(help="节点 ID。")],
        new_name: Annotated[str, typer.Argument(help="新名称。")],
        work_dir: Annotated[Path, typer.Option("--work-dir", "-w", help="工作区根目录。")] = DEFAULT_WORK_DIR,
    ):
        node_kind = resolve_kind(kind)
        with engine_context(work_dir) as engine, report_errors():
            result = engine.rename(node_kind, node_id, new_name)
            bus.success("node.update.success", kind=result.node.type_tag, node_id=node_id, title=result.node.title)
            _report_cascade(result)

    @app.command()
    def move(
        kind: Annotated[str, typer.Argument(help="节点类型。")],
        node_id: Annotated[int, typer.Argument(help="节点 ID。")],
        parent: Annotated[Optional[int], typer.Option("--parent", "-p", help="新的父节点 ID。")] = None,
        root: Annotated[bool, typer.Option("--root", help="移动为根节点。")] = False,
        work_dir: Annotated[Path, typer.Option("--work-dir", "-w", help="工作区根目录。")] = DEFAULT_WORK_DIR,
    ):
        node_kind = resolve_kind(kind)
        if (parent is None) == (not root):
            bus.error("node.move.error.target")
            raise typer.Exit(1)

        with engine_context(work_dir) as engine, report_errors():
            result = engine.move(node_kind, node_id, None if root else parent)
            bus.success("node.update.success", kind=result.node.type_tag, node_id=node_id, title=result.node.title)
            _report_cascade(result)

    @app.command("set-ref")
    def set_ref(
        kind: Annotated[str, typer.Argument(help="节点类型。")],
        node_id: Annotated[int, typer.Argument(help="节点 ID。")],
        ref: Annotated[List[str], typer.Argument(help="引用字段，格式 field=id；field= 表示清空。")],
        work_dir: Annotated[Path, typer.Option("--work-dir", "-w", help="工作区根目录。")] = DEFAULT_WORK_DIR,
    ):
        node_kind = resolve_kind(kind)
        references = parse_references(ref)
        with engine_context(work_dir) as engine, report_errors():
            result = engine.update(node_kind, node_id, references=references)
            bus.success("node.update.success", kind=result.node.type_tag, node_id=node_id, title=result.node.title)

    @app.command()
    def delete(
        kind: Annotated[str, typer.Argument(help="节点类型。")],
        node_id: Annotated[int, typer.Argument(help="节点 ID。")],
        force: Annotated[bool, typer.Option("--force", "-f", help="强制执行，跳过确认提示。")] = False,
        work_dir: Annotated[Path, typer.Option("--work-dir", "-w", help="工作区根目录。")] = DEFAULT_WORK_DIR,
    ):
        node_kind = resolve_kind(kind)
        with engine_context(work_dir) as engine, report_errors():
            node = engine.get(node_kind, node_id)
            if not force:
                prompt = bus.get("node.delete.prompt.confirm", kind=node.type_tag, title=node.title)
                if not prompt_for_confirmation(prompt, default=False):
                    bus.warning("common.prompt.cancel")
                    raise typer.Abort()

            engine.destroy(node_kind, node_id)
            bus.success("node.delete.success", kind=node.type_tag, node_id=node_id, title=node.title)
