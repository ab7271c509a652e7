import json
import logging
from pathlib import Path
from typing import Annotated, Dict, List, Optional

import typer
from pyarbor.common.messaging import bus
from pyarbor.interfaces.models import NestedNode
from rich.console import Console
from rich.tree import Tree

from ..config import DEFAULT_WORK_DIR
from .helpers import describe_node, engine_context, report_errors, resolve_kind

logger = logging.getLogger(__name__)


def _grow(branch: Tree, node: NestedNode, forest: Dict[Optional[int], List[NestedNode]]):
    for child in forest.get(node.id, []):
        _grow(branch.add(f"{child.name} [dim]#{child.id}[/dim]"), child, forest)


def build_tree(label: str, forest: Dict[Optional[int], List[NestedNode]]) -> Tree:
    tree = Tree(f"[bold]{label}[/bold]")
    for root in forest.get(None, []):
        _grow(tree.add(f"{root.name} [dim]#{root.id}[/dim]"), root, forest)
    return tree


def register(app: typer.Typer):
    @app.command()
    def show(
        kind: Annotated[str, typer.Argument(help="节点类型。")],
        node_id: Annotated[int, typer.Argument(help="节点 ID。")],
        work_dir: Annotated[
            Path,
            typer.Option(
                "--work-dir", "-w", help="操作执行的根目录（工作区）", file_okay=False, dir_okay=True, resolve_path=True
            ),
        ] = DEFAULT_WORK_DIR,
        json_output: Annotated[bool, typer.Option("--json", help="以 JSON 格式将结果输出到 stdout。")] = False,
    ):
        node_kind = resolve_kind(kind)
        with engine_context(work_dir) as engine, report_errors():
            data = describe_node(engine, engine.get(node_kind, node_id))

            if json_output:
                bus.data(json.dumps(data, indent=2, ensure_ascii=False))
                return

            bus.info("query.show.ui.header", kind=data["type"], node_id=data["id"])
            for key in ("name", "title", "ancestry", "param"):
                bus.data(f"{key:<10} {data[key] if data[key] is not None else '-'}")
            for field, value in data.get("inherited", {}).items():
                own = " " if field in data["references"] else "*"
                bus.data(f"{own} {field:<24} {value if value is not None else '-'}")

    @app.command()
    def tree(
        kind: Annotated[str, typer.Argument(help="节点类型。")],
        work_dir: Annotated[Path, typer.Option("--work-dir", "-w", help="工作区根目录。")] = DEFAULT_WORK_DIR,
        json_output: Annotated[bool, typer.Option("--json", help="以 JSON 格式将结果输出到 stdout。")] = False,
    ):
        node_kind = resolve_kind(kind)
        with engine_context(work_dir) as engine, report_errors():
            forest = engine.forest(node_kind)
            if not forest:
                bus.info("query.info.empty", kind=node_kind.type_tag)
                return

            if json_output:
                nodes = [n for children in forest.values() for n in children]
                payload = [{"id": n.id, "title": n.title, "parent_id": n.parent_id} for n in nodes]
                bus.data(json.dumps(sorted(payload, key=lambda d: d["title"] or ""), ensure_ascii=False))
                return

            Console(stderr=False).print(build_tree(node_kind.type_tag, forest))

    @app.command()
    def find(
        kind: Annotated[str, typer.Argument(help="节点类型。")],
        term: Annotated[str, typer.Argument(help="在标题或名称中搜索的子串。")],
        limit: Annotated[int, typer.Option("--limit", "-n", help="最多返回的结果数。")] = 20,
        work_dir: Annotated[Path, typer.Option("--work-dir", "-w", help="工作区根目录。")] = DEFAULT_WORK_DIR,
    ):
        node_kind = resolve_kind(kind)
        with engine_context(work_dir) as engine, report_errors():
            results = engine.search(node_kind, term, limit=limit)
            if not results:
                bus.info("query.find.info.noResults", term=term)
                return
            bus.info("query.find.ui.header", count=len(results))
            for node in results:
                bus.data(f"{node.id:>5}  {node.title}")
