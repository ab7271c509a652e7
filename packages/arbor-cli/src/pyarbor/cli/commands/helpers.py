import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Type

import typer
from pyarbor.application.factory import create_engine
from pyarbor.common.messaging import bus
from pyarbor.engine.kinds import KINDS, get_kind
from pyarbor.engine.tree_engine import TreeEngine
from pyarbor.interfaces.exceptions import (
    ArborError,
    ConfigurationError,
    DeleteRejected,
    IntegrityError,
    NodeNotFoundError,
    ValidationError,
)
from pyarbor.interfaces.models import NestedNode

from ..logger_config import configure_audit_logging, setup_logging

logger = logging.getLogger(__name__)


@contextmanager
def engine_context(work_dir: Path) -> Generator[TreeEngine, None, None]:
    setup_logging()
    engine = None
    try:
        engine = create_engine(work_dir)
        configure_audit_logging(engine.root_dir)
        yield engine
    finally:
        if engine:
            engine.close()


@contextmanager
def report_errors() -> Generator[None, None, None]:
    try:
        yield
    except ValidationError as e:
        bus.field_errors("node.error.invalid", "node.error.field", e.errors)
        raise typer.Exit(1)
    except DeleteRejected as e:
        bus.error("node.delete.error.hasChildren", node_id=e.node_id)
        raise typer.Exit(1)
    except NodeNotFoundError as e:
        bus.error("node.error.notFound", kind=e.kind, node_id=e.node_id)
        raise typer.Exit(1)
    except IntegrityError as e:
        bus.error("node.error.integrity", node_id=e.node_id, missing=e.missing_ids)
        raise typer.Exit(1)
    except ArborError as e:
        logger.error("操作失败", exc_info=True)
        bus.error("common.error.generic", error=str(e))
        raise typer.Exit(1)


def resolve_kind(kind_name: str) -> Type[NestedNode]:
    try:
        return get_kind(kind_name)
    except ConfigurationError:
        raise typer.BadParameter(bus.get("common.error.unknownKind", kind=kind_name, available=", ".join(KINDS)))


def parse_references(values: Optional[List[str]]) -> Dict[str, Optional[int]]:
    references: Dict[str, Optional[int]] = {}
    for item in values or []:
        field, sep, raw = item.partition("=")
        if not sep or not field:
            raise typer.BadParameter(bus.get("node.error.badReference", value=item))
        try:
            # "field=" 表示清空该字段，使其重新从祖先继承
            references[field.strip()] = int(raw) if raw.strip() else None
        except ValueError:
            raise typer.BadParameter(bus.get("node.error.badReference", value=item))
    return references


def describe_node(engine: TreeEngine, node: NestedNode) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": node.id,
        "type": node.type_tag,
        "name": node.name,
        "title": engine.title_of(node),
        "ancestry": node.ancestry,
        "parent_id": node.parent_id,
        "param": node.to_param(),
        "references": dict(node.references),
    }
    if type(node).inherited_fields:
        view = engine.inherited(node)
        inherited: Dict[str, Any] = {}
        for decl in type(node).inherited_fields:
            inherited[decl.field] = getattr(view, f"inherited_{decl.field}")
            if decl.relation:
                entity = getattr(view, decl.relation)
                inherited[decl.relation] = entity.name if entity else None
        data["inherited"] = inherited
    return data
