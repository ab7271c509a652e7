import logging
from typing import Any, Dict, Optional, Tuple

from pyarbor.interfaces.models import NestedNode

logger = logging.getLogger(__name__)

# 标题是派生值，不进入审计记录
UNAUDITED_FIELDS = frozenset({"title"})


def changes_between(stored: Optional[NestedNode], node: NestedNode) -> Dict[str, Tuple[Any, Any]]:
    before = _auditable(stored) if stored is not None else {}
    after = _auditable(node)
    changes = {}
    for key in sorted(set(before) | set(after)):
        old, new = before.get(key), after.get(key)
        if old != new:
            changes[key] = (old, new)
    return changes


def _auditable(node: NestedNode) -> Dict[str, Any]:
    data: Dict[str, Any] = {"name": node.name, "ancestry": node.ancestry}
    data.update(node.references)
    return {k: v for k, v in data.items() if k not in UNAUDITED_FIELDS}


class LoggingChangeListener:
    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def on_change(self, action: str, node: NestedNode, changes: Dict[str, Any]) -> None:
        self.log.info(f"📝 {action} {node.type_tag} #{node.id}: {changes}")
