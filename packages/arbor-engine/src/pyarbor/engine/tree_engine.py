import dataclasses
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Type

from pyarbor.interfaces.exceptions import DeleteRejected, NodeNotFoundError, ValidationError
from pyarbor.interfaces.models import NestedNode
from pyarbor.interfaces.storage import ChangeListener, MatcherStore, NodeStore

from .ancestry import AncestryPath
from .audit import changes_between
from .cascade import CascadeRetitler, TitleChange
from .config import ConfigManager
from .inheritance import InheritedAttributeResolver, InheritedView, RelationRegistry
from .kinds import KINDS
from .matchers import MatcherSynchronizer
from .titles import DEFAULT_MATCHER_MAX_LENGTH, compute_title, needs_retitle
from .validation import NodeValidator

logger = logging.getLogger(__name__)

_UNSET: Any = object()


@dataclasses.dataclass
class MutationResult:
    node: NestedNode
    retitled: List[TitleChange] = dataclasses.field(default_factory=list)
    matchers_rewritten: int = 0


class TreeEngine:
    def __init__(
        self,
        root_dir: Path,
        store: NodeStore,
        matchers: MatcherStore,
        relations: RelationRegistry,
        config: Optional[ConfigManager] = None,
        listeners: Iterable[ChangeListener] = (),
        db_manager: Optional[Any] = None,
    ):
        self.root_dir = root_dir.resolve()
        self.store = store
        self.matchers = matchers
        self.relations = relations
        self.db_manager = db_manager  # 持有数据库管理器引用，用于 close()
        self.listeners: List[ChangeListener] = list(listeners)

        max_length = DEFAULT_MATCHER_MAX_LENGTH
        strategy = "prefix"
        if config is not None:
            max_length = int(config.get("matchers.max_length", max_length))
            strategy = config.get("cascade.strategy", strategy)

        self.ancestry = AncestryPath(store)
        self.validator = NodeValidator(store, max_length=max_length)
        self.retitler = CascadeRetitler(store, self.ancestry, strategy=strategy)
        self.synchronizer = MatcherSynchronizer(matchers)
        self.resolver = InheritedAttributeResolver(self.ancestry, relations)

        # 关联存储在配置阶段绑定，而不是在查询时按名称查找
        for kind in KINDS.values():
            relations.bind(kind)

        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def close(self):
        if self.db_manager:
            self.db_manager.close()

    def _lock_for(self, kind: Type[NestedNode]) -> threading.RLock:
        with self._locks_guard:
            return self._locks.setdefault(kind.type_tag, threading.RLock())

    # --- 读取 ---

    def get(self, kind: Type[NestedNode], node_id: int) -> NestedNode:
        node = self.store.get(kind, node_id)
        if node is None:
            raise NodeNotFoundError(kind.type_tag, node_id)
        return node

    def title_of(self, node: NestedNode) -> str:
        # 已存储的标题优先；仅在尚未存储时才从祖先链推导
        if node.title:
            return node.title
        return compute_title(node.name, [a.name for a in self.ancestry.ancestors(node)])

    def inherited(self, node: NestedNode) -> InheritedView:
        return self.resolver.view(node)

    def forest(self, kind: Type[NestedNode]) -> Dict[Optional[int], List[NestedNode]]:
        by_parent: Dict[Optional[int], List[NestedNode]] = {}
        for node in sorted(self.store.all_of_kind(kind), key=lambda n: n.label.lower()):
            by_parent.setdefault(node.parent_id, []).append(node)
        return by_parent

    def search(self, kind: Type[NestedNode], term: str, limit: int = 20) -> List[NestedNode]:
        return self.store.search(kind, term, limit=limit)

    # --- 管道各阶段 ---

    def validate(self, node: NestedNode, stored: Optional[NestedNode]) -> None:
        if needs_retitle(node, stored):
            node.title = compute_title(node.name, [a.name for a in self.ancestry.ancestors(node)])

        errors = self.validator.validate(node, self.ancestry.parent(node))
        if errors:
            raise ValidationError(errors)

    def persist(self, node: NestedNode, stored: Optional[NestedNode]) -> NestedNode:
        if stored is None:
            self.store.insert(node)
            logger.debug(f"✅ 已创建 {node.type_tag} #{node.id} '{node.title}'")
            return node

        self.store.update(node)
        if node.ancestry != stored.ancestry:
            self.ancestry.rebase(node, stored.ancestry)
        logger.debug(f"✅ 已更新 {node.type_tag} #{node.id} '{node.title}'")
        return node

    def cascade_if_needed(self, node: NestedNode, stored: Optional[NestedNode]) -> List[TitleChange]:
        if stored is None:
            return []
        if node.name == stored.name and node.ancestry == stored.ancestry:
            return []
        return self.retitler.retitle(node, on_retitled=self._sync_descendant)

    def sync_matchers_if_needed(self, node: NestedNode, stored: Optional[NestedNode]) -> int:
        if stored is None:
            return 0
        return self.synchronizer.sync(node.type_tag, stored.title, node.title)

    def _sync_descendant(self, change: TitleChange):
        # 每个后代的标题变化独立触发自己的 matcher 改写
        change.matchers_rewritten = self.synchronizer.sync(change.node.type_tag, change.old_title, change.new_title)

    # --- 变更操作 ---

    def save(self, node: NestedNode) -> MutationResult:
        kind = type(node)
        with self._lock_for(kind):
            with self.store.transaction():
                result, action, changes = self._apply(node)
            self._notify(action, node, changes)
        return result

    def _reconcile(self, node: NestedNode, stored: Optional[NestedNode]):
        # 调用方持有的对象可能在级联之后才被保存：
        # ancestry 以父节点当前位置为准，名称与位置未变时标题以已存储的值为准
        if node.parent_id is not None:
            node.ancestry = self.get(type(node), node.parent_id).child_ancestry
        if stored is not None and node.name == stored.name and node.ancestry == stored.ancestry:
            node.title = stored.title

    def _apply(self, node: NestedNode):
        # 调用方必须已持有该类型的锁并处于事务之中
        stored = None
        if node.id is not None:
            stored = self.get(type(node), node.id)

        self._reconcile(node, stored)
        self.validate(node, stored)
        self.persist(node, stored)
        retitled = self.cascade_if_needed(node, stored)
        rewritten = self.sync_matchers_if_needed(node, stored)
        rewritten += sum(c.matchers_rewritten for c in retitled)

        result = MutationResult(node=node, retitled=retitled, matchers_rewritten=rewritten)
        return result, "create" if stored is None else "update", changes_between(stored, node)

    def create(
        self,
        kind: Type[NestedNode],
        name: str,
        parent_id: Optional[int] = None,
        references: Optional[Dict[str, Any]] = None,
    ) -> NestedNode:
        node = kind(name=name, references=dict(references or {}))
        if parent_id is not None:
            parent = self.get(kind, parent_id)
            node.ancestry = parent.child_ancestry
        return self.save(node).node

    def update(
        self,
        kind: Type[NestedNode],
        node_id: int,
        name: Optional[str] = None,
        parent_id: Optional[int] = _UNSET,
        references: Optional[Dict[str, Any]] = None,
    ) -> MutationResult:
        # 读取与修改必须和保存处于同一把锁、同一个事务内
        with self._lock_for(kind):
            with self.store.transaction():
                node = self.get(kind, node_id).copy()
                if name is not None:
                    node.name = name
                if parent_id is not _UNSET:
                    node.ancestry = self.get(kind, parent_id).child_ancestry if parent_id is not None else None
                if references:
                    node.references.update(references)
                result, action, changes = self._apply(node)
            self._notify(action, node, changes)
        return result

    def rename(self, kind: Type[NestedNode], node_id: int, new_name: str) -> MutationResult:
        return self.update(kind, node_id, name=new_name)

    def move(self, kind: Type[NestedNode], node_id: int, parent_id: Optional[int]) -> MutationResult:
        return self.update(kind, node_id, parent_id=parent_id)

    def destroy(self, kind: Type[NestedNode], node_id: int) -> NestedNode:
        with self._lock_for(kind):
            with self.store.transaction():
                node = self.get(kind, node_id)
                # orphan 策略为 restrict：有子节点时拒绝删除，绝不级联
                if self.ancestry.has_children(node):
                    raise DeleteRejected(node_id)
                self.store.delete(node)
                logger.debug(f"🗑️  已删除 {node.type_tag} #{node.id} '{node.title}'")

            self._notify("destroy", node, changes_between(node, kind(name="", ancestry=None)))
        return node

    def _notify(self, action: str, node: NestedNode, changes: Dict[str, Any]):
        for listener in self.listeners:
            listener.on_change(action, node, changes)
