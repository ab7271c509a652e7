import copy
from contextlib import contextmanager
from pathlib import Path
from typing import Any, ContextManager, Dict, Generator, List, Optional, Type

from pyarbor.engine.config import ConfigManager
from pyarbor.engine.inheritance import RelationRegistry
from pyarbor.engine.kinds import relation_targets
from pyarbor.engine.tree_engine import TreeEngine
from pyarbor.interfaces.models import MatcherRecord, NestedNode, RelatedEntity
from pyarbor.interfaces.storage import MatcherStore, NodeStore, RelationStore

# --- In-Memory Backends for Engine Testing ---


class InMemoryDB:
    """节点与 matcher 共用的内存数据库，使二者处于同一事务边界内。"""

    def __init__(self):
        self.rows: Dict[int, NestedNode] = {}
        self.records: List[MatcherRecord] = []
        self.next_id = 1
        self._tx_depth = 0

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        outermost = self._tx_depth == 0
        snapshot = copy.deepcopy((self.rows, self.records, self.next_id)) if outermost else None
        self._tx_depth += 1
        try:
            yield
        except BaseException:
            if snapshot is not None:
                self.rows, self.records, self.next_id = snapshot
            raise
        finally:
            self._tx_depth -= 1


class InMemoryNodeStore(NodeStore):
    """一个模拟 NodeStore 接口的内存存储，始终返回副本。"""

    def __init__(self, db: Optional[InMemoryDB] = None):
        self.db = db or InMemoryDB()
        # 用于在 update 时注入故障，测试事务回滚
        self.fail_on_update: Optional[int] = None

    @property
    def rows(self) -> Dict[int, NestedNode]:
        return self.db.rows

    def _of_kind(self, kind: Type[NestedNode]) -> List[NestedNode]:
        return [n.copy() for n in self.rows.values() if type(n) is kind]

    def get(self, kind: Type[NestedNode], node_id: int) -> Optional[NestedNode]:
        node = self.rows.get(node_id)
        return node.copy() if node is not None and type(node) is kind else None

    def get_many(self, kind: Type[NestedNode], node_ids: List[int]) -> List[NestedNode]:
        return [n for n in self._of_kind(kind) if n.id in set(node_ids)]

    def all_of_kind(self, kind: Type[NestedNode]) -> List[NestedNode]:
        return sorted(self._of_kind(kind), key=lambda n: n.title or "")

    def with_ancestry(self, kind: Type[NestedNode]) -> List[NestedNode]:
        return [n for n in self._of_kind(kind) if n.ancestry]

    def children_of(self, kind: Type[NestedNode], child_ancestry: Optional[str]) -> List[NestedNode]:
        return [n for n in self._of_kind(kind) if n.ancestry == child_ancestry]

    def descendants_of(self, kind: Type[NestedNode], child_ancestry: str) -> List[NestedNode]:
        return [
            n
            for n in self._of_kind(kind)
            if n.ancestry == child_ancestry or (n.ancestry or "").startswith(f"{child_ancestry}/")
        ]

    def has_children(self, kind: Type[NestedNode], child_ancestry: str) -> bool:
        return bool(self.children_of(kind, child_ancestry))

    def find_by_title(self, kind: Type[NestedNode], title: str) -> Optional[NestedNode]:
        return next((n for n in self._of_kind(kind) if n.title == title), None)

    def find_sibling_by_name(
        self, kind: Type[NestedNode], ancestry: Optional[str], name: str
    ) -> Optional[NestedNode]:
        wanted = name.casefold()
        return next((n for n in self.children_of(kind, ancestry) if n.name.casefold() == wanted), None)

    def search(self, kind: Type[NestedNode], term: str, limit: int = 20) -> List[NestedNode]:
        needle = term.lower()
        found = [n for n in self.all_of_kind(kind) if needle in (n.title or "").lower() or needle in n.name.lower()]
        return found[:limit]

    def insert(self, node: NestedNode) -> NestedNode:
        node.id = self.db.next_id
        self.db.next_id += 1
        self.rows[node.id] = node.copy()
        return node

    def update(self, node: NestedNode) -> None:
        if self.fail_on_update is not None and node.id == self.fail_on_update:
            raise RuntimeError(f"simulated write failure for node {node.id}")
        self.rows[node.id] = node.copy()

    def delete(self, node: NestedNode) -> None:
        self.rows.pop(node.id, None)

    def rebase_ancestry(self, kind: Type[NestedNode], old_prefix: str, new_prefix: str) -> int:
        count = 0
        for node in self.rows.values():
            if type(node) is not kind or not node.ancestry:
                continue
            if node.ancestry == old_prefix or node.ancestry.startswith(f"{old_prefix}/"):
                node.ancestry = new_prefix + node.ancestry[len(old_prefix) :]
                count += 1
        return count

    def transaction(self) -> ContextManager[None]:
        return self.db.transaction()


class InMemoryMatcherStore(MatcherStore):
    def __init__(self, db: InMemoryDB):
        self.db = db

    @property
    def records(self) -> List[MatcherRecord]:
        return self.db.records

    def find_by_match(self, match: str) -> List[MatcherRecord]:
        return [r for r in self.records if r.match == match]

    def rewrite_match(self, old_match: str, new_match: str) -> int:
        hits = self.find_by_match(old_match)
        for record in hits:
            record.match = new_match
        return len(hits)

    def add(self, record: MatcherRecord) -> MatcherRecord:
        record.id = len(self.records) + 1
        self.records.append(record)
        return record

    def all(self) -> List[MatcherRecord]:
        return list(self.records)


class InMemoryRelationStore(RelationStore):
    def __init__(self, kind: str):
        self.kind = kind
        self.entities: Dict[int, RelatedEntity] = {}

    def find_by_id(self, entity_id: Optional[int]) -> Optional[RelatedEntity]:
        if entity_id is None:
            return None
        return self.entities.get(entity_id)

    def add(self, name: str) -> RelatedEntity:
        entity = RelatedEntity(kind=self.kind, name=name, id=len(self.entities) + 1)
        self.entities[entity.id] = entity
        return entity

    def all(self) -> List[RelatedEntity]:
        return list(self.entities.values())


class RecordingListener:
    """记录所有变更通知，供断言使用。"""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def on_change(self, action: str, node: NestedNode, changes: Dict[str, Any]) -> None:
        self.events.append({"action": action, "id": node.id, "changes": changes})


def create_memory_engine(root_dir: Path, strategy: str = "prefix", listeners=()) -> TreeEngine:
    db = InMemoryDB()
    registry = RelationRegistry({target: InMemoryRelationStore(target) for target in relation_targets()})
    config = ConfigManager(root_dir)
    config.set("cascade.strategy", strategy)
    return TreeEngine(
        root_dir,
        store=InMemoryNodeStore(db),
        matchers=InMemoryMatcherStore(db),
        relations=registry,
        config=config,
        listeners=listeners,
    )


# --- Tree Builders ---


def create_tree_from_paths(engine: TreeEngine, kind: Type[NestedNode], paths: List[str]) -> Dict[str, NestedNode]:
    """
    根据 "eu/paris" 形式的路径批量创建节点，缺失的祖先会被自动创建。
    返回 标题 -> 节点 的映射。
    """
    created: Dict[str, NestedNode] = {}
    for path in paths:
        parent_id = None
        segments = path.split("/")
        for depth in range(len(segments)):
            title = "/".join(segments[: depth + 1])
            if title not in created:
                created[title] = engine.create(kind, segments[depth], parent_id=parent_id)
            parent_id = created[title].id
    return created
