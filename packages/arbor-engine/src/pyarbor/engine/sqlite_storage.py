import json
import logging
import sqlite3
from typing import ContextManager, List, Optional, Type

from pyarbor.interfaces.models import MatcherRecord, NestedNode, RelatedEntity
from pyarbor.interfaces.storage import MatcherStore, NodeStore, RelationStore

from .sqlite_db import DatabaseManager

logger = logging.getLogger(__name__)


def _row_to_node(kind: Type[NestedNode], row: sqlite3.Row) -> NestedNode:
    return kind(
        id=row["id"],
        name=row["name"],
        ancestry=row["ancestry"],
        title=row["title"],
        references=json.loads(row["references_json"] or "{}"),
    )


class SQLiteNodeStore(NodeStore):
    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def _select(self, kind: Type[NestedNode], where: str = "", params: tuple = (), suffix: str = "") -> List[NestedNode]:
        sql = "SELECT * FROM nodes WHERE node_type = ?"
        if where:
            sql += f" AND ({where})"
        if suffix:
            sql += f" {suffix}"
        rows = self.db_manager.query(sql, (kind.type_tag,) + tuple(params))
        return [_row_to_node(kind, row) for row in rows]

    def get(self, kind: Type[NestedNode], node_id: int) -> Optional[NestedNode]:
        found = self._select(kind, "id = ?", (node_id,))
        return found[0] if found else None

    def get_many(self, kind: Type[NestedNode], node_ids: List[int]) -> List[NestedNode]:
        if not node_ids:
            return []
        placeholders = ",".join("?" * len(node_ids))
        return self._select(kind, f"id IN ({placeholders})", tuple(node_ids))

    def all_of_kind(self, kind: Type[NestedNode]) -> List[NestedNode]:
        return self._select(kind, suffix="ORDER BY title")

    def with_ancestry(self, kind: Type[NestedNode]) -> List[NestedNode]:
        return self._select(kind, "ancestry IS NOT NULL")

    def children_of(self, kind: Type[NestedNode], child_ancestry: Optional[str]) -> List[NestedNode]:
        # `IS` 同时适用于 NULL (根节点) 与普通值
        return self._select(kind, "ancestry IS ?", (child_ancestry,), suffix="ORDER BY name")

    def descendants_of(self, kind: Type[NestedNode], child_ancestry: str) -> List[NestedNode]:
        # 前缀查询，命中 (node_type, ancestry) 索引
        return self._select(kind, "ancestry = ? OR ancestry LIKE ?", (child_ancestry, f"{child_ancestry}/%"))

    def has_children(self, kind: Type[NestedNode], child_ancestry: str) -> bool:
        rows = self.db_manager.query(
            "SELECT 1 FROM nodes WHERE node_type = ? AND ancestry = ? LIMIT 1", (kind.type_tag, child_ancestry)
        )
        return bool(rows)

    def find_by_title(self, kind: Type[NestedNode], title: str) -> Optional[NestedNode]:
        found = self._select(kind, "title = ?", (title,))
        return found[0] if found else None

    def find_sibling_by_name(
        self, kind: Type[NestedNode], ancestry: Optional[str], name: str
    ) -> Optional[NestedNode]:
        # 大小写不敏感比较放在 Python 端，SQLite 的 NOCASE 只折叠 ASCII
        wanted = name.casefold()
        for sibling in self.children_of(kind, ancestry):
            if sibling.name.casefold() == wanted:
                return sibling
        return None

    def search(self, kind: Type[NestedNode], term: str, limit: int = 20) -> List[NestedNode]:
        pattern = f"%{term}%"
        # LIMIT 的参数排在 WHERE 参数之后
        return self._select(kind, "title LIKE ? OR name LIKE ?", (pattern, pattern, limit), suffix="ORDER BY title LIMIT ?")

    def insert(self, node: NestedNode) -> NestedNode:
        cursor = self.db_manager.execute_write(
            "INSERT INTO nodes (node_type, name, ancestry, title, references_json) VALUES (?, ?, ?, ?, ?)",
            (node.type_tag, node.name, node.ancestry, node.title, json.dumps(node.references, sort_keys=True)),
        )
        node.id = cursor.lastrowid
        return node

    def update(self, node: NestedNode) -> None:
        self.db_manager.execute_write(
            "UPDATE nodes SET name = ?, ancestry = ?, title = ?, references_json = ? WHERE node_type = ? AND id = ?",
            (
                node.name,
                node.ancestry,
                node.title,
                json.dumps(node.references, sort_keys=True),
                node.type_tag,
                node.id,
            ),
        )

    def delete(self, node: NestedNode) -> None:
        self.db_manager.execute_write("DELETE FROM nodes WHERE node_type = ? AND id = ?", (node.type_tag, node.id))

    def rebase_ancestry(self, kind: Type[NestedNode], old_prefix: str, new_prefix: str) -> int:
        cursor = self.db_manager.execute_write(
            """
            UPDATE nodes SET ancestry = ? || substr(ancestry, ?)
            WHERE node_type = ? AND (ancestry = ? OR ancestry LIKE ?)
            """,
            (new_prefix, len(old_prefix) + 1, kind.type_tag, old_prefix, f"{old_prefix}/%"),
        )
        return cursor.rowcount

    def transaction(self) -> ContextManager[None]:
        return self.db_manager.transaction()


class SQLiteMatcherStore(MatcherStore):
    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @staticmethod
    def _to_record(row: sqlite3.Row) -> MatcherRecord:
        return MatcherRecord(id=row["id"], match=row["match"], value=row["value"] or "", lookup_key=row["lookup_key"] or "")

    def find_by_match(self, match: str) -> List[MatcherRecord]:
        rows = self.db_manager.query("SELECT * FROM lookup_values WHERE match = ? ORDER BY id", (match,))
        return [self._to_record(row) for row in rows]

    def rewrite_match(self, old_match: str, new_match: str) -> int:
        cursor = self.db_manager.execute_write("UPDATE lookup_values SET match = ? WHERE match = ?", (new_match, old_match))
        return cursor.rowcount

    def add(self, record: MatcherRecord) -> MatcherRecord:
        cursor = self.db_manager.execute_write(
            "INSERT INTO lookup_values (match, value, lookup_key) VALUES (?, ?, ?)",
            (record.match, record.value, record.lookup_key),
        )
        record.id = cursor.lastrowid
        return record

    def all(self) -> List[MatcherRecord]:
        rows = self.db_manager.query("SELECT * FROM lookup_values ORDER BY id")
        return [self._to_record(row) for row in rows]


class SQLiteRelationStore(RelationStore):
    def __init__(self, db_manager: DatabaseManager, kind: str):
        self.db_manager = db_manager
        self.kind = kind

    def find_by_id(self, entity_id: Optional[int]) -> Optional[RelatedEntity]:
        if entity_id is None:
            return None
        rows = self.db_manager.query(
            "SELECT * FROM related_entities WHERE kind = ? AND id = ?", (self.kind, entity_id)
        )
        if not rows:
            return None
        return RelatedEntity(kind=self.kind, name=rows[0]["name"], id=rows[0]["id"])

    def add(self, name: str) -> RelatedEntity:
        cursor = self.db_manager.execute_write(
            "INSERT INTO related_entities (kind, name) VALUES (?, ?)", (self.kind, name)
        )
        return RelatedEntity(kind=self.kind, name=name, id=cursor.lastrowid)

    def all(self) -> List[RelatedEntity]:
        rows = self.db_manager.query("SELECT * FROM related_entities WHERE kind = ? ORDER BY id", (self.kind,))
        return [RelatedEntity(kind=self.kind, name=row["name"], id=row["id"]) for row in rows]
