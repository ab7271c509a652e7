import logging
from typing import List, Optional

from pyarbor.interfaces.exceptions import IntegrityError
from pyarbor.interfaces.models import NestedNode, decode_ancestry, encode_ancestry
from pyarbor.interfaces.storage import NodeStore

logger = logging.getLogger(__name__)

# 重新导出，便于调用方只依赖本模块
encode = encode_ancestry
decode = decode_ancestry


def by_depth(nodes: List[NestedNode]) -> List[NestedNode]:
    # 祖先总是排在后代之前
    return sorted(nodes, key=lambda n: (n.depth, n.id or 0))


class AncestryPath:
    def __init__(self, store: NodeStore):
        self.store = store

    def ancestors(self, node: NestedNode) -> List[NestedNode]:
        ids = node.ancestor_ids
        if not ids:
            return []

        found = {n.id: n for n in self.store.get_many(type(node), ids)}
        missing = [i for i in ids if i not in found]
        if missing:
            logger.warning(f"⚠️  节点 {node.id} 的祖先链已断裂，缺失: {missing}")
            raise IntegrityError(node.id, missing)
        return [found[i] for i in ids]

    def parent(self, node: NestedNode) -> Optional[NestedNode]:
        parent_id = node.parent_id
        if parent_id is None:
            return None
        parent = self.store.get(type(node), parent_id)
        if parent is None:
            raise IntegrityError(node.id, [parent_id])
        return parent

    def children(self, node: NestedNode) -> List[NestedNode]:
        if node.id is None:
            return []
        return self.store.children_of(type(node), node.child_ancestry)

    def has_children(self, node: NestedNode) -> bool:
        if node.id is None:
            return False
        return self.store.has_children(type(node), node.child_ancestry)

    def siblings(self, node: NestedNode) -> List[NestedNode]:
        return [n for n in self.store.children_of(type(node), node.ancestry) if n.id != node.id]

    def descendants(self, node: NestedNode) -> List[NestedNode]:
        if node.id is None:
            return []
        return by_depth(self.store.descendants_of(type(node), node.child_ancestry))

    def descendants_by_scan(self, node: NestedNode) -> List[NestedNode]:
        # 全表扫描：遍历该类型所有非根节点，检查其路径是否包含本节点
        if node.id is None:
            return []
        matches = [n for n in self.store.with_ancestry(type(node)) if n.id != node.id and node.id in n.path_ids]
        return by_depth(matches)

    def subtree_ids(self, node: NestedNode) -> List[int]:
        return [node.id] + [n.id for n in self.descendants(node)]

    def rebase(self, node: NestedNode, old_ancestry: Optional[str]) -> int:
        """节点移动后，将其后代 ancestry 中的旧前缀替换为新前缀。"""
        old_prefix = encode(decode(old_ancestry) + [node.id])
        new_prefix = node.child_ancestry
        if old_prefix == new_prefix:
            return 0
        count = self.store.rebase_ancestry(type(node), old_prefix, new_prefix)
        logger.debug(f"已重写 {count} 个后代的 ancestry: {old_prefix} -> {new_prefix}")
        return count
