import pytest
from pyarbor.engine.ancestry import AncestryPath, by_depth, decode, encode
from pyarbor.engine.kinds import Hostgroup
from pyarbor.interfaces.exceptions import IntegrityError
from pyarbor.test_utils.helpers import InMemoryNodeStore


def _put(store: InMemoryNodeStore, node_id: int, name: str, ancestry=None) -> Hostgroup:
    node = Hostgroup(id=node_id, name=name, ancestry=ancestry)
    store.rows[node_id] = node
    return node.copy()


@pytest.fixture
def store() -> InMemoryNodeStore:
    store = InMemoryNodeStore()
    _put(store, 1, "eu")
    _put(store, 2, "paris", "1")
    _put(store, 3, "metro", "1/2")
    _put(store, 4, "lyon", "1")
    _put(store, 23, "other", "1")
    _put(store, 24, "deep", "1/23")
    return store


class TestEncoding:
    def test_roundtrip_boundaries(self):
        assert encode([]) is None
        assert decode(None) == []
        assert decode("") == []
        assert decode("1/4/9") == [1, 4, 9]
        assert encode([1, 4, 9]) == "1/4/9"

    def test_node_path_properties(self):
        node = Hostgroup(id=9, name="x", ancestry="1/4")
        assert node.parent_id == 4
        assert node.path_ids == [1, 4, 9]
        assert node.depth == 2
        assert node.child_ancestry == "1/4/9"
        assert not node.is_root

    def test_root_child_ancestry(self):
        root = Hostgroup(id=1, name="eu")
        assert root.is_root
        assert root.parent_id is None
        assert root.child_ancestry == "1"

    def test_unsaved_node_has_no_child_ancestry(self):
        with pytest.raises(ValueError):
            Hostgroup(name="new").child_ancestry


class TestAncestryPath:
    def test_ancestors_root_first(self, store):
        path = AncestryPath(store)
        metro = store.get(Hostgroup, 3)
        assert [a.name for a in path.ancestors(metro)] == ["eu", "paris"]
        assert path.ancestors(store.get(Hostgroup, 1)) == []

    def test_broken_chain_raises_integrity_error(self, store):
        path = AncestryPath(store)
        orphan = Hostgroup(id=50, name="orphan", ancestry="1/99")

        with pytest.raises(IntegrityError) as exc_info:
            path.ancestors(orphan)

        assert exc_info.value.missing_ids == [99]

    def test_children_and_siblings(self, store):
        path = AncestryPath(store)
        eu, paris = store.get(Hostgroup, 1), store.get(Hostgroup, 2)

        assert sorted(c.name for c in path.children(eu)) == ["lyon", "other", "paris"]
        assert sorted(s.name for s in path.siblings(paris)) == ["lyon", "other"]
        assert path.has_children(paris)
        assert not path.has_children(store.get(Hostgroup, 3))

    def test_prefix_does_not_match_longer_ids(self, store):
        # "1/2" 的后代不应包含 ancestry 为 "1/23" 的节点
        path = AncestryPath(store)
        paris = store.get(Hostgroup, 2)
        assert [d.id for d in path.descendants(paris)] == [3]

    def test_scan_and_prefix_agree(self, store):
        path = AncestryPath(store)
        eu = store.get(Hostgroup, 1)
        assert [n.id for n in path.descendants(eu)] == [n.id for n in path.descendants_by_scan(eu)]

    def test_descendants_come_in_depth_order(self, store):
        path = AncestryPath(store)
        depths = [n.depth for n in path.descendants(store.get(Hostgroup, 1))]
        assert depths == sorted(depths)

    def test_subtree_ids(self, store):
        path = AncestryPath(store)
        assert sorted(path.subtree_ids(store.get(Hostgroup, 2))) == [2, 3]

    def test_rebase_rewrites_prefix_only(self, store):
        path = AncestryPath(store)
        paris = store.get(Hostgroup, 2)
        paris.ancestry = "4"

        count = path.rebase(paris, "1")

        assert count == 1
        assert store.get(Hostgroup, 3).ancestry == "4/2"
        assert store.get(Hostgroup, 24).ancestry == "1/23"


def test_by_depth_is_stable_on_id():
    nodes = [Hostgroup(id=5, ancestry="1/2"), Hostgroup(id=2, ancestry="1"), Hostgroup(id=3, ancestry="1")]
    assert [n.id for n in by_depth(nodes)] == [2, 3, 5]
