import pytest
from pyarbor.engine.kinds import Hostgroup, Location
from pyarbor.engine.tree_engine import TreeEngine
from pyarbor.interfaces.exceptions import CascadeError, DeleteRejected, NodeNotFoundError, ValidationError
from pyarbor.interfaces.models import MatcherRecord
from pyarbor.test_utils.helpers import create_memory_engine, create_tree_from_paths


def _title(engine: TreeEngine, node) -> str:
    return engine.get(type(node), node.id).title


class TestTitles:
    def test_root_title_equals_name(self, engine: TreeEngine):
        for name in ("eu", "Datacenter 1", "a.b-c_d"):
            node = engine.create(Hostgroup, name)
            assert node.title == name
            assert _title(engine, node) == name

    def test_child_title_is_parent_title_plus_name(self, engine: TreeEngine):
        eu = engine.create(Hostgroup, "eu")
        paris = engine.create(Hostgroup, "paris", parent_id=eu.id)
        metro = engine.create(Hostgroup, "metro", parent_id=paris.id)

        assert paris.title == "eu/paris"
        assert metro.title == "eu/paris/metro"
        assert metro.ancestry == f"{eu.id}/{paris.id}"

    def test_label_and_param(self, engine: TreeEngine):
        eu = engine.create(Hostgroup, "eu")
        paris = engine.create(Hostgroup, "Paris Nord", parent_id=eu.id)

        assert paris.label == "eu/Paris Nord"
        assert paris.to_param() == f"{paris.id}-eu-paris-nord"

    def test_kinds_are_independent_trees(self, engine: TreeEngine):
        engine.create(Hostgroup, "eu")
        # 同名节点可以存在于另一种类型中
        location = engine.create(Location, "eu")
        assert location.title == "eu"
        assert [n.title for n in engine.store.all_of_kind(Location)] == ["eu"]


class TestCascade:
    def test_rename_ancestor_retitles_descendants(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris/metro", "eu/lyon"])

        result = engine.rename(Hostgroup, nodes["eu"].id, "europe")

        assert result.node.title == "europe"
        assert _title(engine, nodes["eu/paris"]) == "europe/paris"
        assert _title(engine, nodes["eu/paris/metro"]) == "europe/paris/metro"
        assert _title(engine, nodes["eu/lyon"]) == "europe/lyon"
        assert sorted(c.new_title for c in result.retitled) == ["europe/lyon", "europe/paris", "europe/paris/metro"]

    def test_rename_middle_node_leaves_ancestors_and_cousins(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris/metro", "eu/lyon"])

        engine.rename(Hostgroup, nodes["eu/paris"].id, "paname")

        assert _title(engine, nodes["eu"]) == "eu"
        assert _title(engine, nodes["eu/lyon"]) == "eu/lyon"
        assert _title(engine, nodes["eu/paris/metro"]) == "eu/paname/metro"

    def test_rename_to_same_name_does_not_cascade(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris"])

        result = engine.rename(Hostgroup, nodes["eu"].id, "eu")

        assert result.retitled == []
        assert result.matchers_rewritten == 0

    def test_move_rebases_and_retitles_subtree(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris/metro", "us"])
        us, paris, metro = nodes["us"], nodes["eu/paris"], nodes["eu/paris/metro"]

        result = engine.move(Hostgroup, paris.id, us.id)

        assert result.node.title == "us/paris"
        moved_metro = engine.get(Hostgroup, metro.id)
        assert moved_metro.ancestry == f"{us.id}/{paris.id}"
        assert moved_metro.title == "us/paris/metro"

    def test_move_to_root(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris/metro"])

        engine.move(Hostgroup, nodes["eu/paris"].id, None)

        assert _title(engine, nodes["eu/paris"]) == "paris"
        metro = engine.get(Hostgroup, nodes["eu/paris/metro"].id)
        assert metro.ancestry == str(nodes["eu/paris"].id)
        assert metro.title == "paris/metro"

    def test_move_under_own_descendant_is_rejected(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris"])

        with pytest.raises(ValidationError) as exc_info:
            engine.move(Hostgroup, nodes["eu"].id, nodes["eu/paris"].id)

        assert exc_info.value.on("ancestry") == ["can't be a descendant of itself"]
        assert _title(engine, nodes["eu"]) == "eu"

    def test_saving_an_outdated_copy_keeps_cascaded_title(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris"])
        engine.matchers.add(MatcherRecord(match="hostgroup=eu/paris", lookup_key="ntp"))
        outdated = engine.get(Hostgroup, nodes["eu/paris"].id)

        engine.rename(Hostgroup, nodes["eu"].id, "europe")
        outdated.references["domain_id"] = 3
        result = engine.save(outdated)

        stored = engine.get(Hostgroup, nodes["eu/paris"].id)
        assert result.node.title == "europe/paris"
        assert stored.title == "europe/paris"
        assert stored.references == {"domain_id": 3}
        assert [r.match for r in engine.matchers.all()] == ["hostgroup=europe/paris"]

    def test_saving_an_outdated_copy_keeps_rebased_ancestry(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris/metro", "us"])
        outdated = engine.get(Hostgroup, nodes["eu/paris/metro"].id)

        engine.move(Hostgroup, nodes["eu/paris"].id, nodes["us"].id)
        outdated.references["realm_id"] = 1
        engine.save(outdated)

        stored = engine.get(Hostgroup, nodes["eu/paris/metro"].id)
        assert stored.ancestry == f"{nodes['us'].id}/{nodes['eu/paris'].id}"
        assert stored.title == "us/paris/metro"

    def test_scan_strategy_matches_prefix_strategy(self, tmp_path):
        titles = {}
        for strategy in ("prefix", "scan"):
            engine = create_memory_engine(tmp_path, strategy=strategy)
            nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris/metro", "eu/lyon", "us/nyc"])
            engine.rename(Hostgroup, nodes["eu"].id, "europe")
            titles[strategy] = sorted(n.title for n in engine.store.all_of_kind(Hostgroup))

        assert titles["prefix"] == titles["scan"]
        assert "europe/paris/metro" in titles["scan"]

    def test_failed_cascade_rolls_back_everything(self, tmp_path):
        engine = create_memory_engine(tmp_path)
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris/metro"])
        engine.matchers.add(MatcherRecord(match="hostgroup=eu", lookup_key="ntp"))
        engine.store.fail_on_update = nodes["eu/paris/metro"].id

        with pytest.raises(CascadeError) as exc_info:
            engine.rename(Hostgroup, nodes["eu"].id, "europe")

        assert exc_info.value.node_id == nodes["eu/paris/metro"].id
        assert _title(engine, nodes["eu"]) == "eu"
        assert _title(engine, nodes["eu/paris"]) == "eu/paris"
        assert [r.match for r in engine.matchers.all()] == ["hostgroup=eu"]

    def test_cascade_title_collision_aborts(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris"])
        # 名称中允许出现 "/"，因此标题可能与级联结果冲突
        engine.create(Hostgroup, "europe/paris")

        with pytest.raises(CascadeError):
            engine.rename(Hostgroup, nodes["eu"].id, "europe")

        assert _title(engine, nodes["eu"]) == "eu"
        assert _title(engine, nodes["eu/paris"]) == "eu/paris"


class TestValidation:
    def test_blank_name(self, engine: TreeEngine):
        with pytest.raises(ValidationError) as exc_info:
            engine.create(Hostgroup, "")
        assert exc_info.value.on("name") == ["can't be blank"]
        assert exc_info.value.on("title") == ["can't be blank"]

    def test_sibling_name_unique_case_insensitive(self, engine: TreeEngine):
        eu = engine.create(Hostgroup, "eu")
        engine.create(Hostgroup, "paris", parent_id=eu.id)

        with pytest.raises(ValidationError) as exc_info:
            engine.create(Hostgroup, "PARIS", parent_id=eu.id)

        assert exc_info.value.field == "name"
        assert exc_info.value.reason == "has already been taken"

    def test_same_name_under_different_parents(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris", "us/paris"])
        assert nodes["us/paris"].title == "us/paris"

    def test_identical_title_elsewhere_is_rejected(self, engine: TreeEngine):
        create_tree_from_paths(engine, Hostgroup, ["eu/paris"])

        with pytest.raises(ValidationError) as exc_info:
            engine.create(Hostgroup, "eu/paris")

        assert exc_info.value.on("title") == ["has already been taken"]
        assert exc_info.value.on("name") == []

    def test_name_length_budget_for_root(self, engine: TreeEngine):
        # "hostgroup=" 占 10 个字符，名称最多 245 个字符
        engine.create(Hostgroup, "a" * 245)

        with pytest.raises(ValidationError) as exc_info:
            engine.create(Hostgroup, "b" * 246)

        assert exc_info.value.on("name") == ["is too long (maximum is 245 characters)"]

    def test_name_length_budget_includes_parent_title(self, engine: TreeEngine):
        eu = engine.create(Hostgroup, "eu")

        with pytest.raises(ValidationError) as exc_info:
            engine.create(Hostgroup, "x" * 243, parent_id=eu.id)

        # 255 - len("hostgroup=") - len("eu/") = 242
        assert exc_info.value.on("name") == ["is too long (maximum is 242 characters)"]

    def test_rename_validation_failure_has_no_side_effects(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris", "us"])
        engine.matchers.add(MatcherRecord(match="hostgroup=eu/paris", lookup_key="ntp"))

        with pytest.raises(ValidationError):
            engine.rename(Hostgroup, nodes["eu"].id, "US")

        assert _title(engine, nodes["eu/paris"]) == "eu/paris"
        assert [r.match for r in engine.matchers.all()] == ["hostgroup=eu/paris"]

    def test_unknown_parent(self, engine: TreeEngine):
        with pytest.raises(NodeNotFoundError):
            engine.create(Hostgroup, "paris", parent_id=999)


class TestMatchers:
    def test_rename_rewrites_only_matching_records(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris"])
        engine.matchers.add(MatcherRecord(match="hostgroup=eu/paris", value="fr", lookup_key="locale"))
        engine.matchers.add(MatcherRecord(match="hostgroup=eu/parisian", value="x", lookup_key="locale"))
        engine.matchers.add(MatcherRecord(match="location=eu/paris", value="y", lookup_key="locale"))

        result = engine.rename(Hostgroup, nodes["eu"].id, "europe")

        assert [r.match for r in engine.matchers.all()] == [
            "hostgroup=europe/paris",
            "hostgroup=eu/parisian",
            "location=eu/paris",
        ]
        assert result.matchers_rewritten == 1

    def test_own_and_descendant_matchers_are_both_rewritten(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris/metro"])
        engine.matchers.add(MatcherRecord(match="hostgroup=eu", lookup_key="ntp"))
        engine.matchers.add(MatcherRecord(match="hostgroup=eu/paris/metro", lookup_key="ntp"))

        result = engine.rename(Hostgroup, nodes["eu"].id, "europe")

        assert sorted(r.match for r in engine.matchers.all()) == ["hostgroup=europe", "hostgroup=europe/paris/metro"]
        assert result.matchers_rewritten == 2

    def test_reference_update_does_not_touch_matchers(self, engine: TreeEngine):
        eu = engine.create(Hostgroup, "eu")
        engine.matchers.add(MatcherRecord(match="hostgroup=eu", lookup_key="ntp"))

        result = engine.update(Hostgroup, eu.id, references={"compute_profile_id": 3})

        assert result.matchers_rewritten == 0
        assert engine.matchers.all()[0].match == "hostgroup=eu"


class TestDestroy:
    def test_delete_with_children_is_rejected(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris"])

        with pytest.raises(DeleteRejected) as exc_info:
            engine.destroy(Hostgroup, nodes["eu"].id)

        assert exc_info.value.node_id == nodes["eu"].id
        assert engine.store.get(Hostgroup, nodes["eu"].id) is not None

    def test_delete_leaf_then_parent(self, engine: TreeEngine):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris"])

        engine.destroy(Hostgroup, nodes["eu/paris"].id)
        engine.destroy(Hostgroup, nodes["eu"].id)

        assert engine.store.all_of_kind(Hostgroup) == []


class TestChangeNotifications:
    def test_title_is_never_reported(self, engine: TreeEngine, recorder):
        nodes = create_tree_from_paths(engine, Hostgroup, ["eu/paris"])
        engine.rename(Hostgroup, nodes["eu"].id, "europe")
        engine.destroy(Hostgroup, nodes["eu/paris"].id)

        actions = [e["action"] for e in recorder.events]
        assert actions == ["create", "create", "update", "destroy"]
        assert all("title" not in e["changes"] for e in recorder.events)
        assert recorder.events[2]["changes"] == {"name": ("eu", "europe")}
