"""
Test cases for the mapping rule registry.
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from route_mapping import codec
from route_mapping.data.config import ServiceConfig
from route_mapping.direction import Direction, RouteMode
from route_mapping.errors import ConflictError, NotFoundError, ParseError, ValidationError
from route_mapping.expression import parse_transform
from route_mapping.handler.registry import MappingRegistry
from route_mapping.model.mapping import MappingRuleCreate, MappingRuleUpdate, RouteInfo
from route_mapping.path_expression import Constant

FILES = Path(__file__).parent / "files"


def new_rule(target="Document/Id", route_id="r1", direction=Direction.REQUEST, **kwargs):
    kwargs.setdefault("source_path", "source.Req.Id")
    return MappingRuleCreate(route_id=route_id, direction=direction, target_path=target, **kwargs)


class TestRules:
    """Create, read, update and delete of single rules."""

    def setup_method(self):
        self.registry = MappingRegistry()

    def test_create_assigns_ids(self):
        first = self.registry.create(new_rule("A"))
        second = self.registry.create(new_rule("B"))

        assert first.id is not None
        assert second.id != first.id
        assert first.route_id == "r1"
        assert first.direction == Direction.REQUEST

    def test_create_parses_source_and_transform(self):
        rule = self.registry.create(
            new_rule(source_path="constant:111444", transform=" concat( 'a' , b ) ")
        )

        assert rule.source_path == Constant("111444")
        assert rule.transform == parse_transform("concat('a',b)")

    def test_create_accepts_camel_case_payload(self):
        data = MappingRuleCreate.model_validate(
            {"routeId": "r1", "direction": "RESPONSE", "sourcePath": "a", "targetPath": "b",
             "defaultValue": "99"}
        )

        rule = self.registry.create(data)

        assert rule.direction == Direction.RESPONSE
        assert rule.default_value == "99"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"source_path": ""},
            {"source_path": "a..b"},
            {"target": "  "},
            {"transform": "concat('a',)"},
        ],
    )
    def test_create_rejects_invalid_rules(self, kwargs):
        with pytest.raises(ValidationError) as exc:
            self.registry.create(new_rule(**kwargs))

        assert exc.value.issues
        assert self.registry.list() == []

    def test_create_requires_route(self):
        with pytest.raises(ValidationError):
            self.registry.create(new_rule(route_id=""))

    def test_create_allows_unknown_functions(self):
        rule = self.registry.create(new_rule(transform="frobnicate(x)"))
        assert rule.transform.function == "frobnicate"

    def test_duplicate_target_conflicts(self):
        self.registry.create(new_rule("A"))

        with pytest.raises(ConflictError):
            self.registry.create(new_rule("A", source_path="other.Field"))

        assert len(self.registry.list("r1")) == 1

    def test_same_target_in_other_direction_or_route(self):
        self.registry.create(new_rule("A"))
        self.registry.create(new_rule("A", direction=Direction.RESPONSE))
        self.registry.create(new_rule("A", route_id="r2"))

        assert len(self.registry.list()) == 3

    def test_get_returns_copy(self):
        rule = self.registry.create(new_rule("A"))

        fetched = self.registry.get(rule.id)
        fetched.target_path = "changed"

        assert self.registry.get(rule.id).target_path == "A"

    def test_get_unknown(self):
        with pytest.raises(NotFoundError):
            self.registry.get(42)

    def test_delete(self):
        rule = self.registry.create(new_rule("A"))

        self.registry.delete(rule.id)

        assert self.registry.list("r1") == []
        with pytest.raises(NotFoundError):
            self.registry.delete(rule.id)

    def test_deleted_target_can_be_reused(self):
        rule = self.registry.create(new_rule("A"))
        self.registry.delete(rule.id)

        again = self.registry.create(new_rule("A"))
        assert again.id != rule.id

    def test_list_keeps_insertion_order(self):
        for target in ["C", "A", "B"]:
            self.registry.create(new_rule(target))
        self.registry.create(new_rule("Z", route_id="r2"))

        assert [r.target_path for r in self.registry.list("r1")] == ["C", "A", "B"]
        assert [r.target_path for r in self.registry.list()] == ["C", "A", "B", "Z"]
        assert self.registry.list("unknown") == []


class TestUpdate:
    def setup_method(self):
        self.registry = MappingRegistry()
        self.rule = self.registry.create(
            new_rule("A", transform="mapStatusToResponseCode(GrpSts)", default_value="99", required=True)
        )

    def test_update_only_set_fields(self):
        updated = self.registry.update(self.rule.id, MappingRuleUpdate(target_path="B"))

        assert updated.id == self.rule.id
        assert updated.target_path == "B"
        assert updated.transform == self.rule.transform
        assert updated.default_value == "99"
        assert updated.required

    def test_explicit_null_clears_optional_fields(self):
        updated = self.registry.update(
            self.rule.id, MappingRuleUpdate.model_validate({"transform": None, "defaultValue": None})
        )

        assert updated.transform is None
        assert updated.default_value is None
        assert updated.required

    def test_null_required_is_ignored(self):
        updated = self.registry.update(self.rule.id, MappingRuleUpdate.model_validate({"required": None}))
        assert updated.required

    def test_update_direction(self):
        updated = self.registry.update(self.rule.id, MappingRuleUpdate(direction=Direction.RESPONSE))

        assert updated.direction == Direction.RESPONSE
        mapping_set = self.registry.assemble("r1")
        assert mapping_set.request_mappings == []
        assert [r.id for r in mapping_set.response_mappings] == [self.rule.id]

    def test_update_to_taken_target_conflicts(self):
        self.registry.create(new_rule("B"))

        with pytest.raises(ConflictError):
            self.registry.update(self.rule.id, MappingRuleUpdate(target_path="B"))

        assert self.registry.get(self.rule.id).target_path == "A"

    def test_update_keeping_own_target(self):
        updated = self.registry.update(self.rule.id, MappingRuleUpdate(target_path="A", required=False))
        assert not updated.required

    def test_update_rejects_invalid(self):
        with pytest.raises(ValidationError):
            self.registry.update(self.rule.id, MappingRuleUpdate(source_path="a."))

        assert self.registry.get(self.rule.id).source_path == self.rule.source_path

    def test_update_unknown(self):
        with pytest.raises(NotFoundError):
            self.registry.update(999, MappingRuleUpdate(target_path="B"))


class TestRoutes:
    def setup_method(self):
        self.registry = MappingRegistry(ServiceConfig(default_input_format="JSON"))

    def test_assemble_unknown_route(self):
        with pytest.raises(NotFoundError):
            self.registry.assemble("nope")

    def test_assemble_uses_defaults(self):
        self.registry.create(new_rule("A"))

        mapping_set = self.registry.assemble("r1")

        assert mapping_set.input_format == "JSON"
        assert mapping_set.output_format == "ISO_XML"
        assert mapping_set.mode == RouteMode.PASSIVE

    def test_put_route_metadata(self):
        self.registry.put_route(
            RouteInfo(route_id="r1", name="Route one", mode="active", endpoint="http://x")
        )
        self.registry.create(new_rule("A"))
        self.registry.create(new_rule("B", direction=Direction.RESPONSE))

        mapping_set = self.registry.assemble("r1")

        assert mapping_set.name == "Route one"
        assert mapping_set.mode == RouteMode.ACTIVE
        assert [r.target_path for r in mapping_set.request_mappings] == ["A"]
        assert [r.target_path for r in mapping_set.response_mappings] == ["B"]

    def test_put_route_invalid_mode(self):
        with pytest.raises(ValidationError):
            self.registry.put_route(RouteInfo(route_id="r1", mode="sometimes"))

    def test_generated_text_round_trips(self):
        self.registry.put_route(RouteInfo(route_id="r1", name="Route one"))
        self.registry.create(new_rule("A", transform="concat('x', Id)"))
        self.registry.create(new_rule("B", source_path="constant:00", direction=Direction.RESPONSE))

        text = self.registry.generate_text("r1")

        assert self.registry.parse_text(text) == self.registry.assemble("r1")

    def test_generate_unknown_route(self):
        with pytest.raises(NotFoundError):
            self.registry.generate_text("nope")

    def test_validate_text_knows_extra_functions(self):
        registry = MappingRegistry(ServiceConfig(extra_functions=["lookupBic"]))
        text = (
            "routeId: r1\n"
            "requestMappings:\n"
            "  - sourcePath: a\n"
            "    targetPath: b\n"
            "    transform: lookupBic(a)\n"
        )

        assert registry.validate_text(text).warnings == []
        assert len(self.registry.validate_text(text).warnings) == 1


class TestImport:
    def setup_method(self):
        self.registry = MappingRegistry()
        self.text = (FILES / "tsquery_route.yaml").read_text(encoding="utf-8")

    def test_import_document(self):
        mapping_set = self.registry.import_text(self.text)

        assert mapping_set == codec.parse(self.text)
        assert mapping_set.mode == RouteMode.ACTIVE
        assert len(self.registry.list("tsquery-single")) == 5
        assert self.registry.get(4).default_value == "99"

    def test_import_replaces_rules(self):
        stale = self.registry.create(new_rule("Old", route_id="tsquery-single"))

        self.registry.import_text(self.text)

        targets = [r.target_path for r in self.registry.list("tsquery-single")]
        assert "Old" not in targets
        assert len(targets) == 5
        # the route already owned id 1, so the document's rule 1 keeps it
        assert stale.id == 1
        assert self.registry.get(stale.id).target_path == "AppHdr/MsgDefIdr"

    def test_import_reassigns_foreign_ids(self):
        other = self.registry.create(new_rule("X", route_id="other"))

        mapping_set = self.registry.import_text(
            "routeId: r1\n"
            "requestMappings:\n"
            f"  - id: {other.id}\n"
            "    sourcePath: a\n"
            "    targetPath: b\n"
        )

        imported = mapping_set.request_mappings[0]
        assert imported.id != other.id
        assert self.registry.get(other.id).route_id == "other"
        assert self.registry.get(imported.id).route_id == "r1"

    def test_import_keeps_owned_ids(self):
        rule = self.registry.create(new_rule("A"))

        mapping_set = self.registry.import_text(
            "routeId: r1\n"
            "requestMappings:\n"
            f"  - id: {rule.id}\n"
            "    sourcePath: a\n"
            "    targetPath: B\n"
        )

        assert mapping_set.request_mappings[0].id == rule.id
        assert self.registry.get(rule.id).target_path == "B"

    def test_import_is_all_or_nothing(self):
        rule = self.registry.create(new_rule("A"))

        with pytest.raises(ValidationError):
            self.registry.import_text(
                "routeId: r1\n"
                "requestMappings:\n"
                "  - sourcePath: a\n"
                "    targetPath: B\n"
                "  - sourcePath: c\n"
                "    targetPath: B\n"
            )

        assert [r.id for r in self.registry.list("r1")] == [rule.id]

    def test_import_invalid_yaml(self):
        with pytest.raises(ParseError):
            self.registry.import_text("a: b\n  c: d\n")


def test_concurrent_creates_keep_targets_unique():
    registry = MappingRegistry()

    def create(i):
        try:
            return registry.create(new_rule(f"T{i % 10}", source_path=f"a.f{i}"))
        except ConflictError:
            return None

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(create, range(100)))

    created = [r for r in results if r is not None]
    assert len(created) == 10
    assert len({r.id for r in created}) == 10
    assert sorted(r.target_path for r in registry.list("r1")) == [f"T{i}" for i in range(10)]


def test_concurrent_routes_do_not_interfere():
    registry = MappingRegistry()

    def fill(route_id):
        for i in range(20):
            registry.create(new_rule(f"T{i}", route_id=route_id))
        return route_id

    with ThreadPoolExecutor(max_workers=4) as pool:
        routes = list(pool.map(fill, [f"r{n}" for n in range(4)]))

    ids = [r.id for r in registry.list()]
    assert len(ids) == len(set(ids)) == 80
    for route_id in routes:
        assert len(registry.list(route_id)) == 20
