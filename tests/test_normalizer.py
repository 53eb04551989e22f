"""Tests for raw-blueprint normalisation and boundary parsing."""
from buildguard.models.issues import IssueCode
from buildguard.validators.normalizer import (
    BlueprintNormalizer,
    absolute_bounds,
    coerce_hollow,
    normalize_block_name,
    resolve_placeholder,
)
from buildguard.validators.schema_validator import SchemaValidator, check_required_fields, parse_blueprint


class TestBlockNames:

    def test_namespace_is_stripped(self):
        assert normalize_block_name("minecraft:stone") == "stone"

    def test_aliases(self):
        assert normalize_block_name("minecraft:cobble") == "cobblestone"
        assert normalize_block_name("stone_brick") == "stone_bricks"
        assert normalize_block_name("Oak_Leaf") == "oak_leaves"

    def test_non_strings_pass_through(self):
        assert normalize_block_name(None) is None
        assert normalize_block_name(3) == 3

    def test_coerce_hollow(self):
        assert coerce_hollow("true") is True
        assert coerce_hollow("False") is False
        assert coerce_hollow(True) is True
        assert coerce_hollow(None) is False

    def test_resolve_placeholder_needs_mapping_palette(self):
        assert resolve_placeholder("$wall", {"wall": "stone"}) == "stone"
        assert resolve_placeholder("$wall", ["stone"]) is None
        assert resolve_placeholder("$roof", {"wall": "stone"}) is None


class TestNormalizer:

    def test_placeholders_resolved_and_input_untouched(self, house_raw):
        result = BlueprintNormalizer().normalize(house_raw)
        assert not result.errors
        assert result.blueprint["steps"][0]["block"] == "oak_planks"
        assert house_raw["steps"][0]["block"] == "$floor"

    def test_unresolved_placeholder_is_an_error(self, house_raw):
        house_raw["steps"][0]["block"] = "$missing"
        result = BlueprintNormalizer().normalize(house_raw)
        assert [e.code for e in result.errors] == [IssueCode.PLACEHOLDER_UNRESOLVED]
        assert result.errors[0].step == 0

    def test_fallback_blocks_are_normalised(self, point):
        raw = {
            "size": {"width": 5, "height": 5, "depth": 5},
            "palette": {"log": "oak_log"},
            "steps": [{
                "op": "we_fill", "block": "$log", "from": point(0, 0, 0), "to": point(2, 2, 2),
                "fallback": {"op": "fill", "block": "minecraft:log", "from": point(0, 0, 0), "to": point(2, 2, 2)},
            }],
        }
        result = BlueprintNormalizer().normalize(raw)
        assert result.blueprint["steps"][0]["fallback"]["block"] == "oak_log"

    def test_hollow_string_is_coerced(self, point):
        raw = {
            "size": {"width": 5, "height": 5, "depth": 5},
            "palette": ["stone"],
            "steps": [{"op": "box", "block": "stone", "from": point(0, 0, 0), "to": point(2, 2, 2), "hollow": "true"}],
        }
        result = BlueprintNormalizer().normalize(raw)
        assert result.blueprint["steps"][0]["hollow"] is True
        assert any("hollow" in change for change in result.changes)

    def test_auto_center_shifts_horizontally(self, point):
        raw = {
            "size": {"width": 6, "height": 2, "depth": 4},
            "palette": ["stone"],
            "steps": [{"op": "fill", "block": "stone", "from": point(-3, 0, 2), "to": point(2, 1, 5)}],
        }
        result = BlueprintNormalizer().normalize(raw)
        step = result.blueprint["steps"][0]
        assert step["from"] == point(0, 0, 0)
        assert step["to"] == point(5, 1, 3)
        assert result.blueprint["size"]["width"] == 6
        assert result.blueprint["size"]["depth"] == 4
        assert raw["steps"][0]["from"]["x"] == -3

    def test_negative_y_gets_safety_shift(self, point):
        raw = {
            "size": {"width": 4, "height": 4, "depth": 4},
            "palette": ["stone"],
            "steps": [{"op": "fill", "block": "stone", "from": point(0, -2, 0), "to": point(3, 1, 3)}],
        }
        result = BlueprintNormalizer().normalize(raw)
        assert result.blueprint["steps"][0]["from"]["y"] == 0
        assert result.blueprint["size"]["height"] == 6

    def test_auto_center_can_be_disabled(self, point):
        raw = {
            "size": {"width": 4, "height": 4, "depth": 4},
            "palette": ["stone"],
            "steps": [{"op": "set", "block": "stone", "pos": point(-1, 0, 0)}],
        }
        result = BlueprintNormalizer(auto_center=False).normalize(raw)
        assert result.blueprint["steps"][0]["pos"]["x"] == -1

    def test_non_dict_input(self):
        result = BlueprintNormalizer().normalize(["not", "a", "blueprint"])
        assert result.errors[0].code == IssueCode.SCHEMA_INVALID_TYPE

    def test_absolute_bounds_includes_radius(self, point):
        steps = [{"op": "we_sphere", "block": "stone", "center": point(5, 5, 5), "radius": 2}]
        assert absolute_bounds(steps) == (3, 3, 3, 7, 7, 7)

    def test_absolute_bounds_base_grows_upward(self, point):
        steps = [{"op": "we_cylinder", "block": "oak_log", "base": point(6, 0, 6), "radius": 3, "height": 10}]
        assert absolute_bounds(steps) == (3, 0, 3, 9, 9, 9)

    def test_grounded_cylinder_is_not_lifted(self, point):
        raw = {
            "size": {"width": 13, "height": 12, "depth": 13},
            "palette": ["stone", "oak_log"],
            "steps": [
                {"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(12, 0, 12)},
                {"op": "we_cylinder", "block": "oak_log", "base": point(6, 0, 6), "radius": 3, "height": 10},
            ],
        }
        result = BlueprintNormalizer().normalize(raw)
        steps = result.blueprint["steps"]
        assert steps[0]["from"]["y"] == 0
        assert steps[1]["base"] == {"x": 6, "y": 0, "z": 6}
        assert result.blueprint["size"]["height"] == 12
        assert not any("Safety shift" in c for c in result.changes)


class TestRequiredFields:

    def test_empty_blueprint(self):
        codes = [e.code for e in check_required_fields({})]
        assert codes.count(IssueCode.SCHEMA_MISSING_FIELD) == 2
        assert IssueCode.SCHEMA_EMPTY_STEPS in codes

    def test_non_positive_size(self, house_raw):
        house_raw["size"]["width"] = 0
        errors = check_required_fields(house_raw)
        assert [e.field for e in errors] == ["size.width"]

    def test_valid_house(self, house_raw):
        assert check_required_fields(house_raw) == []


class TestParseBlueprint:

    def test_unknown_operation(self, house_raw):
        house_raw["steps"][1]["op"] = "teleport"
        blueprint, issues = parse_blueprint(house_raw)
        assert blueprint is None
        assert issues[0].code == IssueCode.PARAM_UNKNOWN_OPERATION
        assert issues[0].step == 1
        assert issues[0].message == "Step 2: Unknown operation 'teleport'"

    def test_mistyped_coordinate(self, house_raw):
        house_raw["steps"][0]["from"]["x"] = "left"
        blueprint, issues = parse_blueprint(house_raw)
        assert blueprint is None
        assert issues[0].code == IssueCode.SCHEMA_INVALID_TYPE
        assert issues[0].step == 0

    def test_json_string(self, house_raw):
        import json
        blueprint, issues = parse_blueprint(json.dumps(house_raw))
        assert issues == []
        assert blueprint.build_type == "house"

    def test_invalid_json_string(self):
        blueprint, issues = parse_blueprint("{not json")
        assert blueprint is None
        assert issues[0].code == IssueCode.SCHEMA_INVALID_TYPE

    def test_to_payload_uses_wire_names(self, house_blueprint):
        payload = house_blueprint.to_payload()
        assert payload["buildType"] == "house"
        assert "from" in payload["steps"][0]
        assert payload["steps"][4]["peakHeight"] == 3


class TestSchemaValidator:

    def test_house_passes(self, house_blueprint):
        assert SchemaValidator().validate(house_blueprint) == []

    def test_nested_fallback(self, make_blueprint, point):
        inner = {"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(1, 1, 1)}
        bp = make_blueprint([{
            "op": "we_fill", "block": "stone", "from": point(0, 0, 0), "to": point(1, 1, 1),
            "fallback": {**inner, "fallback": inner},
        }])
        issues = SchemaValidator().validate(bp)
        assert [i.field for i in issues] == ["fallback"]

    def test_duplicate_list_palette_warns(self, make_blueprint, point):
        bp = make_blueprint(
            [{"op": "set", "block": "stone", "pos": point(0, 0, 0)}],
            palette=["stone", "stone"],
        )
        issues = SchemaValidator().validate(bp)
        assert len(issues) == 1
        assert not issues[0].is_error
