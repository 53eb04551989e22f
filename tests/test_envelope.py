"""Tests for envelope creation, validation and payload extraction."""
from buildguard.config import SafetyLimits
from buildguard.envelope_builder import (
    compute_world_bounds,
    create_envelope,
    create_voxel_envelope,
    estimate_from_steps,
    extract_payload_for_builder,
    iter_voxels,
    rebuild_envelope,
    validate_envelope,
)
from buildguard.models.analysis import BlueprintKind, BuildPass
from buildguard.models.blueprint import Step, Vec3
from buildguard.models.envelope import ENVELOPE_VERSION, Bounds, BoundsRange, Envelope
from buildguard.models.issues import IssueCode
from buildguard.router import route_prompt


def codes(issues):
    return [i.code for i in issues]


def _v(x, y, z):
    return Vec3(x=x, y=y, z=z)


class TestEstimates:

    def test_house_estimates(self, house_blueprint):
        estimates = estimate_from_steps(house_blueprint.steps)
        assert estimates.block_count == 100 + 400 + 3 * 10
        assert estimates.we_command_count == 6
        assert estimates.vanilla_block_count == 30
        assert estimates.estimated_time_ms == 6 * 400 + 30 * 10

    def test_sized_and_unsized_world_edit(self, point):
        steps = [
            Step.model_validate({"op": "we_fill", "block": "stone", "base": point(0, 0, 0),
                                 "size": {"x": 2, "y": 3, "z": 4}}),
            Step.model_validate({"op": "we_sphere", "block": "stone", "center": point(5, 5, 5), "radius": 3}),
            Step.model_validate({"op": "set", "block": "stone", "pos": point(0, 0, 0)}),
        ]
        estimates = estimate_from_steps(steps)
        assert estimates.block_count == 24 + 100 + 1
        assert estimates.vanilla_block_count == 1


class TestCreateEnvelope:

    def test_house_envelope(self, house_envelope):
        assert house_envelope.blueprint_version == ENVELOPE_VERSION
        assert house_envelope.kind == BlueprintKind.OPS_SCRIPT
        assert house_envelope.build_type == "house"
        assert house_envelope.bounds.local.dimensions() == (10, 8, 10)
        assert house_envelope.payload["buildType"] == "house"
        assert house_envelope.payload["steps"][4]["peakHeight"] == 3
        assert house_envelope.validation.validated is False

    def test_route_fills_tags(self, house_blueprint):
        envelope = create_envelope(house_blueprint, route=route_prompt("a medieval castle"), prompt="a medieval castle")
        assert envelope.tags.build_type == ["castle"]
        assert envelope.tags.style == ["medieval"]
        assert envelope.tags.passes == [BuildPass.SHELL, BuildPass.DETAIL]
        assert envelope.validation.profile == "castle"
        assert envelope.metadata.prompt == "a medieval castle"

    def test_world_bounds_add_origin(self, house_blueprint):
        envelope = create_envelope(house_blueprint, origin=_v(100, 64, -20))
        assert envelope.bounds.world.min == _v(100, 64, -20)
        assert envelope.bounds.world.max == _v(109, 71, -11)

    def test_compute_world_bounds(self):
        local = BoundsRange(min=_v(0, 0, 0), max=_v(4, 4, 4))
        world = compute_world_bounds(local, _v(1, 2, 3))
        assert (world.max.x, world.max.y, world.max.z) == (5, 6, 7)

    def test_safety_height_is_capped(self, house_blueprint):
        envelope = create_envelope(house_blueprint, limits=SafetyLimits(max_height=400))
        assert envelope.safety.max_height == 256

    def test_input_blueprint_is_untouched(self, house_blueprint):
        before = house_blueprint.model_dump()
        create_envelope(house_blueprint)
        assert house_blueprint.model_dump() == before


class TestValidateEnvelope:

    def test_house_is_valid(self, house_envelope):
        check = validate_envelope(house_envelope)
        assert check.valid
        assert check.errors == []
        assert check.envelope is house_envelope

    def test_wire_shape(self, house_envelope):
        wire = house_envelope.to_wire()
        assert wire["blueprintVersion"] == ENVELOPE_VERSION
        assert wire["estimates"]["blockCount"] == 530
        assert wire["tags"]["buildType"] == ["house"]

        check = validate_envelope(wire)
        assert check.valid
        assert check.envelope.envelope_id == house_envelope.envelope_id
        assert check.envelope.estimates == house_envelope.estimates

    def test_malformed_dict(self):
        check = validate_envelope({"kind": "ops_script"})
        assert not check.valid
        assert check.envelope is None
        assert set(codes(check.errors)) == {IssueCode.SCHEMA_ENVELOPE}

    def test_block_count_over_limit(self, house_envelope):
        check = validate_envelope(house_envelope, SafetyLimits(max_blocks=100))
        assert codes(check.errors) == [IssueCode.LIMIT_BLOCK_COUNT]
        assert check.errors[0].message == "Estimated block count 530 exceeds limit 100"

    def test_envelope_ceiling_also_applies(self, house_blueprint):
        envelope = create_envelope(house_blueprint, limits=SafetyLimits(max_blocks=200))
        assert codes(validate_envelope(envelope).errors) == [IssueCode.LIMIT_BLOCK_COUNT]

    def test_inverted_bounds(self, house_envelope):
        bad = house_envelope.model_copy(update={
            "bounds": Bounds(local=BoundsRange(min=_v(5, 0, 0), max=_v(0, 4, 4))),
        })
        assert codes(validate_envelope(bad).errors) == [IssueCode.SCHEMA_INVALID_BOUNDS]

    def test_payload_must_match_kind(self, house_envelope):
        bad = house_envelope.model_copy(update={"payload": {"steps": "not a list"}})
        check = validate_envelope(bad)
        assert codes(check.errors) == [IssueCode.SCHEMA_PAYLOAD_MISMATCH]
        assert check.errors[0].field == "payload.steps"


class TestVoxelEnvelope:

    def test_create_and_validate(self):
        voxels = [{"x": 0, "y": 0, "z": 0, "block": "stone"}, {"x": 1, "y": 0, "z": 0, "block": "stone"}]
        envelope = create_voxel_envelope(voxels, ["stone"], (2, 1, 1), route=route_prompt("pixel art heart"))
        assert envelope.kind == BlueprintKind.VOXEL_SPARSE
        assert envelope.estimates.block_count == 2
        assert envelope.build_type == "pixel_art"
        assert validate_envelope(envelope).valid

    def test_empty_voxel_payload_is_rejected(self):
        envelope = create_voxel_envelope([], ["stone"], (1, 1, 1))
        assert codes(validate_envelope(envelope).errors) == [IssueCode.SCHEMA_PAYLOAD_MISMATCH]

    def test_iter_voxels_resolves_palette_indexes(self):
        payload = {
            "palette": ["dirt", "stone"],
            "voxels": [{"x": 0, "y": 0, "z": 0, "block": 1}, {"x": 1, "y": 0, "z": 0, "block": "glass"}],
        }
        assert list(iter_voxels(payload)) == [(0, 0, 0, "stone"), (1, 0, 0, "glass")]

    def test_iter_voxels_layers(self):
        payload = {
            "palette": {"s": "stone"},
            "layers": [{"y": 2, "grid": ["s.", "ss"], "legend": {"s": "stone"}}],
        }
        assert list(iter_voxels(payload)) == [(0, 2, 0, "stone"), (0, 2, 1, "stone"), (1, 2, 1, "stone")]

    def test_placeholder_voxels(self):
        payload = {"palette": {"wall": "bricks"}, "voxels": [{"x": 0, "y": 0, "z": 0, "block": "$wall"}]}
        assert list(iter_voxels(payload)) == [(0, 0, 0, "bricks")]


class TestExtractPayload:

    def test_ops_script(self, house_envelope):
        out = extract_payload_for_builder(house_envelope)
        assert out["size"] == {"width": 10, "height": 8, "depth": 10}
        assert out["buildType"] == "house"
        assert len(out["steps"]) == 5

    def test_voxels_become_set_steps(self):
        envelope = create_voxel_envelope(
            [{"x": 1, "y": 0, "z": 2, "block": "stone"}], {"s": "stone"}, (3, 1, 3)
        )
        out = extract_payload_for_builder(envelope)
        assert out["steps"] == [{"op": "set", "pos": {"x": 1, "y": 0, "z": 2}, "block": "stone"}]
        assert out["palette"] == {"s": "stone"}


class TestRebuildEnvelope:

    def test_rebuild_recomputes_estimates_and_keeps_identity(self, house_envelope):
        payload = dict(house_envelope.payload, steps=house_envelope.payload["steps"][:1])
        rebuilt = rebuild_envelope(
            house_envelope, payload,
            metadata_update={"fallback": {"strategy": "remove_failed_ops"}},
            passes=[BuildPass.SHELL],
        )
        assert rebuilt.envelope_id == house_envelope.envelope_id
        assert rebuilt.blueprint_version == house_envelope.blueprint_version
        assert rebuilt.estimates.block_count == 100
        assert rebuilt.metadata.fallback == {"strategy": "remove_failed_ops"}
        assert rebuilt.tags.passes == [BuildPass.SHELL]
        assert rebuilt.validation.validated is False
        assert len(house_envelope.payload["steps"]) == 5

    def test_rebuild_with_new_bounds(self, house_envelope):
        bounds = BoundsRange(min=_v(0, 0, 0), max=_v(4, 3, 4))
        rebuilt = rebuild_envelope(house_envelope, house_envelope.payload, bounds=bounds)
        assert rebuilt.bounds.local.dimensions() == (5, 4, 5)
        assert rebuilt.bounds.world.max == _v(4, 3, 4)

    def test_kind_switch(self, house_envelope):
        payload = {"palette": ["stone"], "voxels": [{"x": 0, "y": 0, "z": 0, "block": "stone"}]}
        rebuilt = rebuild_envelope(house_envelope, payload, kind=BlueprintKind.VOXEL_SPARSE)
        assert rebuilt.kind == BlueprintKind.VOXEL_SPARSE
        assert rebuilt.estimates.block_count == 1
        assert isinstance(rebuilt, Envelope)
