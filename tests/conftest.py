"""
Shared test fixtures for the validation and repair pipeline.
"""
import copy

import pytest

from buildguard.config import SafetyLimits, ScoringConfig, SpatialConfig
from buildguard.envelope_builder import create_envelope
from buildguard.models.blueprint import Blueprint
from buildguard.validators.normalizer import BlueprintNormalizer
from buildguard.validators.schema_validator import parse_blueprint


def _p(x, y, z):
    return {"x": x, "y": y, "z": z}


HOUSE_RAW = {
    "size": {"width": 10, "height": 8, "depth": 10},
    "palette": {
        "floor": "oak_planks",
        "wall": "stone_bricks",
        "roof": "oak_stairs",
        "door": "oak_door",
        "glass": "glass_pane",
    },
    "buildType": "house",
    "steps": [
        {"op": "fill", "block": "$floor", "from": _p(0, 0, 0), "to": _p(9, 0, 9)},
        {"op": "hollow_box", "block": "$wall", "from": _p(0, 1, 0), "to": _p(9, 4, 9)},
        {"op": "door", "block": "$door", "pos": _p(4, 1, 0)},
        {"op": "window_strip", "block": "$glass", "from": _p(2, 2, 0), "to": _p(3, 2, 0)},
        {"op": "roof_gable", "block": "$roof", "from": _p(0, 5, 0), "to": _p(9, 5, 9), "peakHeight": 3},
    ],
}


class FakeRepairer:
    """Scripted BlueprintRepairer: returns (or raises) the queued outputs in order."""

    def __init__(self, outputs=None):
        self.outputs = list(outputs or [])
        self.calls = []

    async def repair(self, envelope, errors, intent=None, attempt=0):
        self.calls.append({"envelope": envelope, "errors": list(errors), "attempt": attempt})
        output = self.outputs.pop(0) if self.outputs else {"steps": "oops"}
        if isinstance(output, Exception):
            raise output
        return copy.deepcopy(output)


@pytest.fixture
def point():
    """Coordinate dict helper: point(1, 2, 3) -> {"x": 1, "y": 2, "z": 3}."""
    return _p


@pytest.fixture
def house_raw():
    """A small, valid house: floor, walls, door, window strip and gable roof."""
    return copy.deepcopy(HOUSE_RAW)


@pytest.fixture
def house_blueprint(house_raw):
    """The house after normalisation and parsing (placeholders resolved)."""
    blueprint, issues = parse_blueprint(BlueprintNormalizer().normalize(house_raw).blueprint)
    assert not issues
    return blueprint


@pytest.fixture
def house_envelope(house_blueprint):
    return create_envelope(house_blueprint)


@pytest.fixture
def make_blueprint():
    """Factory: make_blueprint(steps, size=(10, 10, 10), palette=None, build_type=None)."""

    def _make(steps, size=(10, 10, 10), palette=None, build_type=None):
        data = {
            "size": {"width": size[0], "height": size[1], "depth": size[2]},
            "palette": palette if palette is not None else ["stone"],
            "steps": steps,
        }
        if build_type:
            data["buildType"] = build_type
        return Blueprint.model_validate(data)

    return _make


@pytest.fixture
def limits():
    return SafetyLimits()


@pytest.fixture
def scoring():
    return ScoringConfig()


@pytest.fixture
def spatial_config():
    return SpatialConfig()


@pytest.fixture
def fake_repairer():
    """The FakeRepairer class, so tests can script their own outputs."""
    return FakeRepairer


@pytest.fixture
def collected_events():
    """An async event callback plus the list it appends to."""
    events = []

    async def callback(event: dict):
        events.append(event)

    return callback, events
