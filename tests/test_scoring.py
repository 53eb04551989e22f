"""Tests for profile scoring, the legacy quality score, CSD balance and organic checks."""
import pytest

from buildguard.config import ScoringConfig
from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Size
from buildguard.models.issues import IssueCode, Severity, ValidationIssue, ValidationReport
from buildguard.validators.csd_validator import CSDBalanceValidator, classify_phases
from buildguard.validators.organic import (
    fix_tree_quality,
    is_organic_build,
    validate_tree_quality,
)
from buildguard.validators.profile_validator import ProfileValidator, grade_for, validate_with_profile
from buildguard.validators.profiles import detect_build_type, get_validation_profile
from buildguard.validators.quality_validator import QualityValidator


def codes(issues):
    return [i.code for i in issues]


class TestProfileLookup:

    @pytest.mark.parametrize("build_type, profile_id", [
        ("house", "house"),
        ("Modern Home", "house"),
        ("eiffel tower", "landmark"),
        ("pixelart", "pixel_art"),
        ("tree_house", "treehouse"),
        (None, "generic"),
        ("zzz", "generic"),
    ])
    def test_resolution(self, build_type, profile_id):
        assert get_validation_profile(build_type).id == profile_id

    def test_detect_prefers_analysis(self, house_blueprint):
        assert detect_build_type(house_blueprint, BuildAnalysis(build_type="castle")) == "castle"
        assert detect_build_type(house_blueprint) == "house"

    def test_detect_from_operations(self, make_blueprint, point):
        bp = make_blueprint([{"op": "pixel_art", "base": point(0, 0, 0), "grid": ["ab"]}])
        assert detect_build_type(bp) == "pixel_art"

        bp = make_blueprint([
            {"op": "smart_wall", "from": point(0, 0, 0), "to": point(4, 3, 0), "palette": ["stone"]},
            {"op": "roof_flat", "block": "stone", "from": point(0, 4, 0), "to": point(4, 4, 4)},
            {"op": "door", "block": "oak_door", "pos": point(2, 0, 0)},
        ])
        assert detect_build_type(bp) == "house"


class TestGrades:

    @pytest.mark.parametrize("score, grade", [
        (1.0, "A"), (0.9, "A"), (0.85, "B"), (0.75, "C"), (0.6, "D"), (0.5, "D"), (0.3, "F"),
    ])
    def test_default_thresholds(self, score, grade):
        assert grade_for(score) == grade

    def test_custom_thresholds(self):
        scoring = ScoringConfig(grade_thresholds={"A": 0.99, "B": 0.5})
        assert grade_for(0.95, scoring) == "B"


class TestProfileValidator:

    def test_complete_house(self, house_blueprint):
        result = ProfileValidator().evaluate(house_blueprint)
        assert result.profile.id == "house"
        assert result.quality.raw == 1.0
        assert result.quality.grade == "A"
        assert result.safety_passed
        assert result.warnings == []

    def test_missing_roof_and_door(self, make_blueprint, point):
        bp = make_blueprint([{"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(4, 0, 4)}])
        result = ProfileValidator().evaluate(bp, build_type="house")
        assert codes(result.warnings) == [IssueCode.PROFILE_MISSING_ROOF, IssueCode.PROFILE_MISSING_DOOR]
        assert result.quality.raw == pytest.approx(0.9 * 0.95)
        assert result.quality.grade == "B"

    def test_weight_pulls_toward_one(self, make_blueprint, point):
        """weighted = 1 - (1 - raw) * weight"""
        bp = make_blueprint([{"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(4, 0, 4)}])
        result = ProfileValidator().evaluate(bp, build_type="infrastructure")
        assert result.quality.raw == 1.0

        bp = make_blueprint([{"op": "fill", "block": "stone", "from": point(0, 5, 0), "to": point(4, 5, 4)}])
        result = ProfileValidator().evaluate(bp, build_type="infrastructure")
        assert result.quality.raw == pytest.approx(0.9)
        assert result.quality.weighted == pytest.approx(1 - 0.1 * 0.6)

    def test_floating_build_fails_safety(self, make_blueprint, point):
        bp = make_blueprint(
            [{"op": "fill", "block": "stone", "from": point(0, 20, 0), "to": point(4, 21, 4)}],
            size=(5, 30, 5),
        )
        result = ProfileValidator().evaluate(bp, build_type="house")
        assert not result.safety_passed
        assert IssueCode.PROFILE_FLOATING_STRUCTURE in codes(result.warnings)

    def test_floating_allowed_for_pixel_art(self, make_blueprint, point):
        bp = make_blueprint(
            [{"op": "fill", "block": "stone", "from": point(0, 20, 0), "to": point(4, 21, 0)}],
            size=(5, 30, 1),
        )
        assert ProfileValidator().evaluate(bp, build_type="pixel_art").safety_passed

    def test_module_level_helper(self, house_blueprint):
        result = validate_with_profile(house_blueprint, BuildAnalysis(build_type="castle"))
        assert result.profile.id == "castle"
        assert result.build_type == "castle"

    def test_profile_ceiling_is_an_error(self, make_blueprint, point):
        bp = make_blueprint(
            [{"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(2, 70, 2)}],
            size=(3, 71, 3),
        )
        result = ProfileValidator().evaluate(bp, build_type="house")
        assert codes(result.errors) == [IssueCode.PROFILE_EXCEEDS_MAX_HEIGHT]
        assert not result.safety_passed


class TestLegacyQuality:

    def test_house_scores_full(self, house_blueprint):
        result = QualityValidator().score(house_blueprint)
        assert result.score == 1.0
        assert result.passed
        assert set(result.breakdown) == {
            "feature_completeness", "structural_integrity", "proportions", "palette_usage",
        }

    def test_missing_features_multiply(self, house_blueprint):
        analysis = BuildAnalysis(build_type="house", features=["balcony", "tower", "sauna"])
        result = QualityValidator().score(house_blueprint, analysis)
        assert result.breakdown["feature_completeness"] == pytest.approx(0.7 * 0.7)
        assert not result.passed

    def test_present_features(self, house_blueprint):
        analysis = BuildAnalysis(build_type="house", features=["door", "windows", "roof", "stairs"])
        assert QualityValidator().score(house_blueprint, analysis).breakdown["feature_completeness"] == 1.0

    def test_proportions(self, house_blueprint):
        analysis = BuildAnalysis(build_type="house", dimensions=Size(width=20, height=8, depth=10))
        result = QualityValidator().score(house_blueprint, analysis)
        assert result.breakdown["proportions"] == pytest.approx(0.95)
        assert codes(result.penalties) == [IssueCode.QUALITY_PROPORTIONS]

    def test_palette_usage(self, make_blueprint, point):
        bp = make_blueprint(
            [{"op": "fill", "block": "dirt", "from": point(0, 0, 0), "to": point(2, 0, 2)}],
            palette=["stone"],
        )
        result = QualityValidator().score(bp)
        assert result.breakdown["palette_usage"] == pytest.approx(0.98 * 0.95)

    def test_tall_build_without_roof(self, make_blueprint, point):
        bp = make_blueprint([{"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(2, 8, 2)}])
        result = QualityValidator().score(bp)
        assert result.breakdown["structural_integrity"] == pytest.approx(0.9)


class TestCSDBalance:

    def test_house_breakdown(self, house_blueprint):
        counts = classify_phases(house_blueprint)
        assert (counts.core, counts.structure, counts.detail) == (2, 1, 2)
        warnings = CSDBalanceValidator().validate(house_blueprint)
        assert codes(warnings) == [IssueCode.CSD_DETAIL_COUNT]

    def test_core_heavy(self, make_blueprint, point):
        steps = [
            {"op": "fill", "block": "stone", "from": point(0, y, 0), "to": point(3, y, 3)}
            for y in range(3)
        ]
        steps.append({"op": "set", "block": "stone", "pos": point(0, 3, 0)})
        result = CSDBalanceValidator().evaluate(make_blueprint(steps))
        assert IssueCode.CSD_CORE_HEAVY in codes(result.warnings)
        assert IssueCode.CSD_DETAIL_PERCENT not in codes(result.warnings)
        assert all(w.severity == Severity.WARNING for w in result.warnings)

    def test_air_and_movement(self, make_blueprint, point):
        bp = make_blueprint([
            {"op": "fill", "block": "air", "from": point(0, 0, 0), "to": point(1, 1, 1)},
            {"op": "move", "offset": point(1, 0, 0)},
            {"op": "cursor_reset"},
        ])
        counts = classify_phases(bp)
        assert counts.detail == 1
        assert counts.excluded == 2
        assert counts.total == 1

    def test_only_excluded_steps(self, make_blueprint, point):
        bp = make_blueprint([{"op": "move", "offset": point(1, 0, 0)}])
        assert CSDBalanceValidator().validate(bp) == []


@pytest.fixture
def primitive_tree(make_blueprint, point):
    """A tall tree built from a log cylinder and a leaf sphere."""
    return make_blueprint(
        [
            {"op": "we_cylinder", "block": "oak_log", "base": point(6, 0, 6), "radius": 1, "height": 10},
            {"op": "we_sphere", "block": "oak_leaves", "center": point(6, 13, 6), "radius": 4},
        ],
        size=(13, 20, 13),
        palette=["oak_log", "oak_leaves"],
        build_type="tree",
    )


class TestOrganic:

    def test_organic_build_types(self):
        assert is_organic_build("Tree")
        assert not is_organic_build("house")
        assert not is_organic_build(None)

    def test_primitive_tree_fails(self, primitive_tree):
        result = validate_tree_quality(primitive_tree)
        assert not result.checks["has_trunk_taper"].passed
        assert not result.checks["has_canopy_asymmetry"].passed
        assert not result.checks["no_unnatural_geometry"].passed
        assert result.checks["has_leaf_variation"].passed
        assert result.score == pytest.approx(0.55)
        assert not result.valid
        assert all(i.severity == Severity.ERROR for i in result.issues)
        assert len(result.issues) == 3

    def test_single_miss_is_a_warning(self, make_blueprint, point):
        bp = make_blueprint(
            [{"op": "fill", "block": "oak_log", "from": point(3, 0, 3), "to": point(3, 17, 3)}],
            size=(7, 20, 7),
            palette=["oak_log"],
        )
        result = validate_tree_quality(bp)
        assert result.valid
        assert codes(result.issues) == [IssueCode.ORGANIC_NO_TRUNK_TAPER]
        assert result.issues[0].severity == Severity.WARNING

    def test_fix_replaces_primitives(self, primitive_tree):
        fixed = fix_tree_quality(primitive_tree)
        ops = [step.op.value for step in fixed.steps]
        assert ops == ["we_fill", "we_fill", "sphere", "sphere", "sphere"]
        assert all(step.fallback is not None for step in fixed.steps)
        assert validate_tree_quality(fixed).valid
        assert primitive_tree.steps[0].op.value == "we_cylinder"

    def test_fix_without_primitives_returns_same_object(self, house_blueprint):
        assert fix_tree_quality(house_blueprint) is house_blueprint


class TestValidationReport:

    def _issue(self, severity):
        return ValidationIssue(code=IssueCode.QUALITY_PALETTE, severity=severity, message="m")

    def test_verdicts(self):
        assert ValidationReport.build([]).verdict == "PASS: no issues found."
        assert ValidationReport.build([self._issue(Severity.WARNING)]).verdict == "PASS: 1 advisory warning(s)."

        report = ValidationReport.build([self._issue(Severity.ERROR), self._issue(Severity.INFO)])
        assert not report.passed
        assert report.summary == {"error": 1, "warning": 0, "info": 1}
        assert report.verdict.startswith("FAIL: 1 error(s)")

    def test_category(self):
        issue = ValidationIssue(code=IssueCode.CONNECT_ROOF_GAP, severity=Severity.ERROR, message="m")
        assert issue.category.value == "connectivity"
