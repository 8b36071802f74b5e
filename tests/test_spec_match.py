import math

import pytest

from scoring.models import DesignGraph, GeometryMeasurements
from scoring.outcome import Computed, Defaulted
from scoring.spec_match import (
    FEATURE_CHECKS,
    classify_ratio_range,
    range_score,
    ratio_similarity,
    score_spec_match,
    symmetry_evidence,
)
from scoring.target_spec import TargetSpec, extract_target_spec


def _build_graph(parameters=None, nodes=None):
    return DesignGraph.model_validate({"parameters": parameters or {}, "nodes": nodes or {}})


def _build_measurements(**overrides):
    payload = {
        "dimensions": (50.0, 50.0, 100.0),
        "volume": 1000.0,
        "surface_area": 500.0,
        "face_count": 8,
        "face_types": {"PLANE": 8},
        "is_valid": True,
    }
    payload.update(overrides)
    return GeometryMeasurements.model_validate(payload)


def _score(prompt, graph=None, measurements=None):
    graph = graph or _build_graph()
    spec = extract_target_spec(prompt, graph)
    return score_spec_match(spec, graph, prompt, measurements)


def test_ratio_similarity_is_reciprocal_symmetric():
    assert ratio_similarity(2.0, 2.0) == pytest.approx(1.0)
    assert ratio_similarity(2.0, 1.0) == pytest.approx(ratio_similarity(0.5, 1.0))
    assert ratio_similarity(2.0, 1.0) == pytest.approx(math.exp(-3 * math.log(2) ** 2))
    assert ratio_similarity(0.0, 1.0) == 0.0
    assert ratio_similarity(1.0, -1.0) == 0.0


def test_ratio_ranges_are_checked_in_order():
    assert classify_ratio_range("a mounting bracket for a vase").name == "bracket"
    assert classify_ratio_range("a tall vase").name == "tall"
    assert classify_ratio_range("a spur gear").name == "flat"
    assert classify_ratio_range("a box").name == "general"


def test_range_score_floors_far_outliers():
    tall = classify_ratio_range("vase")

    assert range_score(2.0, tall) == 1.0
    assert range_score(100.0, tall) == 0.3
    assert 0.3 < range_score(10.0, tall) < 1.0


def test_geometry_proportions_against_target_ratio():
    report = _score(
        "a vase 200mm tall and 100mm wide",
        measurements=_build_measurements(dimensions=(100.0, 100.0, 200.0)),
    )

    assert isinstance(report.proportions, Computed)
    assert report.proportions.value == pytest.approx(1.0)


def test_geometry_proportions_against_shape_range():
    in_range = _score("a vase", measurements=_build_measurements(dimensions=(50.0, 50.0, 200.0)))
    out_of_range = _score("a gear", measurements=_build_measurements(dimensions=(10.0, 10.0, 200.0)))

    assert in_range.proportions.value == 1.0
    assert out_of_range.proportions.value < 1.0
    assert any("outside the expected" in issue for issue in out_of_range.issues)


def test_degenerate_bounding_box_defaults_proportions():
    report = _score("a vase", measurements=_build_measurements(dimensions=(10.0, 0.0, 0.0)))

    assert isinstance(report.proportions, Defaulted)
    assert report.proportions.value == 0.6


def test_graph_proportions():
    graph = _build_graph(
        {
            "height": {"value": 200, "unit": "mm"},
            "diameter": {"value": 80, "unit": "mm"},
        }
    )
    zero = _build_graph(
        {
            "height": {"value": 0, "unit": "mm"},
            "diameter": {"value": 80, "unit": "mm"},
        }
    )

    assert _score("a vase", graph).proportions.value == 1.0
    assert _score("a vase").proportions == Defaulted(0.75, "no height-like and width-like parameters")
    assert _score("a vase", zero).proportions.value == 0.6


def test_graph_symmetry_uses_radial_primitives():
    radial = _build_graph(nodes={"body": {"op": "cylinder"}})

    requested = _score("a symmetric knob", radial)
    missing = _score("a symmetric knob")
    neutral = _score("a block")

    assert requested.symmetry.value == pytest.approx(0.95 + 0.7 * 0.05)
    assert missing.symmetry.value == pytest.approx(0.7 * 0.05)
    assert any("Symmetry was requested" in issue for issue in missing.issues)
    assert neutral.symmetry.value == pytest.approx(0.7)


def test_symmetry_evidence_from_geometry():
    m = _build_measurements(
        face_types={"CYLINDER": 2, "PLANE": 2}, symmetry_hint=0.95, compactness=0.6
    )

    assert symmetry_evidence(m) == pytest.approx(0.95)
    assert symmetry_evidence(_build_measurements()) == pytest.approx(0.4)


def test_feature_checks_from_geometry():
    m = _build_measurements(face_count=45, face_types={"CYLINDER": 3})

    report = _score("Create a gear with 20 teeth", measurements=m)

    assert report.features.value == pytest.approx(1.0)


def test_partial_feature_credit_and_count_bonus():
    m = _build_measurements(face_types={"CYLINDER": 2, "PLANE": 4})
    graph = _build_graph({"hole_count": {"value": 4, "unit": ""}})

    without_graph = _score("a plate with 4 holes and a chamfer", measurements=m)
    with_graph = _score("a plate with 4 holes and a chamfer", graph, m)

    assert without_graph.features.value == pytest.approx(0.5)
    assert with_graph.features.value == pytest.approx(0.55)
    assert any("'chamfer'" in issue for issue in without_graph.issues)


def test_general_complexity_without_requested_features():
    m = _build_measurements(face_count=8, face_types={"PLANE": 8})

    report = _score("a block", measurements=m)

    assert report.features.value == pytest.approx(0.5 + 3 / 12 + 0.05)


def test_graph_feature_proxy():
    empty = _score("")
    covered = _score(
        "a plate with holes",
        _build_graph(nodes={"a": {"op": "box"}, "b": {"op": "cylinder"}, "c": {"op": "difference"}, "d": {"op": "fillet"}}),
    )
    sparse = _score("a plate with holes and a chamfer", _build_graph(nodes={"a": {"op": "box"}}))

    assert empty.features.value == pytest.approx(0.5)
    assert covered.features.value == pytest.approx(1.0)
    assert sparse.features.value == pytest.approx(0.3 + 0.7 / 6)
    assert any("some features may be missing" in issue for issue in sparse.issues)


def test_param_bounds_blend_ratio_and_richness():
    graph = _build_graph(
        {
            "height": {"value": 150, "unit": "mm", "min": 10, "max": 100},
            "width": {"value": 50, "unit": "mm", "min": 10, "max": 100},
        }
    )

    report = _score("a block", graph)

    assert report.param_bounds.value == pytest.approx(0.75 * 0.5 + 0.25 * 0.4)
    assert any("'height'" in issue for issue in report.issues)
    assert _score("a block").param_bounds == Defaulted(0.75, "no parameters to check")


def test_measurement_error_falls_back_to_graph_proxy():
    report = _score("a block", measurements=GeometryMeasurements(error="no shape"))

    assert report.proportions.value == 0.75
    assert "graph proxy" in report.features.evidence


def test_spec_match_axes_are_bounded():
    m = _build_measurements(dimensions=(1.0, 1.0, 900.0), face_count=900)

    report = _score("a symmetric ribbed vase with 40 teeth, holes, slots and fillets", measurements=m)

    for axis in report.axes.values():
        assert 0.0 <= axis.value <= 1.0
    assert 0.0 <= report.overall <= 1.0


@pytest.mark.parametrize(
    "prompt, overrides, expected",
    [
        ("a plate with holes", {"face_types": {"CYLINDER": 2}}, 1.0),
        ("a plate with holes", {"face_types": {"CYLINDER": 1}}, 0.0),
        ("a bored hub", {"face_types": {"CYLINDER": 2}}, 1.0),
        ("a gear with teeth", {"face_count": 31}, 1.0),
        ("a gear with teeth", {"face_count": 30}, 0.0),
        ("a vase with ribs", {"face_count": 16}, 1.0),
        ("a vase with ribs", {"face_count": 15}, 0.0),
        ("a block with fillets", {"face_types": {"TORUS": 1, "PLANE": 6}}, 1.0),
        ("a block with fillets", {"face_types": {"BSPLINE": 2}}, 1.0),
        ("a block with fillets", {"edge_types": {"CIRCLE": 4, "LINE": 8}}, 0.5),
        ("a block with fillets", {"edge_types": {"LINE": 12}}, 0.0),
        ("a block with a chamfer", {"face_types": {"PLANE": 9}}, 0.5),
        ("a block with a chamfer", {"face_types": {"PLANE": 8}}, 0.0),
        ("a plate with slots", {"face_count": 13}, 1.0),
        ("a plate with slots", {"face_count": 12}, 0.0),
        ("a panel with a cutout", {"face_count": 13}, 1.0),
        ("a panel with a cutout", {"face_count": 12}, 0.0),
        ("a patterned panel", {"face_count": 21}, 1.0),
        ("a patterned panel", {"face_count": 20}, 0.0),
    ],
)
def test_feature_check_thresholds(prompt, overrides, expected):
    report = _score(prompt, measurements=_build_measurements(**overrides))

    assert report.features.value == pytest.approx(expected)
    if expected == 0.0:
        assert any("is not evident in the geometry" in issue for issue in report.issues)


@pytest.mark.parametrize(
    "face_count, planar, expected",
    [(21, 11, 1.0), (21, 10, 0.0), (20, 11, 0.0)],
)
def test_rib_check_without_ribbed_texture(face_count, planar, expected):
    m = _build_measurements(face_count=face_count, face_types={"PLANE": planar})

    credit, _ = FEATURE_CHECKS["ribs"](m, TargetSpec(texture="smooth"))

    assert credit == expected


def test_measured_symmetry_blends_evidence_with_confidence():
    radial = _build_measurements(face_types={"CYLINDER": 2, "PLANE": 2})

    requested = _score("a symmetric block", measurements=_build_measurements())
    implied = _score("a vase", measurements=radial)

    assert requested.symmetry.value == pytest.approx(0.4 * 0.95 + 0.7 * 0.05)
    assert any("Symmetry was requested" in issue for issue in requested.issues)
    assert implied.symmetry.value == pytest.approx(0.65 * 0.75 + 0.7 * 0.25)
    assert not any("Symmetry was requested" in issue for issue in implied.issues)


def test_measured_symmetry_issue_needs_evidence_below_half():
    at_half = _build_measurements(symmetry_hint=0.8)
    below_half = _build_measurements(symmetry_hint=0.7)

    assert symmetry_evidence(at_half) == pytest.approx(0.5)
    assert symmetry_evidence(below_half) == pytest.approx(0.4)
    assert not any(
        "Symmetry was requested" in issue
        for issue in _score("a symmetric block", measurements=at_half).issues
    )
    assert any(
        "Symmetry was requested" in issue
        for issue in _score("a vase", measurements=below_half).issues
    )


def test_symmetry_evidence_thresholds_are_strict():
    assert symmetry_evidence(_build_measurements(symmetry_hint=0.9)) == pytest.approx(0.5)
    assert symmetry_evidence(_build_measurements(symmetry_hint=0.91)) == pytest.approx(0.6)
    assert symmetry_evidence(_build_measurements(compactness=0.5)) == pytest.approx(0.4)
    assert symmetry_evidence(_build_measurements(compactness=0.51)) == pytest.approx(0.5)


def test_measured_symmetry_is_never_penalised_when_not_requested():
    strong = _build_measurements(
        face_types={"CYLINDER": 2, "PLANE": 2}, symmetry_hint=0.95, compactness=0.6
    )

    weak = _score("a block", measurements=_build_measurements())
    rich = _score("a block", measurements=strong)

    assert weak.symmetry.value == pytest.approx(0.7 + 0.3 * 0.4)
    assert rich.symmetry.value == pytest.approx(0.7 + 0.3 * 0.95)
    assert not any("Symmetry was requested" in issue for issue in weak.issues)
