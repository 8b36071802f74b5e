"""How well the produced geometry matches what the prompt asked for.

Each axis scores from the geometry measurements when they are available and
falls back to a proxy read off the design graph when they are not.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import re
from typing import Callable, Dict, List, Optional, Pattern, Tuple

from .models import DesignGraph, GeometryMeasurements, is_count_unit, is_length_unit, measurements_available
from .outcome import AxisScore, Computed, Defaulted
from .target_spec import TargetSpec, count_feature_for_key

LOGGER = logging.getLogger(__name__)

SPEC_MATCH_WEIGHTS: Dict[str, float] = {
    "proportions": 0.30,
    "symmetry": 0.20,
    "features": 0.30,
    "param_bounds": 0.20,
}

RATIO_SHARPNESS = 3.0
PROPORTION_FLOOR = 0.3
NO_DIMENSIONS_DEFAULT = 0.75
DEGENERATE_DIMENSIONS_DEFAULT = 0.6
NO_PARAMETERS_DEFAULT = 0.75
NEUTRAL_SYMMETRY = 0.7
COUNT_TOLERANCE = 2
COUNT_BONUS = 0.05
RICHNESS_TARGET = 5


@dataclasses.dataclass(frozen=True)
class RatioRange:
    """Ideal aspect-ratio band for a family of shapes."""

    name: str
    low: float
    high: float
    keywords: Optional[Pattern[str]] = None


# Evaluated in order, first keyword match wins.
RATIO_RANGES: Tuple[RatioRange, ...] = (
    RatioRange("bracket", 0.3, 4.0, re.compile(r"bracket|mount|frame", re.IGNORECASE)),
    RatioRange("tall", 1.5, 8.0, re.compile(r"vase|bottle|column|tower", re.IGNORECASE)),
    RatioRange("flat", 0.05, 1.5, re.compile(r"gear|disc|plate|washer|flange", re.IGNORECASE)),
)
GENERAL_RATIO_RANGE = RatioRange("general", 0.1, 6.0)

_HEIGHT_PARAM = re.compile(r"height|thickness|depth|tall", re.IGNORECASE)
_WIDTH_PARAM = re.compile(r"width|diameter|radius|length", re.IGNORECASE)
_RADIUS_PARAM = re.compile(r"radius", re.IGNORECASE)
_INNER_PARAM = re.compile(r"bore|hole|inner", re.IGNORECASE)


@dataclasses.dataclass
class SpecMatchReport:
    proportions: AxisScore
    symmetry: AxisScore
    features: AxisScore
    param_bounds: AxisScore
    issues: List[str] = dataclasses.field(default_factory=list)

    @property
    def axes(self) -> Dict[str, AxisScore]:
        return {name: getattr(self, name) for name in SPEC_MATCH_WEIGHTS}

    @property
    def overall(self) -> float:
        return sum(weight * getattr(self, name).value for name, weight in SPEC_MATCH_WEIGHTS.items())

    def as_dict(self) -> dict:
        return {
            "overall": self.overall,
            "axes": {name: axis.as_dict() for name, axis in self.axes.items()},
            "issues": list(self.issues),
        }


def ratio_similarity(measured: float, target: float) -> float:
    """Gaussian similarity in log space: ``exp(-3 * ln(measured / target) ** 2)``.

    Deviations are judged multiplicatively, so ``r`` and ``1 / r`` score the same
    against a target of 1.0.
    """
    if measured <= 0 or target <= 0:
        return 0.0
    return math.exp(-RATIO_SHARPNESS * math.log(measured / target) ** 2)


def classify_ratio_range(prompt: str) -> RatioRange:
    for ratio_range in RATIO_RANGES:
        if ratio_range.keywords is not None and ratio_range.keywords.search(prompt):
            return ratio_range
    return GENERAL_RATIO_RANGE


def range_score(ratio: float, ratio_range: RatioRange) -> float:
    if ratio_range.low <= ratio <= ratio_range.high:
        return 1.0
    anchor = ratio_range.low if ratio < ratio_range.low else ratio_range.high
    return max(PROPORTION_FLOOR, ratio_similarity(ratio, anchor))


def _range_issue(ratio: float, ratio_range: RatioRange) -> List[str]:
    if ratio_range.low <= ratio <= ratio_range.high:
        return []
    return [
        f"Proportion ratio {ratio:.2f} is outside the expected "
        f"{ratio_range.low:g}-{ratio_range.high:g} range for {ratio_range.name} shapes"
    ]


# -- Proportions -----------------------------------------------------------------


def _proportions_from_geometry(
    spec: TargetSpec, prompt: str, m: GeometryMeasurements
) -> Tuple[AxisScore, List[str]]:
    dims = m.nontrivial_dimensions()
    if len(dims) < 2:
        return Defaulted(DEGENERATE_DIMENSIONS_DEFAULT, "fewer than two non-trivial bounding-box dimensions"), []
    ratio = dims[0] / dims[1]

    target = spec.target_ratio
    if target is not None:
        # The measured ratio is orientation-free, so compare against the target's
        # larger-over-smaller form.
        target = max(target, 1.0 / target)
        score = ratio_similarity(ratio, target)
        issues = []
        if score < 0.6:
            issues.append(f"Measured proportion {ratio:.2f} deviates from the requested {target:.2f}")
        return Computed(score, f"bbox ratio {ratio:.3f} vs target {target:.3f}"), issues

    ratio_range = classify_ratio_range(prompt)
    return (
        Computed(range_score(ratio, ratio_range), f"bbox ratio {ratio:.3f} in {ratio_range.name} range"),
        _range_issue(ratio, ratio_range),
    )


def _largest_parameter(spec: TargetSpec, pattern: Pattern[str], exclude: Optional[Pattern[str]] = None) -> Optional[float]:
    values = []
    for key, param in spec.parameters.items():
        if not is_length_unit(param.unit) or _INNER_PARAM.search(key):
            continue
        if exclude is not None and exclude.search(key):
            continue
        if pattern.search(key):
            scale = 2.0 if _RADIUS_PARAM.search(key) else 1.0
            values.append(param.value * scale)
    return max(values) if values else None


def _proportions_from_graph(spec: TargetSpec, prompt: str) -> Tuple[AxisScore, List[str]]:
    height = _largest_parameter(spec, _HEIGHT_PARAM)
    width = _largest_parameter(spec, _WIDTH_PARAM, exclude=_HEIGHT_PARAM)
    if height is None or width is None:
        return Defaulted(NO_DIMENSIONS_DEFAULT, "no height-like and width-like parameters"), []
    if height <= 0 or width <= 0:
        return Defaulted(DEGENERATE_DIMENSIONS_DEFAULT, "zero-valued dimension parameter"), []
    ratio = height / width
    ratio_range = classify_ratio_range(prompt)
    return (
        Computed(range_score(ratio, ratio_range), f"parameter ratio {ratio:.3f} in {ratio_range.name} range"),
        _range_issue(ratio, ratio_range),
    )


# -- Symmetry --------------------------------------------------------------------


def symmetry_evidence(m: GeometryMeasurements) -> float:
    evidence = 0.4
    if m.has_radial_faces():
        evidence += 0.25
    if m.symmetry_hint > 0.9:
        evidence += 0.2
    elif m.symmetry_hint > 0.7:
        evidence += 0.1
    if m.compactness > 0.5:
        evidence += 0.1
    return evidence


def _blend_symmetry(spec: TargetSpec, evidence: float, source: str) -> Tuple[AxisScore, List[str]]:
    intent = spec.symmetry
    if not intent.desired:
        return Computed(NEUTRAL_SYMMETRY + 0.3 * evidence, f"{source} evidence {evidence:.2f}, not requested"), []
    score = evidence * intent.confidence + NEUTRAL_SYMMETRY * (1.0 - intent.confidence)
    issues = []
    if evidence < 0.5 and intent.confidence > 0.7:
        issues.append("Symmetry was requested but the shape shows little radial or centred structure")
    return Computed(score, f"{source} evidence {evidence:.2f}, confidence {intent.confidence:.2f}"), issues


# -- Features --------------------------------------------------------------------

_FeatureCheck = Callable[[GeometryMeasurements, TargetSpec], Tuple[float, str]]


def _check_cylindrical(m: GeometryMeasurements, spec: TargetSpec) -> Tuple[float, str]:
    cylinders = m.face_type_count("cylindrical")
    return (1.0 if cylinders >= 2 else 0.0), f"{cylinders} cylindrical faces"


def _check_ribs(m: GeometryMeasurements, spec: TargetSpec) -> Tuple[float, str]:
    planar = m.face_type_count("planar")
    if m.face_count > 20 and planar > 10:
        return 1.0, f"{m.face_count} faces, {planar} planar"
    if spec.texture == "ribbed" and m.face_count > 15:
        return 1.0, f"{m.face_count} faces with ribbed texture"
    return 0.0, f"{m.face_count} faces, {planar} planar"


def _check_face_count(threshold: int) -> _FeatureCheck:
    def _check(m: GeometryMeasurements, spec: TargetSpec) -> Tuple[float, str]:
        return (1.0 if m.face_count > threshold else 0.0), f"{m.face_count} faces (needs > {threshold})"

    return _check


def _check_fillet(m: GeometryMeasurements, spec: TargetSpec) -> Tuple[float, str]:
    blended = m.face_type_count("toroidal") + m.face_type_count("freeform")
    if blended > 0:
        return 1.0, f"{blended} toroidal/free-form faces"
    circles = m.edge_type_count("circle")
    if circles > 0:
        return 0.5, f"{circles} circular edges only"
    return 0.0, "no blend faces or circular edges"


def _check_chamfer(m: GeometryMeasurements, spec: TargetSpec) -> Tuple[float, str]:
    # Chamfer faces are planar and cannot be told apart from other planes.
    planar = m.face_type_count("planar")
    return (0.5 if planar > 8 else 0.0), f"{planar} planar faces"


FEATURE_CHECKS: Dict[str, _FeatureCheck] = {
    "holes": _check_cylindrical,
    "bore": _check_cylindrical,
    "ribs": _check_ribs,
    "teeth": _check_face_count(30),
    "fillet": _check_fillet,
    "chamfer": _check_chamfer,
    "slots": _check_face_count(12),
    "cutout": _check_face_count(12),
    "pattern": _check_face_count(20),
}
UNRECOGNISED_FEATURE_CREDIT = 0.5


def _count_matches_graph(name: str, count: int, graph: DesignGraph) -> bool:
    for key, param in graph.parameters.items():
        if is_count_unit(param.unit) and count_feature_for_key(key) == name:
            if abs(param.value - count) <= COUNT_TOLERANCE:
                return True
    return False


def _features_from_geometry(
    spec: TargetSpec, graph: DesignGraph, m: GeometryMeasurements
) -> Tuple[AxisScore, List[str]]:
    if not spec.features:
        score = 0.5 + math.log2(max(m.face_count, 1)) / 12 + 0.05 * m.face_type_variety()
        return (
            Computed(min(1.0, score), f"general complexity: {m.face_count} faces, {m.face_type_variety()} face types"),
            [],
        )

    issues: List[str] = []
    credit = 0.0
    evidence: List[str] = []
    for feature in spec.features:
        check = FEATURE_CHECKS.get(feature.name)
        if check is None:
            matched, detail = UNRECOGNISED_FEATURE_CREDIT, "no geometric check"
        else:
            matched, detail = check(m, spec)
        credit += matched
        evidence.append(f"{feature.name}={matched:g} ({detail})")
        if matched == 0.0:
            issues.append(f"Requested feature '{feature.name}' is not evident in the geometry ({detail})")

    score = min(1.0, credit / len(spec.features))
    for feature in spec.features:
        if feature.count is not None and _count_matches_graph(feature.name, feature.count, graph):
            score = min(1.0, score + COUNT_BONUS)
            evidence.append(f"{feature.name} count {feature.count} matches graph")
    return Computed(score, "; ".join(evidence)), issues


def _features_from_graph(spec: TargetSpec, graph: DesignGraph) -> Tuple[AxisScore, List[str]]:
    feature_count = len(spec.features)
    node_count = len(graph.nodes)
    expected = 2 * (feature_count + 1)
    coverage = min(node_count / expected, 1.0)
    floor = 0.5 if feature_count == 0 else 0.3
    score = floor + (1.0 - floor) * coverage
    issues = []
    if feature_count and coverage < 0.5:
        issues.append(
            f"Design graph has {node_count} nodes for {feature_count} requested features; "
            "some features may be missing"
        )
    return Computed(score, f"graph proxy: {node_count} nodes for {feature_count} features"), issues


# -- Parameter bounds ------------------------------------------------------------


def _describe_bounds(low: Optional[float], high: Optional[float]) -> str:
    parts = []
    if low is not None:
        parts.append(f"min {low:g}")
    if high is not None:
        parts.append(f"max {high:g}")
    return ", ".join(parts)


def _param_bounds(spec: TargetSpec) -> Tuple[AxisScore, List[str]]:
    params = spec.parameters
    if not params:
        return Defaulted(NO_PARAMETERS_DEFAULT, "no parameters to check"), []
    issues = []
    in_range = 0
    for key, param in params.items():
        if param.in_bounds():
            in_range += 1
        else:
            issues.append(
                f"Parameter '{key}' = {param.value:g} is outside its bounds "
                f"({_describe_bounds(param.min, param.max)})"
            )
    bounds_ratio = in_range / len(params)
    richness = min(len(params) / RICHNESS_TARGET, 1.0)
    score = 0.75 * bounds_ratio + 0.25 * richness
    return Computed(score, f"{in_range}/{len(params)} parameters in range, richness {richness:.2f}"), issues


def score_spec_match(
    spec: TargetSpec,
    graph: DesignGraph,
    prompt: str,
    measurements: Optional[GeometryMeasurements] = None,
) -> SpecMatchReport:
    """Score intent fidelity of the design against ``spec``."""
    prompt = prompt or ""
    issues: List[str] = []

    if measurements_available(measurements):
        proportions, found = _proportions_from_geometry(spec, prompt, measurements)
        issues.extend(found)
        symmetry, found = _blend_symmetry(spec, symmetry_evidence(measurements), "geometry")
        issues.extend(found)
        features, found = _features_from_geometry(spec, graph, measurements)
        issues.extend(found)
    else:
        proportions, found = _proportions_from_graph(spec, prompt)
        issues.extend(found)
        radial = 1.0 if graph.has_radial_primitive() else 0.0
        symmetry, found = _blend_symmetry(spec, radial, "graph")
        issues.extend(found)
        features, found = _features_from_graph(spec, graph)
        issues.extend(found)

    param_bounds, found = _param_bounds(spec)
    issues.extend(found)

    report = SpecMatchReport(
        proportions=proportions,
        symmetry=symmetry,
        features=features,
        param_bounds=param_bounds,
        issues=issues,
    )
    LOGGER.debug(
        "SpecMatch overall=%.3f axes=%s",
        report.overall,
        {name: axis.value for name, axis in report.axes.items()},
    )
    return report
