"""Spec-agnostic structural quality of a compiled shape."""

from __future__ import annotations

import dataclasses
import logging
from typing import Dict, List, Optional, Tuple

from .models import GeometryMeasurements, measurements_available
from .outcome import AxisScore, Computed, Defaulted

LOGGER = logging.getLogger(__name__)

QUALITY_WEIGHTS: Dict[str, float] = {
    "validity": 0.30,
    "manifold": 0.25,
    "component_count": 0.15,
    "slenderness": 0.15,
    "complexity_budget": 0.15,
}
NEUTRAL_QUALITY = 0.65
NO_MEASUREMENTS_ISSUE = "No measurements available; structural quality not computed"
INVALID_TOPOLOGY_NOTE = "Topology is invalid: model may have geometric errors"
ZERO_VOLUME_NOTE = "Warning: zero volume detected, shape may be degenerate"

# (aspect ratio threshold, score), strictest first.
SLENDERNESS_STEPS: Tuple[Tuple[float, float], ...] = ((100.0, 0.2), (50.0, 0.4), (20.0, 0.7))
SHEET_COMPACTNESS = 0.01
SHEET_CAP = 0.5
FACE_BUDGET_STEPS: Tuple[Tuple[int, float], ...] = ((500, 0.6), (200, 0.8))
MIN_SOLID_FACES = 4

_AxisResult = Tuple[AxisScore, List[str]]


@dataclasses.dataclass
class QualityReport:
    validity: AxisScore
    manifold: AxisScore
    component_count: AxisScore
    slenderness: AxisScore
    complexity_budget: AxisScore
    issues: List[str] = dataclasses.field(default_factory=list)

    @property
    def axes(self) -> Dict[str, AxisScore]:
        return {name: getattr(self, name) for name in QUALITY_WEIGHTS}

    @property
    def overall(self) -> float:
        return sum(weight * getattr(self, name).value for name, weight in QUALITY_WEIGHTS.items())

    def as_dict(self) -> dict:
        return {
            "overall": self.overall,
            "axes": {name: axis.as_dict() for name, axis in self.axes.items()},
            "issues": list(self.issues),
        }


def _validity(m: GeometryMeasurements) -> _AxisResult:
    if not m.is_valid:
        return Computed(0.0, "kernel reports is_valid=false"), [INVALID_TOPOLOGY_NOTE]
    return Computed(1.0, "kernel reports a valid solid"), []


def _manifold(m: GeometryMeasurements) -> _AxisResult:
    if m.volume <= 0:
        return Computed(0.0, f"volume={m.volume}"), [ZERO_VOLUME_NOTE]
    if m.surface_area <= 0:
        return Computed(0.2, f"surface_area={m.surface_area}"), [
            "No surface area reported for a shape with volume"
        ]
    if m.face_count < MIN_SOLID_FACES:
        return Computed(0.3, f"face_count={m.face_count}"), [
            f"Only {m.face_count} faces: too few to bound a closed solid"
        ]
    return Computed(1.0, f"volume={m.volume}, surface_area={m.surface_area}, faces={m.face_count}"), []


def _component_count(m: GeometryMeasurements) -> _AxisResult:
    if m.vertex_count == 0 and m.edge_count == 0:
        return Defaulted(0.8, "vertex and edge counts unavailable"), []
    chi = m.euler_characteristic()
    evidence = f"V-E+F={chi}"
    if chi == 2:
        return Computed(1.0, evidence), []
    if chi > 2:
        return Computed(0.7, evidence), [
            f"Euler characteristic {chi} > 2: likely several disconnected solids"
        ]
    return Computed(0.8, evidence), [
        f"Euler characteristic {chi} < 2: through-holes or handles present"
    ]


def _slenderness(m: GeometryMeasurements) -> _AxisResult:
    aspect = m.effective_aspect_ratio()
    score = 1.0
    issues: List[str] = []
    for threshold, demoted in SLENDERNESS_STEPS:
        if aspect > threshold:
            score = demoted
            issues.append(f"Aspect ratio {aspect:.1f} exceeds {threshold:g}: part is very slender")
            break
    if m.compactness < SHEET_COMPACTNESS and m.volume > 0:
        score = min(score, SHEET_CAP)
        issues.append(f"Compactness {m.compactness:.3f}: shape is thin or sheet-like")
    return Computed(score, f"aspect_ratio={aspect:.2f}, compactness={m.compactness:.3f}"), issues


def _complexity_budget(m: GeometryMeasurements) -> _AxisResult:
    evidence = f"face_count={m.face_count}"
    for threshold, demoted in FACE_BUDGET_STEPS:
        if m.face_count > threshold:
            return Computed(demoted, evidence), [
                f"{m.face_count} faces exceeds {threshold}: possible boolean explosion"
            ]
    if m.face_count < MIN_SOLID_FACES and m.volume > 0:
        return Computed(0.4, evidence), [
            f"Only {m.face_count} faces for a solid with volume: under-tessellated"
        ]
    return Computed(1.0, evidence), []


def _neutral_report(reason: str) -> QualityReport:
    neutral = Defaulted(NEUTRAL_QUALITY, reason)
    return QualityReport(
        validity=neutral,
        manifold=neutral,
        component_count=neutral,
        slenderness=neutral,
        complexity_budget=neutral,
        issues=[NO_MEASUREMENTS_ISSUE],
    )


def score_quality(measurements: Optional[GeometryMeasurements]) -> QualityReport:
    """Score structural soundness; absent or failed measurements give a neutral result."""
    if not measurements_available(measurements):
        reason = "measurements absent"
        if measurements is not None:
            reason = f"measurement error: {measurements.error}"
        LOGGER.debug("Quality defaulted (%s)", reason)
        return _neutral_report(reason)

    issues: List[str] = []
    axes: Dict[str, AxisScore] = {}
    for name, scorer in (
        ("validity", _validity),
        ("manifold", _manifold),
        ("component_count", _component_count),
        ("slenderness", _slenderness),
        ("complexity_budget", _complexity_budget),
    ):
        axes[name], axis_issues = scorer(measurements)
        issues.extend(axis_issues)

    report = QualityReport(issues=issues, **axes)
    LOGGER.debug(
        "Quality overall=%.3f axes=%s",
        report.overall,
        {name: axis.value for name, axis in report.axes.items()},
    )
    return report
