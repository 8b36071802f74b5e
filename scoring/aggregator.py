"""Combine structural quality and intent fidelity into the final score.

Typical usage::

    from scoring import evaluate
    result = evaluate(graph, "Create a gear with 20 teeth", measurements)
    result.overall, result.breakdown
"""

from __future__ import annotations

import dataclasses
import logging
import math
from typing import Any, List, Mapping, Optional, Union

from .models import DesignGraph, GeometryMeasurements, measurements_available
from .outcome import clamp_unit, count_defaulted
from .quality import INVALID_TOPOLOGY_NOTE, ZERO_VOLUME_NOTE, QualityReport, score_quality
from .spec_match import SpecMatchReport, score_spec_match
from .target_spec import TargetSpec, extract_target_spec

LOGGER = logging.getLogger(__name__)

SPEC_MATCH_SHARE = 0.7
QUALITY_SHARE = 0.3
INVALID_TOPOLOGY_GATE = 0.4
ZERO_VOLUME_GATE = 0.3
ISSUE_THRESHOLD = 0.6


def round_score(value: float) -> float:
    """Clamp into [0, 1] and round half-up to two decimals."""
    return math.floor(clamp_unit(value) * 100 + 0.5) / 100


def quality_gate(measurements: Optional[GeometryMeasurements]) -> float:
    """Multiplier capping the overall score for broken shapes.

    The validity check runs first, so a shape that is both invalid and empty is
    gated at 0.4 rather than 0.3.
    """
    if not measurements_available(measurements):
        return 1.0
    if not measurements.is_valid:
        return INVALID_TOPOLOGY_GATE
    if measurements.volume <= 0:
        return ZERO_VOLUME_GATE
    return 1.0


def gate_notes(measurements: Optional[GeometryMeasurements]) -> List[str]:
    if not measurements_available(measurements):
        return []
    notes = []
    if not measurements.is_valid:
        notes.append(INVALID_TOPOLOGY_NOTE)
    if measurements.volume <= 0:
        notes.append(ZERO_VOLUME_NOTE)
    return notes



def _extend_unique(breakdown: List[str], issues: List[str]) -> None:
    for issue in issues:
        if issue not in breakdown:
            breakdown.append(issue)

@dataclasses.dataclass(frozen=True)
class EvaluationDetails:
    """Intermediate results kept for auditing a score."""

    target_spec: TargetSpec
    quality: QualityReport
    spec_match: SpecMatchReport
    gate: float

    @property
    def defaulted_axes(self) -> int:
        return count_defaulted(
            list(self.quality.axes.values()) + list(self.spec_match.axes.values())
        )

    def as_dict(self) -> dict:
        return {
            "target_spec": self.target_spec.as_dict(),
            "quality": self.quality.as_dict(),
            "spec_match": self.spec_match.as_dict(),
            "gate": self.gate,
            "defaulted_axes": self.defaulted_axes,
        }


@dataclasses.dataclass(frozen=True)
class ScoreResult:
    """Final auditable score.

    ``parameter_range`` carries the overall structural quality; the name is kept
    for compatibility with existing consumers.
    """

    overall: float
    proportion: float
    symmetry: float
    feature_count: float
    parameter_range: float
    breakdown: List[str] = dataclasses.field(default_factory=list)
    details: Optional[EvaluationDetails] = None

    def sub_scores(self) -> dict:
        return {
            "proportion": self.proportion,
            "symmetry": self.symmetry,
            "featureCount": self.feature_count,
            "parameterRange": self.parameter_range,
        }

    def as_dict(self, include_details: bool = False) -> dict:
        """Return a JSON-serialisable payload using the wire field names."""
        payload = {"overall": self.overall, **self.sub_scores(), "breakdown": list(self.breakdown)}
        if include_details and self.details is not None:
            payload["details"] = self.details.as_dict()
        return payload


def aggregate(
    quality: QualityReport,
    spec_match: SpecMatchReport,
    measurements: Optional[GeometryMeasurements] = None,
    target_spec: Optional[TargetSpec] = None,
) -> ScoreResult:
    gate = quality_gate(measurements)
    overall = gate * (SPEC_MATCH_SHARE * spec_match.overall + QUALITY_SHARE * quality.overall)

    breakdown = gate_notes(measurements)
    if quality.overall < ISSUE_THRESHOLD:
        _extend_unique(breakdown, quality.issues)
    if spec_match.overall < ISSUE_THRESHOLD:
        _extend_unique(breakdown, spec_match.issues)

    details = None
    if target_spec is not None:
        details = EvaluationDetails(
            target_spec=target_spec,
            quality=quality,
            spec_match=spec_match,
            gate=gate,
        )
    return ScoreResult(
        overall=round_score(overall),
        proportion=round_score(spec_match.proportions.value),
        symmetry=round_score(spec_match.symmetry.value),
        feature_count=round_score(spec_match.features.value),
        parameter_range=round_score(quality.overall),
        breakdown=breakdown,
        details=details,
    )


def _as_graph(graph: Union[DesignGraph, Mapping[str, Any]]) -> DesignGraph:
    if isinstance(graph, DesignGraph):
        return graph
    return DesignGraph.model_validate(graph)


def _as_measurements(
    measurements: Union[GeometryMeasurements, Mapping[str, Any], None],
) -> Optional[GeometryMeasurements]:
    if measurements is None or isinstance(measurements, GeometryMeasurements):
        return measurements
    return GeometryMeasurements.model_validate(measurements)


def evaluate(
    graph: Union[DesignGraph, Mapping[str, Any]],
    prompt: str,
    measurements: Union[GeometryMeasurements, Mapping[str, Any], None] = None,
) -> ScoreResult:
    """Score a generated design against its prompt.

    Plain mappings are validated into the input models first; everything after
    that is a pure computation that never raises for well-formed inputs.
    """
    design_graph = _as_graph(graph)
    geometry = _as_measurements(measurements)
    prompt = prompt or ""

    target_spec = extract_target_spec(prompt, design_graph)
    quality = score_quality(geometry)
    spec_match = score_spec_match(target_spec, design_graph, prompt, geometry)
    result = aggregate(quality, spec_match, geometry, target_spec=target_spec)
    LOGGER.debug(
        "Evaluated design %s: overall=%.2f quality=%.3f spec_match=%.3f gate=%.1f",
        design_graph.design_id or "<anonymous>",
        result.overall,
        quality.overall,
        spec_match.overall,
        quality_gate(geometry),
    )
    return result
