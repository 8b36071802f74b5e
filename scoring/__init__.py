"""
Evaluation engine scoring a generated CAD design against its prompt.

Typical usage::

    from scoring import evaluate
    result = evaluate(graph, "A ribbed vase 200mm tall", measurements)
    result.overall
"""

from .aggregator import EvaluationDetails, ScoreResult, aggregate, evaluate, quality_gate
from .display import score_bg_color, score_color, score_label
from .models import DesignGraph, DesignNode, DesignParameter, GeometryMeasurements
from .outcome import AxisScore, Computed, Defaulted
from .quality import QualityReport, score_quality
from .spec_match import SpecMatchReport, score_spec_match
from .target_spec import FeatureTarget, SymmetryIntent, TargetSpec, extract_target_spec

__all__ = [
    "AxisScore",
    "Computed",
    "Defaulted",
    "DesignGraph",
    "DesignNode",
    "DesignParameter",
    "EvaluationDetails",
    "FeatureTarget",
    "GeometryMeasurements",
    "QualityReport",
    "ScoreResult",
    "SpecMatchReport",
    "SymmetryIntent",
    "TargetSpec",
    "aggregate",
    "evaluate",
    "extract_target_spec",
    "quality_gate",
    "score_bg_color",
    "score_color",
    "score_label",
    "score_quality",
    "score_spec_match",
]
