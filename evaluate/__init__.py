"""
Batch scoring of generated designs with JSONL, JSON and HTML artefacts.

Typical usage::

    from evaluate.evaluator import Evaluator
    evaluator = Evaluator.from_paths(
        input_file="data/designs.jsonl",
        output_dir="outputs/eval",
    )
    evaluator.run()
"""

from .evaluator import (
    DesignRecord,
    EvaluationConfig,
    EvaluationResult,
    EvaluationSampleResult,
    Evaluator,
)

__all__ = [
    "DesignRecord",
    "EvaluationConfig",
    "EvaluationResult",
    "EvaluationSampleResult",
    "Evaluator",
]
