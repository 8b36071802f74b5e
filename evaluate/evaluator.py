from __future__ import annotations

import html
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from scoring import DesignGraph, GeometryMeasurements, ScoreResult, evaluate
from scoring.display import score_color, score_label

SUB_SCORE_KEYS = ("proportion", "symmetry", "featureCount", "parameterRange")


class DesignRecord(BaseModel):
    """One line of a batch input file."""

    model_config = ConfigDict(populate_by_name=True)

    sample_id: Optional[str] = None
    prompt: str = ""
    graph: DesignGraph = Field(validation_alias=AliasChoices("graph", "tree"))
    measurements: Optional[GeometryMeasurements] = Field(
        default=None, validation_alias=AliasChoices("measurements", "metrics")
    )


@dataclass
class EvaluationConfig:
    """Runtime configuration for a batch scoring run."""

    input_file: Path
    output_dir: Path
    max_samples: Optional[int] = None
    checkpoint_every: int = 50
    write_html: bool = True

    def __post_init__(self) -> None:
        if self.max_samples is not None and self.max_samples <= 0:
            raise ValueError("max_samples must be a positive integer when provided.")
        if self.checkpoint_every <= 0:
            raise ValueError("checkpoint_every must be a positive integer.")


@dataclass
class EvaluationSampleResult:
    """Score (or loading failure) for a single design record."""

    sample_id: str
    prompt: str
    score: Optional[ScoreResult] = None
    error: Optional[str] = None
    has_measurements: bool = False

    @property
    def succeeded(self) -> bool:
        return self.score is not None

    def as_dict(self) -> dict:
        payload: Dict[str, Any] = {
            "sample_id": self.sample_id,
            "prompt": self.prompt,
            "has_measurements": self.has_measurements,
            "error": self.error,
        }
        if self.score is not None:
            payload["score"] = self.score.as_dict(include_details=True)
        else:
            payload["score"] = None
        return payload


@dataclass
class EvaluationResult:
    """Aggregate over the whole batch."""

    samples: List[EvaluationSampleResult] = field(default_factory=list)

    @property
    def scored_samples(self) -> List[EvaluationSampleResult]:
        return [sample for sample in self.samples if sample.succeeded]

    @property
    def num_failed(self) -> int:
        return len(self.samples) - len(self.scored_samples)

    @property
    def average_score(self) -> float:
        scored = self.scored_samples
        if not scored:
            return 0.0
        return sum(sample.score.overall for sample in scored) / len(scored)

    def axis_means(self) -> Dict[str, float]:
        scored = self.scored_samples
        if not scored:
            return {key: 0.0 for key in SUB_SCORE_KEYS}
        totals = {key: 0.0 for key in SUB_SCORE_KEYS}
        for sample in scored:
            for key, value in sample.score.sub_scores().items():
                totals[key] += value
        return {key: total / len(scored) for key, total in totals.items()}

    def to_jsonl(self) -> str:
        """Return newline-delimited JSON for the run."""
        return "\n".join(json.dumps(sample.as_dict()) for sample in self.samples)


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


class Evaluator:
    """Scores every design record of a JSONL file and writes the artefacts."""

    def __init__(self, *, config: EvaluationConfig) -> None:
        self._config = config
        _ensure_dir(self._config.output_dir)
        self._logger = logging.getLogger(__name__)
        self._state_path = self._config.output_dir / "partial_state.jsonl"

    @classmethod
    def from_paths(
        cls,
        *,
        input_file: str | Path,
        output_dir: str | Path,
        max_samples: Optional[int] = None,
        checkpoint_every: int = 50,
        write_html: bool = True,
    ) -> "Evaluator":
        config = EvaluationConfig(
            input_file=Path(input_file),
            output_dir=Path(output_dir),
            max_samples=max_samples,
            checkpoint_every=checkpoint_every,
            write_html=write_html,
        )
        return cls(config=config)

    def _read_lines(self) -> List[str]:
        if not self._config.input_file.exists():
            raise FileNotFoundError(f"Input file not found: {self._config.input_file}")
        with self._config.input_file.open("r", encoding="utf-8") as handle:
            lines = [line.strip() for line in handle if line.strip()]
        if self._config.max_samples is not None:
            return lines[: self._config.max_samples]
        return lines

    def _score_line(self, index: int, line: str) -> EvaluationSampleResult:
        fallback_id = f"sample_{index:05d}"
        try:
            record = DesignRecord.model_validate_json(line)
        except ValidationError as exc:
            self._logger.exception("Sample %s: invalid design record", fallback_id)
            return EvaluationSampleResult(
                sample_id=fallback_id,
                prompt="",
                error=f"Invalid design record: {exc}",
            )

        sample_id = record.sample_id or fallback_id
        prompt = record.prompt or record.graph.prompt or ""
        start = time.perf_counter()
        score = evaluate(record.graph, prompt, record.measurements)
        self._logger.info(
            "Sample %s: scored %.2f in %.3fs (measurements=%s, breakdown=%d)",
            sample_id,
            score.overall,
            time.perf_counter() - start,
            "yes" if record.measurements is not None else "no",
            len(score.breakdown),
        )
        return EvaluationSampleResult(
            sample_id=sample_id,
            prompt=prompt,
            score=score,
            has_measurements=record.measurements is not None,
        )

    def run(self) -> EvaluationResult:
        # Reset partial state file
        self._state_path.write_text("", encoding="utf-8")

        lines = self._read_lines()
        self._logger.info(
            "Starting batch scoring: %d records from %s",
            len(lines),
            self._config.input_file,
        )
        evaluation = EvaluationResult()

        for index, line in enumerate(lines):
            sample_result = self._score_line(index, line)
            evaluation.samples.append(sample_result)
            self._append_state_record(sample_result)

            processed = index + 1
            if processed % self._config.checkpoint_every == 0:
                self._logger.info(
                    "Checkpoint: writing partial outputs after %d samples", processed
                )
                self._write_outputs(evaluation)

        self._write_outputs(evaluation)
        self._logger.info(
            "Batch scoring finished. Average score: %.3f over %d samples (%d failed).",
            evaluation.average_score,
            len(evaluation.scored_samples),
            evaluation.num_failed,
        )
        return evaluation

    def _write_outputs(self, evaluation: EvaluationResult) -> None:
        results_path = self._config.output_dir / "results.jsonl"
        metrics_path = self._config.output_dir / "metrics.json"

        results_path.write_text(evaluation.to_jsonl(), encoding="utf-8")
        metrics_payload = {
            "average_score": evaluation.average_score,
            "num_samples": len(evaluation.samples),
            "num_scored": len(evaluation.scored_samples),
            "num_failed": evaluation.num_failed,
            "axis_means": evaluation.axis_means(),
        }
        metrics_path.write_text(json.dumps(metrics_payload, indent=2), encoding="utf-8")
        if self._config.write_html:
            self._write_html_report(evaluation)

    def _write_html_report(self, evaluation: EvaluationResult) -> None:
        report_path = self._config.output_dir / "report.html"

        rows: List[str] = []
        for sample in evaluation.samples:
            prompt_html = (
                "<div class='prompt'>"
                f"{html.escape(sample.prompt or '(empty prompt)')}"
                "</div>"
            )
            if sample.score is None:
                score_html = "<strong>Failed</strong>"
                sub_html = "<em>Not scored</em>"
                breakdown_html = (
                    f"<span class='log'>{html.escape(sample.error or 'Unknown error')}</span>"
                )
            else:
                score = sample.score
                score_html = (
                    f"<strong class='{score_color(score.overall)}'>{score.overall:.2f}</strong>"
                    f"<br>{score_label(score.overall)}"
                )
                sub_html = "<br>".join(
                    f"{html.escape(name)}: "
                    f"<span class='{score_color(value)}'>{value:.2f}</span>"
                    for name, value in score.sub_scores().items()
                )
                if score.breakdown:
                    items = "".join(f"<li>{html.escape(note)}</li>" for note in score.breakdown)
                    breakdown_html = f"<ul>{items}</ul>"
                else:
                    breakdown_html = "<em>No deductions</em>"

            rows.append(
                "<tr>"
                f"<td>{html.escape(sample.sample_id)}</td>"
                f"<td>{prompt_html}</td>"
                f"<td>{score_html}</td>"
                f"<td>{sub_html}</td>"
                f"<td>{breakdown_html}</td>"
                "</tr>"
            )

        table_rows = "\n".join(rows)
        means = evaluation.axis_means()
        means_html = ", ".join(f"{html.escape(name)} {value:.2f}" for name, value in means.items())

        html_content = f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>Design Score Report</title>
  <style>
    body {{
      font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
      margin: 2rem;
      background: #f9fafb;
      color: #1f2933;
    }}
    h1 {{
      margin-bottom: 0.25rem;
    }}
    .summary {{
      margin-bottom: 1.5rem;
      color: #4b5563;
    }}
    table {{
      border-collapse: collapse;
      width: 100%;
      background: #ffffff;
      box-shadow: 0 1px 3px rgba(15, 23, 42, 0.1);
    }}
    th, td {{
      border: 1px solid #e5e7eb;
      padding: 0.75rem;
      vertical-align: top;
      text-align: left;
    }}
    th {{
      background: #f3f4f6;
      font-weight: 600;
    }}
    .prompt {{
      white-space: pre-wrap;
      word-break: break-word;
    }}
    .log {{
      display: block;
      font-size: 0.85rem;
      color: #b91c1c;
      white-space: pre-wrap;
    }}
    .text-green-400 {{ color: #15803d; }}
    .text-yellow-400 {{ color: #a16207; }}
    .text-red-400 {{ color: #b91c1c; }}
  </style>
</head>
<body>
  <h1>Design Score Report</h1>
  <div class="summary">
    <div><strong>Designs scored:</strong> {len(evaluation.scored_samples)}</div>
    <div><strong>Failed records:</strong> {evaluation.num_failed}</div>
    <div><strong>Average overall score:</strong> {evaluation.average_score:.3f}</div>
    <div><strong>Sub-score means:</strong> {means_html}</div>
  </div>
  <table>
    <thead>
      <tr>
        <th>Sample</th>
        <th>Prompt</th>
        <th>Overall</th>
        <th>Sub-scores</th>
        <th>Breakdown</th>
      </tr>
    </thead>
    <tbody>
      {table_rows}
    </tbody>
  </table>
</body>
</html>
"""
        report_path.write_text(html_content, encoding="utf-8")

    def _append_state_record(self, sample: EvaluationSampleResult) -> None:
        with self._state_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(sample.as_dict()) + "\n")
