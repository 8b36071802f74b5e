"""Summaries and plots over a batch scoring ``results.jsonl`` file."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402

from scoring.display import score_label  # noqa: E402

from .evaluator import SUB_SCORE_KEYS  # noqa: E402

LOGGER = logging.getLogger(__name__)

RESULT_COLUMNS = [
    "sample_id",
    "prompt",
    "scored",
    "has_measurements",
    "error",
    "overall",
    *SUB_SCORE_KEYS,
    "gate",
    "defaulted_axes",
    "breakdown_count",
    "label",
]


def _flatten(record: dict) -> dict:
    score = record.get("score") or {}
    details = score.get("details") or {}
    row = {
        "sample_id": record.get("sample_id"),
        "prompt": record.get("prompt", ""),
        "scored": bool(score),
        "has_measurements": bool(record.get("has_measurements", False)),
        "error": record.get("error"),
        "overall": score.get("overall"),
        "gate": details.get("gate"),
        "defaulted_axes": details.get("defaulted_axes"),
        "breakdown_count": len(score.get("breakdown", [])) if score else None,
        "label": score_label(score["overall"]) if score else None,
    }
    for key in SUB_SCORE_KEYS:
        row[key] = score.get(key)
    return row


def load_results(path: Path) -> pd.DataFrame:
    """Load a results file into one flat row per sample."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Results file not found: {path}")

    rows: List[dict] = []
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            rows.append(_flatten(json.loads(line)))
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def summarize_results(df: pd.DataFrame) -> Dict[str, object]:
    scored = df[df["scored"]] if not df.empty else df
    summary: Dict[str, object] = {
        "count": int(len(df)),
        "scored": int(len(scored)),
        "failed": int(len(df) - len(scored)),
    }
    if scored.empty:
        summary.update(
            {
                "overall_mean": 0.0,
                "overall_min": 0.0,
                "overall_max": 0.0,
                "labels": {},
                "axis_means": {key: 0.0 for key in SUB_SCORE_KEYS},
            }
        )
        return summary

    overall = scored["overall"].astype(float)
    summary.update(
        {
            "overall_mean": float(overall.mean()),
            "overall_min": float(overall.min()),
            "overall_max": float(overall.max()),
            "labels": {str(k): int(v) for k, v in scored["label"].value_counts().items()},
            "axis_means": {
                key: float(scored[key].astype(float).mean()) for key in SUB_SCORE_KEYS
            },
        }
    )
    return summary


def plot_score_distribution(df: pd.DataFrame, output_image: Optional[Path] = None):
    """Histogram of overall scores next to the mean of each sub-score."""
    scored = df[df["scored"]] if not df.empty else df
    fig, (hist_ax, bar_ax) = plt.subplots(1, 2, figsize=(12, 4))

    hist_ax.hist(scored["overall"].astype(float), bins=20, range=(0.0, 1.0), color="#4c72b0")
    hist_ax.set_xlabel("Overall score")
    hist_ax.set_ylabel("Designs")
    hist_ax.set_title("Overall Score Distribution")
    hist_ax.grid(True, alpha=0.3)

    means = [
        float(scored[key].astype(float).mean()) if not scored.empty else 0.0
        for key in SUB_SCORE_KEYS
    ]
    bar_ax.bar(list(SUB_SCORE_KEYS), means, color="#55a868")
    bar_ax.set_ylim(0.0, 1.0)
    bar_ax.set_ylabel("Mean score")
    bar_ax.set_title("Sub-score Means")
    bar_ax.grid(True, axis="y", alpha=0.3)

    fig.tight_layout()
    if output_image is not None:
        fig.savefig(output_image)
        LOGGER.info("Plot saved to %s", output_image)
    return fig


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Summarise a batch scoring results.jsonl file.")
    parser.add_argument("file_path", type=Path, help="Path to the results.jsonl file")
    parser.add_argument(
        "--plot",
        type=Path,
        default=None,
        help="Optional output path for the score distribution plot.",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

    try:
        df = load_results(args.file_path)
    except (OSError, json.JSONDecodeError) as exc:
        parser.error(f"Could not read results: {exc}")

    print(json.dumps(summarize_results(df), indent=2))
    if args.plot is not None:
        fig = plot_score_distribution(df, args.plot)
        plt.close(fig)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
