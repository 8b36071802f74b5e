from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Optional

from .evaluator import Evaluator


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Score a batch of generated designs against their prompts."
    )
    parser.add_argument(
        "--input-file",
        type=Path,
        required=True,
        help="JSONL file with one {prompt, graph, measurements?} record per line.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("outputs/evaluation"),
        help="Directory where evaluation artefacts will be written.",
    )
    parser.add_argument(
        "--max-samples",
        type=int,
        default=None,
        help="Optional limit on number of samples evaluated.",
    )
    parser.add_argument(
        "--checkpoint-every",
        type=int,
        default=50,
        help="Rewrite results and metrics after this many samples.",
    )
    parser.add_argument(
        "--no-html",
        action="store_true",
        help="Skip writing report.html.",
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
        evaluator = Evaluator.from_paths(
            input_file=args.input_file,
            output_dir=args.output_dir,
            max_samples=args.max_samples,
            checkpoint_every=args.checkpoint_every,
            write_html=not args.no_html,
        )
        result = evaluator.run()
    except (ValueError, FileNotFoundError) as exc:
        parser.error(str(exc))

    summary = {
        "average_score": result.average_score,
        "num_samples": len(result.samples),
        "num_failed": result.num_failed,
        "output_dir": str(Path(args.output_dir).resolve()),
    }
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
