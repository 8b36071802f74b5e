from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .aggregator import evaluate
from .models import DesignGraph, GeometryMeasurements


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Score one generated design against its prompt."
    )
    parser.add_argument(
        "--graph",
        type=Path,
        required=True,
        help="JSON file holding the design graph (parameters, nodes, root_id).",
    )
    prompt_group = parser.add_mutually_exclusive_group()
    prompt_group.add_argument(
        "--prompt",
        type=str,
        default=None,
        help="Natural language prompt. Defaults to the graph's own `prompt` field.",
    )
    prompt_group.add_argument(
        "--prompt-file",
        type=Path,
        default=None,
        help="Text file containing the prompt.",
    )
    parser.add_argument(
        "--measurements",
        type=Path,
        default=None,
        help="Optional JSON file with geometry measurements of the compiled shape.",
    )
    parser.add_argument(
        "--details",
        action="store_true",
        help="Include target spec and per-axis evidence in the output.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging of intermediate scores.",
    )
    return parser


def _read_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

    try:
        graph = DesignGraph.model_validate(_read_json(args.graph))
        measurements = None
        if args.measurements is not None:
            measurements = GeometryMeasurements.model_validate(_read_json(args.measurements))
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        parser.error(f"Invalid input: {exc}")

    if args.prompt_file is not None:
        prompt = args.prompt_file.read_text(encoding="utf-8").strip()
    elif args.prompt is not None:
        prompt = args.prompt
    else:
        prompt = graph.prompt or ""

    result = evaluate(graph, prompt, measurements)
    print(json.dumps(result.as_dict(include_details=args.details), indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
