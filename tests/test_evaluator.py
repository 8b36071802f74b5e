import json

import pytest

from evaluate.__main__ import main
from evaluate.evaluator import EvaluationConfig, Evaluator


def _build_records():
    cube = {
        "parameters": {"size": {"value": 40, "unit": "mm", "min": 10, "max": 100}},
        "nodes": {"box": {"op": "cube", "depends_on": ["size"]}},
        "root_id": "box",
    }
    return [
        {
            "sample_id": "cube",
            "prompt": "a <b>smooth</b> cube",
            "graph": cube,
            "measurements": {
                "dimensions": [40, 40, 40],
                "volume": 64000,
                "surface_area": 9600,
                "face_count": 6,
                "edge_count": 12,
                "vertex_count": 8,
                "face_types": {"PLANE": 6},
                "is_valid": True,
                "compactness": 0.5,
            },
        },
        {
            "prompt": "a gear with 20 teeth",
            "tree": {"nodes": {"gear": {"op": "cylinder"}}},
            "metrics": {"face_count": 45, "is_valid": False, "volume": 10},
        },
        {"prompt": "broken", "graph": {"nodes": {"a": {"op": "box", "children": ["ghost"]}}}},
    ]


def _write_input(tmp_path, records=None):
    path = tmp_path / "designs.jsonl"
    lines = [json.dumps(record) for record in (records or _build_records())]
    path.write_text("\n".join(lines) + "\n\n", encoding="utf-8")
    return path


def test_run_scores_records_and_tracks_failures(tmp_path):
    evaluator = Evaluator.from_paths(
        input_file=_write_input(tmp_path), output_dir=tmp_path / "out"
    )

    result = evaluator.run()

    assert [sample.sample_id for sample in result.samples] == ["cube", "sample_00001", "sample_00002"]
    assert result.num_failed == 1
    assert len(result.scored_samples) == 2
    assert result.samples[1].has_measurements
    assert result.samples[1].score.overall <= 0.4
    assert "Invalid design record" in result.samples[2].error
    expected = (result.samples[0].score.overall + result.samples[1].score.overall) / 2
    assert result.average_score == pytest.approx(expected)


def test_run_writes_artefacts(tmp_path):
    out_dir = tmp_path / "out"
    Evaluator.from_paths(input_file=_write_input(tmp_path), output_dir=out_dir).run()

    results = [json.loads(line) for line in (out_dir / "results.jsonl").read_text().splitlines()]
    state = (out_dir / "partial_state.jsonl").read_text().splitlines()
    metrics = json.loads((out_dir / "metrics.json").read_text())
    report = (out_dir / "report.html").read_text()

    assert len(results) == 3
    assert len(state) == 3
    assert results[0]["score"]["details"]["gate"] == 1.0
    assert results[2]["score"] is None
    assert metrics["num_samples"] == 3
    assert metrics["num_failed"] == 1
    assert set(metrics["axis_means"]) == {"proportion", "symmetry", "featureCount", "parameterRange"}
    assert "a &lt;b&gt;smooth&lt;/b&gt; cube" in report
    assert "<b>smooth</b>" not in report


def test_max_samples_and_no_html(tmp_path):
    out_dir = tmp_path / "out"
    evaluator = Evaluator.from_paths(
        input_file=_write_input(tmp_path),
        output_dir=out_dir,
        max_samples=1,
        write_html=False,
    )

    result = evaluator.run()

    assert len(result.samples) == 1
    assert not (out_dir / "report.html").exists()


def test_checkpoints_rewrite_results(tmp_path):
    out_dir = tmp_path / "out"
    Evaluator.from_paths(
        input_file=_write_input(tmp_path), output_dir=out_dir, checkpoint_every=1
    ).run()

    assert len((out_dir / "results.jsonl").read_text().splitlines()) == 3


def test_config_validation(tmp_path):
    with pytest.raises(ValueError):
        EvaluationConfig(input_file=tmp_path / "in.jsonl", output_dir=tmp_path, max_samples=0)
    with pytest.raises(ValueError):
        EvaluationConfig(input_file=tmp_path / "in.jsonl", output_dir=tmp_path, checkpoint_every=0)


def test_missing_input_file(tmp_path):
    evaluator = Evaluator.from_paths(input_file=tmp_path / "missing.jsonl", output_dir=tmp_path / "out")

    with pytest.raises(FileNotFoundError):
        evaluator.run()


def test_cli_prints_summary(tmp_path, capsys):
    input_file = _write_input(tmp_path)

    exit_code = main(
        ["--input-file", str(input_file), "--output-dir", str(tmp_path / "out"), "--no-html"]
    )

    summary = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert summary["num_samples"] == 3
    assert summary["num_failed"] == 1


def test_cli_reports_bad_configuration(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main(["--input-file", str(tmp_path / "missing.jsonl"), "--output-dir", str(tmp_path / "out")])

    assert excinfo.value.code == 2
