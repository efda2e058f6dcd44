import csv
import json
from datetime import timedelta
from pathlib import Path

import pytest

from digitnet.reporting.artifacts import write_manifest
from digitnet.reporting.metrics import Broadcast, CsvSink, JsonlSink, ProgressCapture
from digitnet.reporting.plots import PlotAdapter
from digitnet.reporting.summary import summarise_progress, write_summary


def _feed(callback, errors):
    for idx, error in enumerate(errors):
        callback(idx / len(errors), error, timedelta(milliseconds=idx))


def test_jsonl_sink_writes_one_record_per_report(tmp_path):
    sink = JsonlSink(tmp_path / "metrics.jsonl", seed=4, sha="abc")
    _feed(sink, [0.9, 0.5, 0.2])
    records = [json.loads(line) for line in sink.path.read_text().splitlines()]
    assert [r["report"] for r in records] == [0, 1, 2]
    assert [r["error"] for r in records] == [0.9, 0.5, 0.2]
    assert {r["seed"] for r in records} == {4}
    assert {r["sha"] for r in records} == {"abc"}


def test_csv_sink_has_single_header(tmp_path):
    sink = CsvSink(tmp_path / "metrics.csv")
    _feed(sink, [0.4, 0.3])
    with sink.path.open() as handle:
        rows = list(csv.DictReader(handle))
    assert len(rows) == 2
    assert sorted(rows[0]) == ["elapsed_s", "error", "fraction", "report"]


def test_capture_and_broadcast():
    capture = ProgressCapture()
    seen = []
    broadcast = Broadcast([capture, lambda f, e, t: seen.append(e)])
    _feed(broadcast, [0.8, 0.6, 0.4])
    assert capture.epochs == 2
    assert capture.last_error == 0.4
    assert seen == [0.8, 0.6, 0.4]
    assert ProgressCapture().last_error is None


def test_plot_adapter_disabled_writes_nothing(tmp_path):
    adapter = PlotAdapter(tmp_path / "run", enable_plots=False)
    _feed(adapter, [0.5])
    assert adapter.close() is None
    assert not (tmp_path / "run").exists()


def test_plot_adapter_writes_png(tmp_path):
    pytest.importorskip("matplotlib")
    adapter = PlotAdapter(tmp_path, enable_plots=True)
    _feed(adapter, [0.5, 0.25])
    path = adapter.close()
    assert path == tmp_path / "error.png"
    assert path.stat().st_size > 0


def test_summary_tracks_error_curve_and_ignores_timing(tmp_path):
    metrics = tmp_path / "metrics.jsonl"
    lines = [
        {"seed": 1, "report": 0, "fraction": 0.0, "error": 1.0, "elapsed_s": 0.1},
        {"seed": 1, "report": 1, "fraction": 0.5, "error": 0.4, "elapsed_s": 2.7},
        {"seed": 1, "report": 2, "fraction": 1.0, "error": 0.5, "elapsed_s": 9.3},
    ]
    metrics.write_text("\n".join(json.dumps(line) for line in lines) + "\n")
    summary = json.loads(Path(write_summary(metrics, tmp_path / "summary.json", tail=2)).read_text())
    assert summary["reports"] == 3
    assert summary["epochs"] == 2
    assert summary["final_fraction"] == 1.0
    error = summary["error"]
    assert (error["first"], error["last"], error["best"]) == (1.0, 0.5, 0.4)
    assert error["best_report"] == 1
    assert error["improvement"] == pytest.approx(0.5)
    assert error["tail_window"] == 2
    assert error["tail_mean"] == pytest.approx(0.45)
    assert "elapsed_s" not in json.dumps(summary)


def test_summary_of_missing_log(tmp_path):
    summary = summarise_progress([])
    assert summary["reports"] == 0 and summary["error"] is None
    path = write_summary(tmp_path / "absent.jsonl", tmp_path / "summary.json")
    assert json.loads(Path(path).read_text())["epochs"] == 0


def test_manifest_records_environment(tmp_path):
    path = write_manifest(
        tmp_path / "manifest.json",
        config={"model": {"layers": [4, 2]}},
        dataset_provenance={"type": "glyphs"},
        results={"accuracy": 0.5},
    )
    manifest = json.loads(Path(path).read_text())
    assert manifest["dataset"] == {"type": "glyphs"}
    assert manifest["results"]["accuracy"] == 0.5
    assert {"python", "numpy"} <= set(manifest["environment"])
