"""Condense a training progress log into a deterministic summary."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping, Sequence

import numpy as np


def _read_records(metrics_jsonl: Path) -> list[Mapping[str, object]]:
    if not metrics_jsonl.exists():
        return []
    records = []
    for line in metrics_jsonl.read_text().splitlines():
        if line.strip():
            records.append(json.loads(line))
    return records


def summarise_progress(
    records: Sequence[Mapping[str, object]], *, tail: int = 5
) -> Mapping[str, object]:
    """Summarise the ``error``/``fraction`` reports of one training run.

    The last record is the closing report, so ``epochs`` is one less than the
    number of reports. Timing and seed fields are ignored, which keeps the
    summary identical across reruns of the same configuration.
    """

    errors = np.asarray([float(r["error"]) for r in records], dtype=np.float64)
    summary: dict[str, object] = {
        "version": 2,
        "reports": len(records),
        "epochs": max(0, len(records) - 1),
        "final_fraction": float(records[-1]["fraction"]) if records else 0.0,
    }
    if errors.size == 0:
        summary["error"] = None
        return summary

    window = errors[-min(tail, errors.size):] if tail > 0 else errors[:0]
    best = int(np.argmin(errors))
    summary["error"] = {
        "first": float(errors[0]),
        "last": float(errors[-1]),
        "best": float(errors[best]),
        "best_report": best,
        "improvement": float(errors[0] - errors[-1]),
        "tail_window": int(window.size),
        "tail_mean": float(window.mean()) if window.size else None,
    }
    return summary


def write_summary(
    metrics_jsonl: str | Path, out_summary_json: str | Path, *, tail: int = 5
) -> str:
    out_path = Path(out_summary_json)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    summary = summarise_progress(_read_records(Path(metrics_jsonl)), tail=tail)
    out_path.write_text(json.dumps(summary, sort_keys=True, indent=2))
    return str(out_path)


__all__ = ["summarise_progress", "write_summary"]
