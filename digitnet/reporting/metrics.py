"""Progress sinks for training runs."""

from __future__ import annotations

import csv
import json
from datetime import timedelta
from pathlib import Path
from typing import Sequence

from ..core.types import ProgressCallback
from .artifacts import git_sha


def _record(report: int, fraction: float, error: float, elapsed: timedelta) -> dict:
    return {
        "report": int(report),
        "fraction": float(fraction),
        "error": float(error),
        "elapsed_s": round(elapsed.total_seconds(), 6),
    }


class JsonlSink:
    """Append-only JSONL writer for training progress."""

    def __init__(
        self,
        path: str | Path,
        *,
        seed: int | None = None,
        sha: str | None = None,
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self.seed = seed
        self.sha = sha or git_sha()
        self._reports = 0

    def on_progress(self, fraction: float, error: float, elapsed: timedelta) -> None:
        record = {"seed": self.seed, "sha": self.sha}
        record.update(_record(self._reports, fraction, error, elapsed))
        self._reports += 1
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record) + "\n")

    __call__ = on_progress


class CsvSink:
    """Write training progress to CSV with a stable schema."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")
        self._reports = 0

    def on_progress(self, fraction: float, error: float, elapsed: timedelta) -> None:
        row = _record(self._reports, fraction, error, elapsed)
        self._reports += 1
        with self.path.open("a", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=sorted(row.keys()))
            if handle.tell() == 0:
                writer.writeheader()
            writer.writerow(row)

    __call__ = on_progress


class ProgressCapture:
    """Keep the reported progress in memory."""

    def __init__(self) -> None:
        self.history: list[tuple[float, float, timedelta]] = []

    def on_progress(self, fraction: float, error: float, elapsed: timedelta) -> None:
        self.history.append((float(fraction), float(error), elapsed))

    @property
    def epochs(self) -> int:
        # Every epoch reports once, plus one final report.
        return max(0, len(self.history) - 1)

    @property
    def last_error(self) -> float | None:
        return self.history[-1][1] if self.history else None

    __call__ = on_progress


class Broadcast:
    """Fan one progress report out to several callbacks, in order."""

    def __init__(self, callbacks: Sequence[ProgressCallback]) -> None:
        self.callbacks = list(callbacks)

    def __call__(self, fraction: float, error: float, elapsed: timedelta) -> None:
        for callback in self.callbacks:
            callback(fraction, error, elapsed)


__all__ = ["Broadcast", "CsvSink", "JsonlSink", "ProgressCapture"]
