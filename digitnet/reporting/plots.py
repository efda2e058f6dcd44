"""Headless-safe plotting adapters."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import List, Tuple


class PlotAdapter:
    """Collect progress reports and optionally emit an error curve."""

    def __init__(self, run_dir: str | Path, enable_plots: bool = False):
        self.enable_plots = enable_plots
        self.run_dir = Path(run_dir)
        self._history: List[Tuple[float, float]] = []
        if self.enable_plots:
            self.run_dir.mkdir(parents=True, exist_ok=True)

    def on_progress(self, fraction: float, error: float, elapsed: timedelta) -> None:
        if not self.enable_plots:
            return
        self._history.append((float(fraction), float(error)))

    def close(self) -> Path | None:
        if not self.enable_plots or not self._history:
            return None
        import matplotlib

        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # imported lazily for headless safety

        fractions, errors = zip(*self._history)
        fig, ax = plt.subplots()
        ax.plot(fractions, errors, marker="o")
        ax.set_xlabel("Progress")
        ax.set_ylabel("Average squared error")
        ax.set_title("Training Error")
        plot_path = self.run_dir / "error.png"
        fig.savefig(plot_path)
        plt.close(fig)
        return plot_path

    __call__ = on_progress
