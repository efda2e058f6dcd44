"""Training orchestration for digitnet."""

from .pipelines import load_preset, presets, run_pipeline
from .workbench import Workbench

__all__ = ["Workbench", "load_preset", "presets", "run_pipeline"]
