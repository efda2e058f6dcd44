"""digitnet public API."""

from .core import activations  # noqa: F401
from .core import strategies  # noqa: F401
from .core import types  # noqa: F401
from .core.errors import (
    ConfigurationError,
    InvalidArgument,
    ShapeMismatch,
    TrainingCancelled,
    TrainingDivergence,
)
from .core.network import NetworkEngine, SigmoidNetwork, build_engine
from .core.strategies import ExecutionStrategy
from .core.types import CancellationToken, Digit, Sample, SampleCollection
from .data.augmentation import AugmentationConfig, AugmentationGenerator
from .training.pipelines import load_preset, presets, run_pipeline
from .training.workbench import Workbench

__all__ = [
    "AugmentationConfig",
    "AugmentationGenerator",
    "CancellationToken",
    "ConfigurationError",
    "Digit",
    "ExecutionStrategy",
    "InvalidArgument",
    "NetworkEngine",
    "Sample",
    "SampleCollection",
    "ShapeMismatch",
    "SigmoidNetwork",
    "TrainingCancelled",
    "TrainingDivergence",
    "Workbench",
    "activations",
    "build_engine",
    "load_preset",
    "presets",
    "run_pipeline",
    "strategies",
    "types",
]
