"""Core typing contracts for digitnet."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import timedelta
from enum import IntEnum
from typing import TYPE_CHECKING, Callable, Iterable, Iterator, List, Optional

import numpy as np

from .errors import InvalidArgument

if TYPE_CHECKING:  # pragma: no cover
    from .network import NetworkEngine

Array = np.ndarray

ProgressCallback = Callable[[float, float, timedelta], None]

NUM_CLASSES = 10


class Digit(IntEnum):
    """Class enumeration; ``UNKNOWN`` marks inference-only samples."""

    ZERO = 0
    ONE = 1
    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    UNKNOWN = 10


@dataclass(eq=False)
class Sample:
    """One normalized pixel vector with its label and last prediction."""

    input: Array
    label: Digit = Digit.UNKNOWN
    prediction: Optional[Array] = None

    def __post_init__(self) -> None:
        values = np.array(self.input, dtype=np.float64)
        if values.ndim != 1:
            raise InvalidArgument(f"Sample input must be a flat vector, got shape {values.shape}")
        if not np.all(np.isfinite(values)):
            raise InvalidArgument("Sample input contains non-finite values")
        if values.size and (values.min() < 0.0 or values.max() > 1.0):
            raise InvalidArgument("Sample input values must lie in [0, 1]")
        values.setflags(write=False)
        self.input = values
        self.label = Digit(self.label)

    @property
    def target(self) -> Optional[Array]:
        if self.label is Digit.UNKNOWN:
            return None
        out = np.zeros(NUM_CLASSES, dtype=np.float64)
        out[int(self.label)] = 1.0
        return out

    @property
    def recognized_label(self) -> Optional[Digit]:
        if self.prediction is None:
            return None
        # np.argmax returns the first maximum, so ties go to the lowest index.
        return Digit(int(np.argmax(self.prediction)))


class SampleCollection:
    """Ordered, randomly indexable collection of samples."""

    def __init__(self, samples: Iterable[Sample] | None = None) -> None:
        self._samples: List[Sample] = list(samples or [])

    def append(self, sample: Sample) -> None:
        self._samples.append(sample)

    def extend(self, samples: Iterable[Sample]) -> None:
        for sample in samples:
            self.append(sample)

    def __len__(self) -> int:
        return len(self._samples)

    def __getitem__(self, index: int) -> Sample:
        return self._samples[index]

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    def evaluate_accuracy(self, network: "NetworkEngine") -> float:
        """Predict every sample and return the fraction recognized correctly."""

        if not self._samples:
            return 0.0
        correct = 0
        for sample in self._samples:
            network.predict(sample)
            if sample.recognized_label == sample.label:
                correct += 1
        return correct / len(self._samples)


class CancellationToken:
    """Cooperative cancellation flag polled by training loops."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :func:`digitnet.training.pipelines.run_pipeline`."""

    epochs: int
    final_error: float
    accuracy: float
    metrics_path: str
    manifest_path: str
    summary_path: str = ""
    weights_path: str = ""


__all__ = [
    "Array",
    "CancellationToken",
    "Digit",
    "NUM_CLASSES",
    "ProgressCallback",
    "RunResult",
    "Sample",
    "SampleCollection",
]
