"""Interactive collect/train/recognize loop without any GUI attached."""

from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np

from ..core.errors import InvalidArgument
from ..core.network import NetworkEngine, build_engine
from ..core.strategies import ExecutionStrategy, StrategyLike
from ..core.types import CancellationToken, Digit, ProgressCallback, Sample, SampleCollection
from ..data.augmentation import AugmentationConfig, AugmentationGenerator
from ..reporting.metrics import Broadcast

DEFAULT_STRUCTURE = (1024, 150, 10)


def parse_structure(text: str) -> list[int]:
    """Parse a ``"1024;150;10"`` style layer description."""

    parts = [part.strip() for part in str(text).replace(",", ";").split(";") if part.strip()]
    try:
        return [int(part) for part in parts]
    except ValueError as exc:
        raise InvalidArgument(f"Invalid layer structure: {text!r}") from exc


def acceptable_error_for(accuracy_percent: float) -> float:
    """Convert a target accuracy in percent to an average-error threshold."""

    if not 0 <= accuracy_percent <= 100:
        raise InvalidArgument(f"accuracy_percent must be in [0, 100], got {accuracy_percent}")
    return (100.0 - accuracy_percent) / 100.0


class Workbench:
    """Grow a training set one example at a time and train on demand.

    Each added example is stored together with ``augment_count`` augmented
    variants and the network is immediately fitted to the original example.
    The network is created lazily and dropped again by :meth:`reset`.
    """

    def __init__(
        self,
        structure: Sequence[int] | str = DEFAULT_STRUCTURE,
        *,
        engine: str = "sigmoid",
        engine_options: Mapping[str, object] | None = None,
        seed: int | None = None,
        augment_count: int = 10,
        quick_train_error: float = 0.01,
        strategy: StrategyLike = ExecutionStrategy.SEQUENTIAL,
        augmentation: AugmentationConfig | None = None,
        callbacks: Sequence[ProgressCallback] | None = None,
    ) -> None:
        if augment_count < 0:
            raise InvalidArgument(f"augment_count must be >= 0, got {augment_count}")
        self.structure = parse_structure(structure) if isinstance(structure, str) else list(structure)
        self.engine = engine
        self.engine_options = dict(engine_options or {})
        self.augment_count = augment_count
        self.quick_train_error = quick_train_error
        self.strategy = strategy
        self.callbacks = list(callbacks or [])
        seeds = np.random.SeedSequence(seed)
        engine_seq, augment_seq = seeds.spawn(2)
        self._engine_seeds = engine_seq
        self._generator = AugmentationGenerator(np.random.default_rng(augment_seq), augmentation)
        self.samples = SampleCollection()
        self._network: NetworkEngine | None = None

    @property
    def network(self) -> NetworkEngine:
        if self._network is None:
            (child,) = self._engine_seeds.spawn(1)
            self._network = build_engine(
                self.engine,
                self.structure,
                rng=np.random.default_rng(child),
                **self.engine_options,
            )
        return self._network

    def add_example(self, sample: Sample, label: Digit | int | None = None) -> int:
        """Store ``sample`` plus its variants and quick-train on it.

        Returns the iterations the single-sample fit needed.
        """

        if label is not None:
            sample = Sample(sample.input, Digit(label))
        if sample.label is Digit.UNKNOWN:
            raise InvalidArgument("Examples need a digit label")
        variants = self._generator.generate_series(sample, self.augment_count)
        self.samples.append(sample)
        self.samples.extend(variants)
        return self.network.train(sample, self.quick_train_error, self.strategy)

    def train(
        self,
        epochs: int,
        acceptable_error: float,
        *,
        cancel: CancellationToken | None = None,
    ) -> float:
        if len(self.samples) == 0:
            raise InvalidArgument("Collect some examples before training")
        progress = Broadcast(self.callbacks) if self.callbacks else None
        return self.network.train_on_dataset(
            self.samples,
            epochs,
            acceptable_error,
            self.strategy,
            progress=progress,
            cancel=cancel,
        )

    def recognize(self, sample: Sample) -> Digit:
        self.network.predict(sample)
        return sample.recognized_label  # type: ignore[return-value]

    def reset(self) -> None:
        """Forget the current network; collected samples are kept."""

        self._network = None


__all__ = ["DEFAULT_STRUCTURE", "Workbench", "acceptable_error_for", "parse_structure"]
