"""Fully connected sigmoid network trained with online backpropagation."""

from __future__ import annotations

import math
import time
from datetime import timedelta
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Protocol, Sequence

import numpy as np

from .activations import sigmoid, sigmoid_deriv, sum_squared_error
from .errors import (
    ConfigurationError,
    InvalidArgument,
    ShapeMismatch,
    TrainingCancelled,
    TrainingDivergence,
)
from .strategies import ExecutionStrategy, StrategyLike, resolve_strategy
from .types import Array, CancellationToken, Digit, ProgressCallback, Sample, SampleCollection

DEFAULT_LEARNING_RATE = 0.25
MAX_SAMPLE_ITERATIONS = 1000


class NetworkEngine(Protocol):
    """Capability interface shared by interchangeable network engines."""

    layer_sizes: Sequence[int]

    def compute(self, inputs: Array) -> Array:
        """Run a forward pass and return the output activations."""

    def predict(self, sample: Sample) -> None:
        """Store the forward pass output on ``sample``."""

    def train(
        self,
        sample: Sample,
        acceptable_error: float,
        strategy: StrategyLike = ExecutionStrategy.SEQUENTIAL,
    ) -> int:
        """Fit a single sample, returning the iterations used."""

    def train_on_dataset(
        self,
        samples: SampleCollection,
        epochs_count: int,
        acceptable_error: float,
        strategy: StrategyLike = ExecutionStrategy.SEQUENTIAL,
        *,
        progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> float:
        """Train over ``samples`` and return the final average error."""

    def parameter_count(self) -> int:
        """Number of trainable weights and biases."""


def _validate_layer_sizes(layer_sizes: Sequence[int]) -> List[int]:
    sizes = list(layer_sizes)
    if len(sizes) < 2:
        raise ConfigurationError(
            f"A network needs at least 2 layers, got {len(sizes)}"
        )
    for size in sizes:
        if isinstance(size, bool) or int(size) != size or size <= 0:
            raise ConfigurationError(f"Layer sizes must be positive integers: {sizes}")
    return [int(size) for size in sizes]


class SigmoidNetwork:
    """Feed-forward network with sigmoid units and in-place SGD updates.

    ``weights[i]`` has shape ``(layer_sizes[i], layer_sizes[i + 1])`` and
    ``biases[i]`` has length ``layer_sizes[i + 1]``. Scratch activation
    buffers are reused between calls, so one instance must only be driven by
    one caller at a time.
    """

    def __init__(
        self,
        layer_sizes: Sequence[int],
        *,
        rng: np.random.Generator | None = None,
        learning_rate: float = DEFAULT_LEARNING_RATE,
    ) -> None:
        self.layer_sizes = tuple(_validate_layer_sizes(layer_sizes))
        if learning_rate <= 0:
            raise ConfigurationError(f"learning_rate must be positive, got {learning_rate}")
        self.learning_rate = float(learning_rate)
        rng = rng if rng is not None else np.random.default_rng()
        self.weights: List[Array] = []
        self.biases: List[Array] = []
        for rows, cols in zip(self.layer_sizes[:-1], self.layer_sizes[1:]):
            self.weights.append(rng.uniform(-0.5, 0.5, size=(rows, cols)))
            self.biases.append(rng.uniform(-0.5, 0.5, size=cols))
        self._activations = self.new_buffers()

    @classmethod
    def from_parameters(
        cls,
        weights: Sequence[Array],
        biases: Sequence[Array],
        *,
        learning_rate: float = DEFAULT_LEARNING_RATE,
    ) -> "SigmoidNetwork":
        if len(weights) != len(biases) or not weights:
            raise ConfigurationError("weights and biases must be non-empty and of equal count")
        sizes = [int(np.shape(weights[0])[0])]
        sizes.extend(int(np.shape(w)[1]) for w in weights)
        network = cls(sizes, rng=np.random.default_rng(0), learning_rate=learning_rate)
        network.load_state_dict(
            {
                **{f"W{idx}": np.asarray(w, dtype=np.float64) for idx, w in enumerate(weights)},
                **{f"b{idx}": np.asarray(b, dtype=np.float64) for idx, b in enumerate(biases)},
            }
        )
        return network

    @property
    def input_size(self) -> int:
        return self.layer_sizes[0]

    @property
    def output_size(self) -> int:
        return self.layer_sizes[-1]

    def new_buffers(self) -> List[Array]:
        """Allocate a private set of activation buffers."""

        return [np.zeros(size, dtype=np.float64) for size in self.layer_sizes]

    # ------------------------------------------------------------------
    # Inference

    def forward_into(self, buffers: List[Array], inputs: Array) -> Array:
        buffers[0][:] = inputs
        for idx, (W, b) in enumerate(zip(self.weights, self.biases)):
            buffers[idx + 1][:] = sigmoid(b + buffers[idx] @ W)
        return buffers[-1]

    def compute(self, inputs: Array) -> Array:
        inputs = self._check_input(inputs)
        output = self.forward_into(self._activations, inputs).view()
        output.setflags(write=False)
        return output

    def predict(self, sample: Sample) -> None:
        output = self.compute(sample.input)
        sample.prediction = np.array(output, dtype=np.float64)

    # ------------------------------------------------------------------
    # Learning

    def deltas_for(self, buffers: Sequence[Array], target: Array) -> List[Array]:
        """Return per-layer deltas for the forward pass held in ``buffers``.

        ``deltas[i]`` belongs to the units fed by ``weights[i]``. Hidden
        deltas use the weights as they were before any update.
        """

        output = buffers[-1]
        deltas: List[Array] = [None] * len(self.weights)  # type: ignore[list-item]
        delta = (target - output) * sigmoid_deriv(output)
        deltas[-1] = delta
        for idx in range(len(self.weights) - 1, 0, -1):
            delta = (self.weights[idx] @ delta) * sigmoid_deriv(buffers[idx])
            deltas[idx - 1] = delta
        return deltas

    def apply_deltas(self, buffers: Sequence[Array], deltas: Sequence[Array]) -> None:
        rate = self.learning_rate
        for idx, delta in enumerate(deltas):
            np.add(self.weights[idx], rate * np.outer(buffers[idx], delta), out=self.weights[idx])
            np.add(self.biases[idx], rate * delta, out=self.biases[idx])

    def apply_gradients(self, weight_grads: Sequence[Array], bias_grads: Sequence[Array]) -> None:
        """Apply summed ``outer(activation, delta)`` terms in one step."""

        rate = self.learning_rate
        for idx in range(len(self.weights)):
            np.add(self.weights[idx], rate * weight_grads[idx], out=self.weights[idx])
            np.add(self.biases[idx], rate * bias_grads[idx], out=self.biases[idx])

    def backpropagate(self, target: Array) -> None:
        """Update parameters against ``target`` for the last :meth:`compute`."""

        target = np.asarray(target, dtype=np.float64)
        if target.shape != (self.output_size,):
            raise ShapeMismatch(
                f"Target has length {target.size}, network outputs {self.output_size}"
            )
        self.apply_deltas(self._activations, self.deltas_for(self._activations, target))

    def train(
        self,
        sample: Sample,
        acceptable_error: float,
        strategy: StrategyLike = ExecutionStrategy.SEQUENTIAL,
    ) -> int:
        """Repeat forward/backward on one sample until its error is acceptable.

        Returns the number of backward passes performed, at most
        ``MAX_SAMPLE_ITERATIONS``. ``strategy`` has no effect here: a single
        sample offers nothing to run concurrently.
        """

        resolve_strategy(strategy)
        target = self._check_sample(sample)
        if acceptable_error < 0:
            raise InvalidArgument(f"acceptable_error must be >= 0, got {acceptable_error}")
        iterations = 0
        while iterations < MAX_SAMPLE_ITERATIONS:
            output = self.forward_into(self._activations, sample.input)
            if not np.all(np.isfinite(output)):
                raise TrainingDivergence("Non-finite network output", epoch=0, sample=0)
            if sum_squared_error(target, output) < acceptable_error:
                break
            self.apply_deltas(self._activations, self.deltas_for(self._activations, target))
            iterations += 1
        return iterations

    def train_on_dataset(
        self,
        samples: SampleCollection,
        epochs_count: int,
        acceptable_error: float,
        strategy: StrategyLike = ExecutionStrategy.SEQUENTIAL,
        *,
        progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> float:
        """Run online training epochs over ``samples``.

        Stops after ``epochs_count`` epochs or once the average squared error
        drops to ``acceptable_error``. ``progress`` receives
        ``(fraction, average_error, elapsed)`` after every epoch and once
        more with ``fraction == 1.0`` when training ends.
        """

        runner = resolve_strategy(strategy)
        if epochs_count <= 0:
            raise InvalidArgument(f"epochs_count must be positive, got {epochs_count}")
        if acceptable_error < 0:
            raise InvalidArgument(f"acceptable_error must be >= 0, got {acceptable_error}")
        if len(samples) == 0:
            raise InvalidArgument("Cannot train on an empty sample collection")
        targets = [self._check_sample(sample) for sample in samples]

        started = time.perf_counter()
        error = math.inf
        epoch = 0
        while epoch < epochs_count and error > acceptable_error:
            if cancel is not None and cancel.cancelled:
                raise TrainingCancelled(epoch)
            total = runner.run_epoch(self, samples, targets, epoch=epoch, cancel=cancel)
            error = total / len(samples)
            self._check_parameters(epoch)
            if progress is not None:
                progress(epoch / epochs_count, error, _since(started))
            epoch += 1

        if progress is not None:
            progress(1.0, error, _since(started))
        return error

    # ------------------------------------------------------------------
    # Persistence

    def state_dict(self) -> Mapping[str, Array]:
        state: Dict[str, Array] = {}
        for idx, (W, b) in enumerate(zip(self.weights, self.biases)):
            state[f"W{idx}"] = W.copy()
            state[f"b{idx}"] = b.copy()
        return state

    def load_state_dict(self, state: Mapping[str, Array]) -> None:
        loaded: List[tuple[Array, Array]] = []
        for idx, (W, b) in enumerate(zip(self.weights, self.biases)):
            for key in (f"W{idx}", f"b{idx}"):
                if key not in state:
                    raise KeyError(f"Missing parameter {key} in state dict")
            new_W = np.asarray(state[f"W{idx}"], dtype=np.float64)
            new_b = np.asarray(state[f"b{idx}"], dtype=np.float64)
            if new_W.shape != W.shape or new_b.shape != b.shape:
                raise ShapeMismatch(
                    f"Layer {idx} expects {W.shape}/{b.shape}, got {new_W.shape}/{new_b.shape}"
                )
            loaded.append((new_W.copy(), new_b.copy()))
        self.weights = [W for W, _ in loaded]
        self.biases = [b for _, b in loaded]

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as handle:
            np.savez_compressed(
                handle,
                layer_sizes=np.asarray(self.layer_sizes, dtype=np.int64),
                learning_rate=np.float64(self.learning_rate),
                **self.state_dict(),
            )
        return path

    @classmethod
    def load(cls, path: str | Path) -> "SigmoidNetwork":
        with np.load(Path(path)) as payload:
            sizes = [int(s) for s in payload["layer_sizes"]]
            network = cls(
                sizes,
                rng=np.random.default_rng(0),
                learning_rate=float(payload["learning_rate"]),
            )
            network.load_state_dict({key: payload[key] for key in payload.files})
        return network

    def parameter_count(self) -> int:
        return int(sum(W.size + b.size for W, b in zip(self.weights, self.biases)))

    # ------------------------------------------------------------------
    # Validation helpers

    def _check_input(self, inputs: Array) -> Array:
        inputs = np.asarray(inputs, dtype=np.float64)
        if inputs.shape != (self.input_size,):
            raise ShapeMismatch(
                f"Input has shape {inputs.shape}, network expects ({self.input_size},)"
            )
        return inputs

    def _check_sample(self, sample: Sample) -> Array:
        self._check_input(sample.input)
        if sample.label is Digit.UNKNOWN:
            raise InvalidArgument("Cannot train on a sample without a label")
        target = sample.target
        if target.shape != (self.output_size,):
            raise ShapeMismatch(
                f"Target has length {target.size}, network outputs {self.output_size}"
            )
        return target

    def _check_parameters(self, epoch: int) -> None:
        for W, b in zip(self.weights, self.biases):
            if not (np.all(np.isfinite(W)) and np.all(np.isfinite(b))):
                raise TrainingDivergence("Non-finite network parameters", epoch=epoch)


def _since(started: float) -> timedelta:
    return timedelta(seconds=time.perf_counter() - started)


EngineFactory = Callable[..., NetworkEngine]

_ENGINES: Dict[str, EngineFactory] = {"sigmoid": SigmoidNetwork}


def register_engine(name: str, factory: EngineFactory) -> None:
    _ENGINES[name] = factory


def engines() -> List[str]:
    return sorted(_ENGINES)


def build_engine(
    name: str,
    layer_sizes: Sequence[int],
    *,
    rng: np.random.Generator | None = None,
    **options: object,
) -> NetworkEngine:
    try:
        factory = _ENGINES[name]
    except KeyError as exc:
        available = ", ".join(engines())
        raise ConfigurationError(f"Unknown engine {name!r}. Available engines: {available}") from exc
    return factory(layer_sizes, rng=rng, **options)


__all__ = [
    "DEFAULT_LEARNING_RATE",
    "MAX_SAMPLE_ITERATIONS",
    "NetworkEngine",
    "SigmoidNetwork",
    "build_engine",
    "engines",
    "register_engine",
]
