"""Execution strategies for dataset training epochs."""

from __future__ import annotations

import os
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Protocol, Sequence, Tuple, Union

import numpy as np

from .activations import sigmoid, sigmoid_deriv, sum_squared_error
from .errors import ConfigurationError, TrainingCancelled, TrainingDivergence
from .types import Array, CancellationToken, SampleCollection

if TYPE_CHECKING:  # pragma: no cover
    from .network import SigmoidNetwork


class ExecutionStrategy(str, Enum):
    """How an epoch spreads its samples over threads."""

    SEQUENTIAL = "sequential"
    BATCHED_PARALLEL = "batched_parallel"
    UNSYNCHRONIZED_PARALLEL = "unsynchronized_parallel"


class EpochRunner(Protocol):
    """Protocol implemented by epoch execution strategies."""

    def run_epoch(
        self,
        network: "SigmoidNetwork",
        samples: SampleCollection,
        targets: Sequence[Array],
        *,
        epoch: int,
        cancel: CancellationToken | None = None,
    ) -> float:
        """Train one pass over ``samples`` and return the summed squared error."""


def _check_cancel(cancel: CancellationToken | None, epoch: int) -> None:
    if cancel is not None and cancel.cancelled:
        raise TrainingCancelled(epoch)


DEFAULT_BATCH_SIZE = 8
# Batch chunking must not follow the host's CPU count.
DEFAULT_BATCH_WORKERS = 4


def _default_workers() -> int:
    return max(1, min(8, os.cpu_count() or 1))


@dataclass
class Sequential:
    """Reference online SGD: update after every sample, in collection order."""

    def run_epoch(
        self,
        network: "SigmoidNetwork",
        samples: SampleCollection,
        targets: Sequence[Array],
        *,
        epoch: int,
        cancel: CancellationToken | None = None,
    ) -> float:
        buffers = network.new_buffers()
        total = 0.0
        for idx, (sample, target) in enumerate(zip(samples, targets)):
            _check_cancel(cancel, epoch)
            output = network.forward_into(buffers, sample.input)
            if not np.all(np.isfinite(output)):
                raise TrainingDivergence(
                    f"Non-finite output at sample {idx} of epoch {epoch}",
                    epoch=epoch,
                    sample=idx,
                )
            total += sum_squared_error(target, output)
            network.apply_deltas(buffers, network.deltas_for(buffers, target))
        return total


@dataclass
class BatchedParallel:
    """Mini-batch gradients computed by worker threads, applied once per batch.

    Each batch is split into contiguous chunks, one per worker. Workers run a
    vectorised forward/backward pass over their chunk against the weights as
    they stood at the start of the batch and return summed updates; the main
    thread adds the chunk sums in chunk order, divides by the batch length and
    applies the mean. ``workers`` defaults to ``DEFAULT_BATCH_WORKERS`` rather
    than the CPU count, so the trajectory is the same on every host.
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    workers: int | None = None

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")
        if self.workers is not None and self.workers <= 0:
            raise ConfigurationError(f"workers must be positive, got {self.workers}")

    def run_epoch(
        self,
        network: "SigmoidNetwork",
        samples: SampleCollection,
        targets: Sequence[Array],
        *,
        epoch: int,
        cancel: CancellationToken | None = None,
    ) -> float:
        inputs = np.stack([sample.input for sample in samples])
        target_mat = np.stack(targets)
        workers = self.workers or DEFAULT_BATCH_WORKERS
        total = 0.0
        with ThreadPoolExecutor(max_workers=workers) as pool:
            for start in range(0, inputs.shape[0], self.batch_size):
                _check_cancel(cancel, epoch)
                stop = start + self.batch_size
                chunks = [
                    idx
                    for idx in np.array_split(np.arange(start, min(stop, inputs.shape[0])), workers)
                    if idx.size
                ]
                futures = [
                    pool.submit(_chunk_gradients, network, inputs[idx], target_mat[idx])
                    for idx in chunks
                ]
                results = [future.result() for future in futures]
                weight_grads = [np.zeros_like(W) for W in network.weights]
                bias_grads = [np.zeros_like(b) for b in network.biases]
                for idx, (sse, bad_row, w_parts, b_parts) in zip(chunks, results):
                    if bad_row is not None:
                        raise TrainingDivergence(
                            f"Non-finite output at sample {int(idx[bad_row])} of epoch {epoch}",
                            epoch=epoch,
                            sample=int(idx[bad_row]),
                        )
                    total += sse
                    for layer, (gW, gb) in enumerate(zip(w_parts, b_parts)):
                        weight_grads[layer] += gW
                        bias_grads[layer] += gb
                rows = sum(idx.size for idx in chunks)
                network.apply_gradients(
                    [gW / rows for gW in weight_grads],
                    [gb / rows for gb in bias_grads],
                )
        return total


def _chunk_gradients(
    network: "SigmoidNetwork", inputs: Array, targets: Array
) -> Tuple[float, int | None, List[Array], List[Array]]:
    activations = [inputs]
    x = inputs
    for W, b in zip(network.weights, network.biases):
        x = sigmoid(x @ W + b)
        activations.append(x)
    output = activations[-1]
    finite = np.all(np.isfinite(output), axis=1)
    if not finite.all():
        return 0.0, int(np.argmin(finite)), [], []
    diff = targets - output
    # Row sums first keep the result equal to summing per-sample errors.
    sse = float(np.sum(np.einsum("ij,ij->i", diff, diff)))
    delta = diff * sigmoid_deriv(output)
    weight_grads: List[Array] = [None] * len(network.weights)  # type: ignore[list-item]
    bias_grads: List[Array] = [None] * len(network.weights)  # type: ignore[list-item]
    for layer in range(len(network.weights) - 1, -1, -1):
        weight_grads[layer] = activations[layer].T @ delta
        bias_grads[layer] = delta.sum(axis=0)
        if layer > 0:
            delta = (delta @ network.weights[layer].T) * sigmoid_deriv(activations[layer])
    return sse, None, weight_grads, bias_grads


@dataclass
class UnsynchronizedParallel:
    """Hogwild-style online SGD over interleaved shards without locking.

    Workers read and update the shared parameter arrays concurrently, so the
    result depends on thread scheduling and is not reproducible.
    """

    workers: int | None = None

    def __post_init__(self) -> None:
        if self.workers is not None and self.workers <= 0:
            raise ConfigurationError(f"workers must be positive, got {self.workers}")

    def run_epoch(
        self,
        network: "SigmoidNetwork",
        samples: SampleCollection,
        targets: Sequence[Array],
        *,
        epoch: int,
        cancel: CancellationToken | None = None,
    ) -> float:
        workers = min(self.workers or _default_workers(), len(samples))
        indices = np.arange(len(samples))
        shards = [indices[offset::workers] for offset in range(workers)]

        def _run_shard(shard: Array) -> float:
            buffers = network.new_buffers()
            subtotal = 0.0
            for idx in shard:
                _check_cancel(cancel, epoch)
                output = network.forward_into(buffers, samples[int(idx)].input)
                if not np.all(np.isfinite(output)):
                    raise TrainingDivergence(
                        f"Non-finite output at sample {int(idx)} of epoch {epoch}",
                        epoch=epoch,
                        sample=int(idx),
                    )
                target = targets[int(idx)]
                subtotal += sum_squared_error(target, output)
                network.apply_deltas(buffers, network.deltas_for(buffers, target))
            return subtotal

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(_run_shard, shard) for shard in shards]
            return float(sum(future.result() for future in futures))


StrategyLike = Union[ExecutionStrategy, str, bool, EpochRunner, None]


def resolve_strategy(
    value: StrategyLike,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    workers: int | None = None,
) -> EpochRunner:
    """Return an epoch runner for ``value``.

    A boolean is the legacy ``parallel`` flag: it is accepted with a
    ``DeprecationWarning`` and always runs sequentially.
    """

    if value is None:
        return Sequential()
    if isinstance(value, bool):
        warnings.warn(
            "The boolean parallel flag is deprecated; pass an ExecutionStrategy. "
            "Both True and False now train sequentially.",
            DeprecationWarning,
            stacklevel=3,
        )
        return Sequential()
    if hasattr(value, "run_epoch"):
        return value  # type: ignore[return-value]
    try:
        name = ExecutionStrategy(value)
    except ValueError as exc:
        available = ", ".join(item.value for item in ExecutionStrategy)
        raise ConfigurationError(
            f"Unknown execution strategy {value!r}. Available strategies: {available}"
        ) from exc
    if name is ExecutionStrategy.SEQUENTIAL:
        return Sequential()
    if name is ExecutionStrategy.BATCHED_PARALLEL:
        return BatchedParallel(batch_size=batch_size, workers=workers)
    return UnsynchronizedParallel(workers=workers)


__all__ = [
    "BatchedParallel",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_BATCH_WORKERS",
    "EpochRunner",
    "ExecutionStrategy",
    "Sequential",
    "StrategyLike",
    "UnsynchronizedParallel",
    "resolve_strategy",
]
