"""Typed failures raised by the digitnet core."""

from __future__ import annotations


class DigitNetError(ValueError):
    """Base class for all call-scoped failures raised by the core."""


class ConfigurationError(DigitNetError):
    """Malformed topology or an unknown engine/strategy name."""


class ShapeMismatch(DigitNetError):
    """A vector length disagrees with the network or augmentation grid."""


class InvalidArgument(DigitNetError):
    """An argument lies outside its domain."""


class TrainingDivergence(DigitNetError):
    """Non-finite values appeared in activations or parameters."""

    def __init__(self, message: str, *, epoch: int, sample: int | None = None) -> None:
        super().__init__(message)
        self.epoch = epoch
        self.sample = sample


class TrainingCancelled(DigitNetError, RuntimeError):
    """A cancellation token was triggered during training."""

    def __init__(self, epoch: int) -> None:
        super().__init__(f"Training cancelled during epoch {epoch}")
        self.epoch = epoch


__all__ = [
    "DigitNetError",
    "ConfigurationError",
    "ShapeMismatch",
    "InvalidArgument",
    "TrainingDivergence",
    "TrainingCancelled",
]
