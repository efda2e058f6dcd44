"""Core numerical primitives for digitnet."""

from . import activations, errors, network, strategies, types

__all__ = ["activations", "errors", "network", "strategies", "types"]
