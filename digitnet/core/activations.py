"""Activation utilities for digitnet."""

from __future__ import annotations

import numpy as np

from .types import Array

# exp overflows float64 past ~709; sigmoid is already saturated long before.
_EXP_LIMIT = 500.0


def sigmoid(x: Array) -> Array:
    """Return the logistic activation ``1 / (1 + e^-x)``."""

    return 1.0 / (1.0 + np.exp(-np.clip(x, -_EXP_LIMIT, _EXP_LIMIT)))


def sigmoid_deriv(activated: Array) -> Array:
    """Derivative of the sigmoid expressed through its own output."""

    return activated * (1.0 - activated)


def sum_squared_error(target: Array, output: Array) -> float:
    diff = target - output
    return float(np.dot(diff, diff))


__all__ = ["sigmoid", "sigmoid_deriv", "sum_squared_error"]
