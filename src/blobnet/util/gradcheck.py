"""
Gradient checking helpers.

Method: centered finite differences
    f'(x) ~ (f(x + eps) - f(x - eps)) / (2 eps)
"""
from typing import Callable
import numpy as np


def numerical_gradient(f: Callable[[np.ndarray], float], x: np.ndarray, epsilon: float = 1e-5) -> np.ndarray:
    """
    Numerical gradient of a scalar function of ``x``. ``x`` is perturbed in place
    and restored after each element.
    """
    grad = np.zeros_like(x, dtype=np.float64)

    it = np.nditer(x, flags=['multi_index'])
    while not it.finished:
        idx = it.multi_index
        original = x[idx]

        x[idx] = original + epsilon
        loss_plus = f(x)

        x[idx] = original - epsilon
        loss_minus = f(x)

        x[idx] = original
        grad[idx] = (loss_plus - loss_minus) / (2 * epsilon)

        it.iternext()

    return grad


def relative_error(analytical: np.ndarray, numerical: np.ndarray) -> float:
    """Maximum elementwise relative error."""
    diff = np.abs(analytical - numerical)
    denom = np.maximum(np.abs(analytical) + np.abs(numerical), 1e-8)
    return float(np.max(diff / denom))


def check_derivative(f: Callable[[float], float], x0: float, expected: float,
                     epsilon: float = 1e-5, tolerance: float = 1e-4) -> bool:
    """Whether a scalar derivative matches its central-difference estimate."""
    numerical = (f(x0 + epsilon) - f(x0 - epsilon)) / (2 * epsilon)
    return abs(numerical - expected) <= tolerance * max(1.0, abs(expected), abs(numerical))
