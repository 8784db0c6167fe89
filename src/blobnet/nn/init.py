"""Host-side initializers for parameter blobs.

Values are drawn on the host and uploaded, so every backend sees the same
numbers for the same seed.
"""
import math
from typing import Tuple
import numpy as np


def xavier_uniform(shape: Tuple[int, ...], fan_in: int, rng: np.random.Generator,
                   dtype=np.float64) -> np.ndarray:
    bound = math.sqrt(3.0 / fan_in)
    return rng.uniform(-bound, bound, size=shape).astype(dtype)


def gaussian(shape: Tuple[int, ...], std: float, rng: np.random.Generator,
             dtype=np.float64) -> np.ndarray:
    return (std * rng.standard_normal(shape)).astype(dtype)


def constant(shape: Tuple[int, ...], value: float = 0.0, dtype=np.float64) -> np.ndarray:
    return np.full(shape, value, dtype=dtype)


INITIALIZERS = ('xavier', 'gaussian', 'constant')


def initialize(kind: str, shape: Tuple[int, ...], fan_in: int, rng: np.random.Generator,
               dtype=np.float64, std: float = 0.01, value: float = 0.0) -> np.ndarray:
    if kind == 'xavier':
        return xavier_uniform(shape, fan_in, rng, dtype)
    if kind == 'gaussian':
        return gaussian(shape, std, rng, dtype)
    if kind == 'constant':
        return constant(shape, value, dtype)
    raise ValueError(f"Unknown initializer '{kind}'. Available: {', '.join(INITIALIZERS)}")
