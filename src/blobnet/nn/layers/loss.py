"""
Loss layers
===========

A loss layer has no tops. ``forward`` stores the batch-averaged loss in
``state.loss``; ``backward`` overwrites the diff of every trainable input with
the gradient of that loss. The batch axis is the last axis of each blob.
"""
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from blobnet.core.blob import Blob
from blobnet.core.errors import ShapeMismatchError
from .base import Layer, LayerRegistry, LayerState, Trainability, check_same_shape

_HALF_LOG_2PI = 0.5 * math.log(2 * math.pi)


@dataclass(frozen=True)
class GaussianReconLossLayer(Layer):
    """Negative log-likelihood of ``x`` under N(mu, diag(sigma^2)).

    Bottoms: ``mu``, ``sigma`` (trainable) and ``x`` (fixed data).
    """
    name: str = 'gauss-recon-loss'

    is_loss = True
    n_bottoms = 3

    def bottom_trainability(self) -> Tuple[Trainability, ...]:
        return (Trainability.REQUIRED, Trainability.REQUIRED, Trainability.FIXED)


@dataclass(frozen=True)
class EncoderLossLayer(Layer):
    """Twice the KL divergence between N(z_mean, z_sd^2) and N(0, 1), up to a constant.

    Bottoms: ``z_mean`` and ``z_sd``, both trainable.
    """
    name: str = 'encoder-loss'

    is_loss = True
    n_bottoms = 2

    def bottom_trainability(self) -> Tuple[Trainability, ...]:
        return (Trainability.REQUIRED, Trainability.REQUIRED)


@dataclass(frozen=True)
class SquareLossLayer(Layer):
    """0.5 * ||pred - label||^2 averaged over the batch."""
    name: str = 'square-loss'

    is_loss = True
    n_bottoms = 2

    def bottom_trainability(self) -> Tuple[Trainability, ...]:
        return (Trainability.REQUIRED, Trainability.OPTIONAL)


def _check_batch_layout(layer: Layer, reference: Blob, other: Blob, index: int) -> None:
    if other.size != reference.size or other.num != reference.num:
        raise ShapeMismatchError(
            f"{layer.name}: '{layer.bottoms[index]}' {other.shape} is not compatible with "
            f"'{layer.bottoms[0]}' {reference.shape}")


@LayerRegistry.register(GaussianReconLossLayer)
class GaussianReconLossState(LayerState):
    def _setup(self, inputs: List[Blob], diffs: List[Optional[Blob]]) -> None:
        mu, sigma, x = inputs
        check_same_shape(self.layer, inputs, 0, 1)
        _check_batch_layout(self.layer, mu, x, 2)
        # standardized residual (x - mu) / sigma, as a (features, batch) matrix
        self.residual = self.allocate((mu.fea_size, mu.num), mu.dtype)

    def _standardize(self, inputs: Sequence[Blob]):
        xp = self.backend.xp
        mu, sigma, x = inputs
        z = self.residual.data
        xp.subtract(x.data.reshape(z.shape), mu.matrix(), out=z)
        z /= sigma.matrix()
        return z

    def _forward(self, inputs: Sequence[Blob]) -> None:
        xp = self.backend.xp
        mu, sigma, _ = inputs
        z = self._standardize(inputs)
        total = xp.sum(xp.log(sigma.matrix()), dtype=np.float64) + 0.5 * xp.sum(z * z, dtype=np.float64)
        self.loss = float(total) / mu.num + mu.fea_size * _HALF_LOG_2PI

    def _backward(self, inputs: Sequence[Blob], diffs: Sequence[Optional[Blob]]) -> None:
        mu, sigma, _ = inputs
        n = mu.num
        z = self._standardize(inputs)
        s = sigma.matrix()
        diff_mu, diff_sigma = diffs[0].matrix(), diffs[1].matrix()
        diff_mu[...] = -z / s / n
        diff_sigma[...] = (1 - z * z) / s / n


@LayerRegistry.register(EncoderLossLayer)
class EncoderLossState(LayerState):
    def _setup(self, inputs: List[Blob], diffs: List[Optional[Blob]]) -> None:
        check_same_shape(self.layer, inputs, 0, 1)

    def _forward(self, inputs: Sequence[Blob]) -> None:
        xp = self.backend.xp
        mu, sigma = inputs[0].data, inputs[1].data
        total = xp.sum(1 + 2 * xp.log(sigma) - mu * mu - sigma * sigma, dtype=np.float64)
        self.loss = -float(total) / inputs[0].num

    def _backward(self, inputs: Sequence[Blob], diffs: Sequence[Optional[Blob]]) -> None:
        n = inputs[0].num
        mu, sigma = inputs[0].data, inputs[1].data
        diffs[0].data[...] = 2 * mu / n
        diffs[1].data[...] = (2 * sigma - 2 / sigma) / n


@LayerRegistry.register(SquareLossLayer)
class SquareLossState(LayerState):
    def _setup(self, inputs: List[Blob], diffs: List[Optional[Blob]]) -> None:
        pred, label = inputs
        _check_batch_layout(self.layer, pred, label, 1)
        self.residual = self.allocate(pred.shape, pred.dtype)

    def _residual(self, inputs: Sequence[Blob]):
        pred, label = inputs
        r = self.residual.data
        self.backend.xp.subtract(pred.data, label.data.reshape(r.shape), out=r)
        return r

    def _forward(self, inputs: Sequence[Blob]) -> None:
        r = self._residual(inputs)
        self.loss = 0.5 * float(self.backend.xp.sum(r * r, dtype=np.float64)) / inputs[0].num

    def _backward(self, inputs: Sequence[Blob], diffs: Sequence[Optional[Blob]]) -> None:
        n = inputs[0].num
        r = self._residual(inputs)
        diffs[0].data[...] = r / n
        if diffs[1] is not None:
            diffs[1].data[...] = (-r / n).reshape(diffs[1].shape)
