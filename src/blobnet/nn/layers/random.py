from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from blobnet.core.blob import Blob
from blobnet.core.errors import ConfigurationError
from .base import Layer, LayerRegistry, LayerState


@dataclass(frozen=True)
class RandomNormalLayer(Layer):
    """Fills each top with fresh N(0, 1) samples on every forward pass.

    Top ``i`` has shape ``(*output_dims, batch_sizes[i])``. No gradient flows
    through the samples.
    """
    name: str = 'random-normal'
    output_dims: Tuple[int, ...] = ()
    batch_sizes: Tuple[int, ...] = ()
    dtype: str = ''

    n_bottoms = 0

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, 'output_dims', tuple(self.output_dims))
        object.__setattr__(self, 'batch_sizes', tuple(self.batch_sizes))
        if not self.tops:
            raise ConfigurationError(f"{self.name}: at least one top is required")
        if len(self.batch_sizes) != len(self.tops):
            raise ConfigurationError(
                f"{self.name}: {len(self.tops)} top(s) but {len(self.batch_sizes)} batch size(s)")
        if not self.output_dims or any(d <= 0 for d in self.output_dims + self.batch_sizes):
            raise ConfigurationError(f"{self.name}: output_dims and batch_sizes must be positive")


@LayerRegistry.register(RandomNormalLayer)
class RandomNormalState(LayerState):
    def _setup(self, inputs: List[Blob], diffs: List[Optional[Blob]]) -> None:
        dtype = np.dtype(self.layer.dtype or self.backend.dtype)
        for batch_size in self.layer.batch_sizes:
            self.add_top(self.layer.output_dims + (batch_size,), dtype, with_diff=False)

    def _forward(self, inputs: Sequence[Blob]) -> None:
        for top in self.blobs:
            top.data[...] = self.backend.random_normal(top.shape, top.dtype)
