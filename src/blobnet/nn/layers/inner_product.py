from dataclasses import dataclass
from typing import List, Optional, Sequence

from blobnet.core.blob import Blob
from blobnet.core.errors import ConfigurationError, ShapeMismatchError
from blobnet.nn import init, neurons
from blobnet.nn.neurons import ActivationFunction, Identity
from .base import Layer, LayerRegistry, LayerState


@dataclass(frozen=True)
class InnerProductLayer(Layer):
    """Fully connected layer: ``top = neuron(W' * bottom + b)``.

    The bottom is flattened to (p, n); ``W`` has shape (p, output_dim). Layers
    sharing a ``param_key`` share ``W`` and ``b``.
    """
    name: str = 'inner-product'
    output_dim: int = 0
    param_key: str = ''
    neuron: ActivationFunction = Identity()
    bias_term: bool = True
    weight_init: str = 'xavier'
    weight_std: float = 0.01

    n_bottoms = 1
    n_tops = 1

    def __post_init__(self):
        super().__post_init__()
        if self.output_dim <= 0:
            raise ConfigurationError(f"{self.name}: output_dim must be positive, got {self.output_dim}")
        if self.weight_init not in init.INITIALIZERS:
            raise ConfigurationError(f"{self.name}: unknown weight_init '{self.weight_init}'")

    @property
    def key(self) -> str:
        return self.param_key or self.name


@dataclass(frozen=True)
class TiedInnerProductLayer(Layer):
    """Decoder half of a tied autoencoder: ``top = neuron(W * bottom + b)``.

    ``W`` is the weight of the inner-product layer registered under
    ``tied_param_key``; the bias is this layer's own.
    """
    name: str = 'tied-inner-product'
    tied_param_key: str = ''
    param_key: str = ''
    neuron: ActivationFunction = Identity()
    bias_term: bool = True

    n_bottoms = 1
    n_tops = 1

    def __post_init__(self):
        super().__post_init__()
        if not self.tied_param_key:
            raise ConfigurationError(f"{self.name}: tied_param_key is required")

    @property
    def key(self) -> str:
        return self.param_key or self.name


@LayerRegistry.register(InnerProductLayer)
class InnerProductState(LayerState):
    def _setup(self, inputs: List[Blob], diffs: List[Optional[Blob]]) -> None:
        layer = self.layer
        bottom = inputs[0]
        p, n = bottom.fea_size, bottom.num
        dtype = bottom.dtype

        initial = init.initialize(layer.weight_init, (p, layer.output_dim), fan_in=p,
                                  rng=self.backend.rng, dtype=dtype, std=layer.weight_std)
        self.weight = self.params.register(layer.key, 'weight', initial)
        self.parameters.append(self.weight)
        self.bias = None
        if layer.bias_term:
            self.bias = self.params.register(layer.key, 'bias', init.constant((layer.output_dim,), dtype=dtype))
            self.parameters.append(self.bias)

        self.add_top((layer.output_dim, n), dtype)

    def _forward(self, inputs: Sequence[Blob]) -> None:
        xp = self.backend.xp
        top = self.blobs[0]
        xp.matmul(self.weight.blob.data.T, inputs[0].matrix(), out=top.data)
        if self.bias is not None:
            top.data[...] += self.bias.blob.data[:, None]
        neurons.forward(self.backend, self.layer.neuron, top)

    def _backward(self, inputs: Sequence[Blob], diffs: Sequence[Optional[Blob]]) -> None:
        xp = self.backend.xp
        top, top_diff = self.blobs[0], self.blobs_diff[0]
        neurons.backward(self.backend, self.layer.neuron, top, top_diff)

        delta = top_diff.data
        x = inputs[0].matrix()
        self.weight.gradient.data[...] += xp.matmul(x, delta.T)
        if self.bias is not None:
            self.bias.gradient.data[...] += delta.sum(axis=1)
        if diffs[0] is not None:
            xp.matmul(self.weight.blob.data, delta, out=diffs[0].matrix())


@LayerRegistry.register(TiedInnerProductLayer)
class TiedInnerProductState(LayerState):
    def _setup(self, inputs: List[Blob], diffs: List[Optional[Blob]]) -> None:
        layer = self.layer
        bottom = inputs[0]
        self.weight = self.params.lookup(layer.tied_param_key, 'weight')
        p, d = self.weight.shape
        if bottom.fea_size != d:
            raise ShapeMismatchError(
                f"{layer.name}: bottom has {bottom.fea_size} features per sample, tied weight "
                f"'{layer.tied_param_key}' expects {d}")
        self.parameters.append(self.weight)

        self.bias = None
        if layer.bias_term:
            self.bias = self.params.register(layer.key, 'bias', init.constant((p,), dtype=bottom.dtype))
            self.parameters.append(self.bias)

        self.add_top((p, bottom.num), bottom.dtype)

    def _forward(self, inputs: Sequence[Blob]) -> None:
        xp = self.backend.xp
        top = self.blobs[0]
        xp.matmul(self.weight.blob.data, inputs[0].matrix(), out=top.data)
        if self.bias is not None:
            top.data[...] += self.bias.blob.data[:, None]
        neurons.forward(self.backend, self.layer.neuron, top)

    def _backward(self, inputs: Sequence[Blob], diffs: Sequence[Optional[Blob]]) -> None:
        xp = self.backend.xp
        top, top_diff = self.blobs[0], self.blobs_diff[0]
        neurons.backward(self.backend, self.layer.neuron, top, top_diff)

        delta = top_diff.data
        self.weight.gradient.data[...] += xp.matmul(delta, inputs[0].matrix().T)
        if self.bias is not None:
            self.bias.gradient.data[...] += delta.sum(axis=1)
        if diffs[0] is not None:
            xp.matmul(self.weight.blob.data.T, delta, out=diffs[0].matrix())
