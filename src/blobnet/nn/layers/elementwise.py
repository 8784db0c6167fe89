from dataclasses import dataclass
from typing import List, Optional, Sequence

from blobnet.core.blob import Blob
from blobnet.core.errors import ConfigurationError
from .base import Layer, LayerRegistry, LayerState, check_same_shape


class ElementWiseFunctor:
    pass


@dataclass(frozen=True)
class Add(ElementWiseFunctor):
    pass


@dataclass(frozen=True)
class Subtract(ElementWiseFunctor):
    pass


@dataclass(frozen=True)
class Multiply(ElementWiseFunctor):
    pass


@dataclass(frozen=True)
class Divide(ElementWiseFunctor):
    pass


@dataclass(frozen=True)
class IdentityLayer(Layer):
    """Copies each bottom to the matching top, e.g. to rename a blob."""
    name: str = 'identity'

    def __post_init__(self):
        super().__post_init__()
        _check_paired(self)


@dataclass(frozen=True)
class PowerLayer(Layer):
    """``top = (shift + scale * bottom) ^ power`` for every bottom/top pair."""
    name: str = 'power'
    power: float = 1.0
    scale: float = 1.0
    shift: float = 0.0

    def __post_init__(self):
        super().__post_init__()
        _check_paired(self)


@dataclass(frozen=True)
class ElementWiseLayer(Layer):
    name: str = 'element-wise'
    operation: ElementWiseFunctor = Add()

    n_bottoms = 2
    n_tops = 1


def _check_paired(layer: Layer) -> None:
    if not layer.bottoms or len(layer.bottoms) != len(layer.tops):
        raise ConfigurationError(
            f"{layer.name}: needs one top per bottom, got {len(layer.bottoms)} bottom(s) "
            f"and {len(layer.tops)} top(s)")


@LayerRegistry.register(IdentityLayer)
class IdentityState(LayerState):
    def _setup(self, inputs: List[Blob], diffs: List[Optional[Blob]]) -> None:
        for blob in inputs:
            self.add_top(blob.shape, blob.dtype)

    def _forward(self, inputs: Sequence[Blob]) -> None:
        for top, bottom in zip(self.blobs, inputs):
            top.copy_from(bottom)

    def _backward(self, inputs: Sequence[Blob], diffs: Sequence[Optional[Blob]]) -> None:
        for top_diff, diff in zip(self.blobs_diff, diffs):
            if diff is not None:
                diff.copy_from(top_diff)


@LayerRegistry.register(PowerLayer)
class PowerState(LayerState):
    def _setup(self, inputs: List[Blob], diffs: List[Optional[Blob]]) -> None:
        for blob in inputs:
            self.add_top(blob.shape, blob.dtype)

    def _base(self, bottom: Blob):
        layer = self.layer
        return layer.shift + layer.scale * bottom.data

    def _forward(self, inputs: Sequence[Blob]) -> None:
        xp = self.backend.xp
        power = self.layer.power
        for top, bottom in zip(self.blobs, inputs):
            if power == 0:
                top.fill(1)
            elif power == 1:
                top.data[...] = self._base(bottom)
            else:
                xp.power(self._base(bottom), power, out=top.data)

    def _backward(self, inputs: Sequence[Blob], diffs: Sequence[Optional[Blob]]) -> None:
        xp = self.backend.xp
        layer = self.layer
        for top_diff, bottom, diff in zip(self.blobs_diff, inputs, diffs):
            if diff is None:
                continue
            if layer.power == 0:
                diff.fill(0)
            elif layer.power == 1:
                diff.data[...] = layer.scale * top_diff.data
            else:
                local = layer.power * layer.scale * xp.power(self._base(bottom), layer.power - 1)
                diff.data[...] = local * top_diff.data


@LayerRegistry.register(ElementWiseLayer)
class ElementWiseState(LayerState):
    def _setup(self, inputs: List[Blob], diffs: List[Optional[Blob]]) -> None:
        check_same_shape(self.layer, inputs, 0, 1)
        self.add_top(inputs[0].shape, inputs[0].dtype)

    def _forward(self, inputs: Sequence[Blob]) -> None:
        xp = self.backend.xp
        a, b, out = inputs[0].data, inputs[1].data, self.blobs[0].data
        op = self.layer.operation
        if isinstance(op, Add):
            xp.add(a, b, out=out)
        elif isinstance(op, Subtract):
            xp.subtract(a, b, out=out)
        elif isinstance(op, Multiply):
            xp.multiply(a, b, out=out)
        elif isinstance(op, Divide):
            xp.divide(a, b, out=out)
        else:
            raise NotImplementedError(f"Unsupported element-wise operation {op!r}")

    def _backward(self, inputs: Sequence[Blob], diffs: Sequence[Optional[Blob]]) -> None:
        a, b = inputs[0].data, inputs[1].data
        delta = self.blobs_diff[0].data
        op = self.layer.operation
        if isinstance(op, Add):
            grads = (lambda: delta, lambda: delta)
        elif isinstance(op, Subtract):
            grads = (lambda: delta, lambda: -delta)
        elif isinstance(op, Multiply):
            grads = (lambda: delta * b, lambda: delta * a)
        elif isinstance(op, Divide):
            grads = (lambda: delta / b, lambda: -delta * a / (b * b))
        else:
            raise NotImplementedError(f"Unsupported element-wise operation {op!r}")

        for diff, grad in zip(diffs, grads):
            if diff is not None:
                diff.data[...] = grad()
