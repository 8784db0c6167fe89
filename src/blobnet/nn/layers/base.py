from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Type

from blobnet.core.blob import Blob, check_backend
from blobnet.core.errors import ConfigurationError, ShapeMismatchError, TrainabilityError
from blobnet.nn.parameter import Parameter, ParameterRegistry
from blobnet.util.netlog import get_logger

log = get_logger(__name__)


class Trainability(Enum):
    REQUIRED = 'required'  # a diff blob must be supplied
    OPTIONAL = 'optional'
    FIXED = 'fixed'        # the diff slot must be None


@dataclass(frozen=True)
class Layer:
    """Configuration of a layer. ``setup`` turns it into a LayerState."""
    name: str = ''
    bottoms: Tuple[str, ...] = ()
    tops: Tuple[str, ...] = ()

    is_loss = False
    n_bottoms = None
    n_tops = None

    def __post_init__(self):
        object.__setattr__(self, 'bottoms', tuple(self.bottoms))
        object.__setattr__(self, 'tops', tuple(self.tops))
        if not self.name:
            object.__setattr__(self, 'name', type(self).__name__)
        if self.n_bottoms is not None and len(self.bottoms) != self.n_bottoms:
            raise ConfigurationError(
                f"{self.name}: expected {self.n_bottoms} bottom(s), got {len(self.bottoms)}")
        if self.n_tops is not None and len(self.tops) != self.n_tops:
            raise ConfigurationError(
                f"{self.name}: expected {self.n_tops} top(s), got {len(self.tops)}")

    def bottom_trainability(self) -> Tuple[Trainability, ...]:
        return (Trainability.OPTIONAL,) * len(self.bottoms)

    def setup(self, backend, inputs: Sequence[Blob], diffs: Sequence[Optional[Blob]],
              params: Optional[ParameterRegistry] = None) -> 'LayerState':
        state_cls = LayerRegistry.get(type(self))
        return state_cls.create(backend, self, list(inputs), list(diffs), params)


class LayerState:
    """Runtime state of a layer: output blobs, their diffs, scratch and parameter references.

    Subclasses implement ``_setup``, ``_forward`` and ``_backward``. Blobs created
    through ``allocate`` are released by ``shutdown``.
    """

    def __init__(self, backend, layer: Layer, params: Optional[ParameterRegistry]):
        self.backend = backend
        self.layer = layer
        self.blobs: List[Blob] = []
        self.blobs_diff: List[Optional[Blob]] = []
        self.parameters: List[Parameter] = []
        self.loss = 0.0
        self._owns_params = params is None
        self.params = params if params is not None else ParameterRegistry(backend)
        self._owned: List[Blob] = []
        self._input_shapes: Tuple[Tuple[int, ...], ...] = ()
        self._diff_mask: Tuple[bool, ...] = ()
        self.released = False

    @classmethod
    def create(cls, backend, layer: Layer, inputs: List[Blob], diffs: List[Optional[Blob]],
               params: Optional[ParameterRegistry]) -> 'LayerState':
        validate_io(backend, layer, inputs, diffs)
        state = cls(backend, layer, params)
        try:
            state._setup(inputs, diffs)
        except BaseException:
            state.shutdown()
            raise
        state._input_shapes = tuple(b.shape for b in inputs)
        state._diff_mask = tuple(d is not None for d in diffs)
        log.debug("Set up %s on %r", layer.name, backend)
        return state

    def allocate(self, shape_or_array, dtype=None) -> Blob:
        blob = self.backend.make_blob(shape_or_array, dtype=dtype)
        self._owned.append(blob)
        return blob

    def add_top(self, shape, dtype, with_diff: bool = True) -> Blob:
        blob = self.allocate(shape, dtype)
        self.blobs.append(blob)
        self.blobs_diff.append(self.allocate(shape, dtype) if with_diff else None)
        return blob

    def forward(self, inputs: Sequence[Blob]) -> None:
        self._check_inputs(inputs)
        self._forward(inputs)

    def backward(self, inputs: Sequence[Blob], diffs: Sequence[Optional[Blob]]) -> None:
        self._check_inputs(inputs)
        mask = tuple(d is not None for d in diffs)
        if mask != self._diff_mask:
            raise ValueError(f"{self.layer.name}: diffs {mask} do not match the setup layout {self._diff_mask}")
        self._backward(inputs, diffs)

    def shutdown(self) -> None:
        if self.released:
            return
        for blob in self._owned:
            blob.shutdown()
        self._owned = []
        if self._owns_params:
            self.params.shutdown()
        self.released = True
        log.debug("Shut down %s", self.layer.name)

    def __enter__(self) -> 'LayerState':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def _check_inputs(self, inputs: Sequence[Blob]) -> None:
        shapes = tuple(b.shape for b in inputs)
        if shapes != self._input_shapes:
            raise ValueError(f"{self.layer.name}: inputs {shapes} do not match the setup shapes {self._input_shapes}")

    def _setup(self, inputs: List[Blob], diffs: List[Optional[Blob]]) -> None:
        pass

    def _forward(self, inputs: Sequence[Blob]) -> None:
        raise NotImplementedError

    def _backward(self, inputs: Sequence[Blob], diffs: Sequence[Optional[Blob]]) -> None:
        pass


def validate_io(backend, layer: Layer, inputs: List[Blob], diffs: List[Optional[Blob]]) -> None:
    if len(inputs) != len(layer.bottoms):
        raise ConfigurationError(
            f"{layer.name}: {len(layer.bottoms)} bottom(s) declared but {len(inputs)} input blob(s) given")
    if len(diffs) != len(inputs):
        raise ConfigurationError(f"{layer.name}: {len(inputs)} inputs but {len(diffs)} diffs")
    check_backend(backend, inputs)
    check_backend(backend, diffs)

    for i, (blob, diff, mode) in enumerate(zip(inputs, diffs, layer.bottom_trainability())):
        symbol = layer.bottoms[i]
        if mode is Trainability.FIXED and diff is not None:
            raise TrainabilityError(f"{layer.name}: '{symbol}' is a fixed input and takes no diff blob")
        if mode is Trainability.REQUIRED and diff is None:
            raise TrainabilityError(f"{layer.name}: '{symbol}' is trainable and needs a diff blob")
        if diff is not None and diff.shape != blob.shape:
            raise ShapeMismatchError(
                f"{layer.name}: diff for '{symbol}' has shape {diff.shape}, input has {blob.shape}")


def check_same_shape(layer: Layer, inputs: Sequence[Blob], *indices: int) -> None:
    reference = inputs[indices[0]]
    for i in indices[1:]:
        if inputs[i].shape != reference.shape:
            raise ShapeMismatchError(
                f"{layer.name}: '{layer.bottoms[i]}' has shape {inputs[i].shape}, "
                f"'{layer.bottoms[indices[0]]}' has {reference.shape}")


class LayerRegistry:
    _states: Dict[Type[Layer], Type[LayerState]] = {}

    @classmethod
    def register(cls, layer_cls: Type[Layer]):
        def wrapper(state_cls: Type[LayerState]) -> Type[LayerState]:
            cls._states[layer_cls] = state_cls
            return state_cls
        return wrapper

    @classmethod
    def get(cls, layer_cls: Type[Layer]) -> Type[LayerState]:
        try:
            return cls._states[layer_cls]
        except KeyError:
            raise NotImplementedError(f"No implementation registered for {layer_cls.__name__}") from None

    @classmethod
    def list_layers(cls) -> list:
        return [layer_cls.__name__ for layer_cls in cls._states]
