from collections import OrderedDict
from typing import Dict, Iterator, Optional, Tuple
import numpy as np

from blobnet.core.blob import Blob
from blobnet.core.errors import ConfigurationError, ShapeMismatchError
from blobnet.util.netlog import get_logger

log = get_logger(__name__)


class Parameter:
    """A trainable blob paired with the blob its gradient accumulates into."""

    def __init__(self, key: str, name: str, blob: Blob, gradient: Blob):
        self.key = key
        self.name = name
        self.blob = blob
        self.gradient = gradient

    @property
    def full_name(self) -> str:
        return f"{self.key}.{self.name}"

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.blob.shape

    def zero_grad(self) -> None:
        self.gradient.fill(0)

    def __repr__(self) -> str:
        return f"Parameter({self.full_name}, shape={self.shape})"


class ParameterRegistry:
    """Parameters keyed by ``param_key``, shared by layers that use the same key.

    One registry belongs to one Net; it owns every blob it hands out.
    """

    def __init__(self, backend):
        self.backend = backend
        self._params: Dict[str, Dict[str, Parameter]] = OrderedDict()
        self._released = False

    def register(self, key: str, name: str, initial: np.ndarray, dtype=None) -> Parameter:
        group = self._params.setdefault(key, OrderedDict())
        if name in group:
            param = group[name]
            if param.shape != tuple(initial.shape):
                raise ShapeMismatchError(
                    f"Parameter '{key}.{name}' already registered with shape {param.shape}, "
                    f"cannot share it with shape {tuple(initial.shape)}")
            log.debug("Sharing parameter %s", param.full_name)
            return param

        blob = self.backend.make_blob(initial, dtype=dtype)
        gradient = self.backend.make_blob(blob.shape, dtype=blob.dtype)
        param = Parameter(key, name, blob, gradient)
        group[name] = param
        log.debug("Registered %r", param)
        return param

    def lookup(self, key: str, name: str) -> Parameter:
        try:
            return self._params[key][name]
        except KeyError:
            raise ConfigurationError(
                f"No parameter '{name}' registered under key '{key}'. Tied layers must come "
                f"after the layer that owns the parameter") from None

    def get(self, key: str, name: str) -> Optional[Parameter]:
        return self._params.get(key, {}).get(name)

    def __iter__(self) -> Iterator[Parameter]:
        for group in self._params.values():
            yield from group.values()

    def __len__(self) -> int:
        return sum(len(group) for group in self._params.values())

    def zero_grad(self) -> None:
        for param in self:
            param.zero_grad()

    def shutdown(self) -> None:
        if self._released:
            return
        for param in self:
            param.blob.shutdown()
            param.gradient.shutdown()
        self._released = True
