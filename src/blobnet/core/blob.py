from typing import Optional, Sequence, Tuple, Union
import numpy as np
from .errors import BackendError

class Blob:
    """A fixed-shape buffer living on one backend.

    The last axis is the batch axis. Shape and dtype never change after
    creation; contents are mutated in place by layers and neurons.
    """

    def __init__(self, backend: 'Backend', data):
        self._backend = backend
        self._data = data
        self._shape: Tuple[int, ...] = tuple(int(d) for d in data.shape)
        self._dtype = np.dtype(data.dtype)

    @property
    def backend(self) -> 'Backend':
        return self._backend

    @property
    def data(self):
        if self._data is None:
            raise BackendError(f"Blob {self._shape} has been released")
        return self._data

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._shape

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def ndim(self) -> int:
        return len(self._shape)

    @property
    def size(self) -> int:
        return int(np.prod(self._shape))

    @property
    def nbytes(self) -> int:
        return self.size * self._dtype.itemsize

    @property
    def num(self) -> int:
        """Batch size: the extent of the last axis."""
        return self._shape[-1]

    @property
    def fea_size(self) -> int:
        return self.size // self.num

    @property
    def is_released(self) -> bool:
        return self._data is None

    def __len__(self) -> int:
        return self.size

    def __repr__(self) -> str:
        state = 'released' if self.is_released else self._backend.kind
        return f"Blob(shape={self._shape}, dtype={self._dtype.name}, {state})"

    def flat(self):
        """View of the data as a 1-D array sharing storage."""
        return self.data.reshape(-1)

    def matrix(self):
        """View of the data as (features, batch)."""
        return self.data.reshape(self.fea_size, self.num)

    def fill(self, value: float) -> None:
        self.data.fill(value)

    def copy_from(self, source: Union['Blob', np.ndarray]) -> None:
        if isinstance(source, Blob):
            _check_same_backend(self, source)
            if source.size != self.size:
                raise ValueError(f"Cannot copy {source.shape} into {self.shape}")
            self.data[...] = source.data.reshape(self._shape)
        else:
            self._backend.upload(self, source)

    def to_numpy(self) -> np.ndarray:
        return self._backend.download(self)

    def shutdown(self) -> None:
        if self._data is None:
            return
        self._data = None
        self._backend.memory.release_blob(self)


def _check_same_backend(a: Blob, b: Blob) -> None:
    if a.backend is not b.backend:
        raise BackendError(f"Blobs live on different backends: {a.backend!r} and {b.backend!r}")


def check_backend(backend: 'Backend', blobs: Sequence[Optional[Blob]]) -> None:
    for blob in blobs:
        if blob is not None and blob.backend is not backend:
            raise BackendError(f"{blob!r} does not belong to {backend!r}")
