from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence, Type, Union
import numpy as np

from blobnet.config import Settings
from blobnet.util.netlog import get_logger
from .blob import Blob
from .errors import BackendError
from .memory import MemoryManager

log = get_logger(__name__)

ShapeOrArray = Union[Sequence[int], np.ndarray]


class Backend(ABC):
    kind: str = ''

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings.from_env()
        self.dtype = np.dtype(self.settings.dtype)
        self.memory = MemoryManager()
        self.rng = np.random.default_rng(self.settings.seed)
        self.initialized = False

    @property
    @abstractmethod
    def xp(self):
        """Array module (numpy or cupy) used for kernels on this backend."""

    def init(self) -> 'Backend':
        self.initialized = True
        log.debug("Initialized %r", self)
        return self

    def shutdown(self) -> None:
        if not self.initialized:
            return
        leaked = self.memory.release_all()
        if leaked:
            log.warning("%r released %d blob(s) still alive at shutdown", self, leaked)
        self.initialized = False

    def __enter__(self) -> 'Backend':
        return self.init() if not self.initialized else self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def make_blob(self, shape_or_array: ShapeOrArray, dtype=None) -> Blob:
        if isinstance(shape_or_array, np.ndarray):
            host = np.asarray(shape_or_array)
            if host.ndim == 0:
                raise ValueError("Blobs need at least one dimension")
            dtype = np.dtype(dtype or (host.dtype if host.dtype.kind == 'f' else self.dtype))
            blob = Blob(self, self._to_device(np.ascontiguousarray(host, dtype=dtype)))
        else:
            shape = tuple(int(d) for d in shape_or_array)
            if not shape or any(d <= 0 for d in shape):
                raise ValueError(f"Invalid blob shape: {shape}")
            blob = Blob(self, self._allocate(shape, np.dtype(dtype or self.dtype)))
        self.memory.register_blob(blob)
        return blob

    def upload(self, blob: Blob, array: np.ndarray) -> None:
        host = np.asarray(array)
        if host.size != blob.size:
            raise ValueError(f"Cannot copy array of {host.size} elements into blob of {blob.size}")
        self._write(blob, np.ascontiguousarray(host.reshape(blob.shape), dtype=blob.dtype))

    def download(self, blob: Blob) -> np.ndarray:
        return self._read(blob)

    def live_blobs(self):
        return self.memory.live_blobs()

    def memory_usage(self) -> int:
        return self.memory.get_memory_usage()

    @abstractmethod
    def _allocate(self, shape, dtype):
        pass

    @abstractmethod
    def _to_device(self, host: np.ndarray):
        pass

    @abstractmethod
    def _write(self, blob: Blob, host: np.ndarray) -> None:
        pass

    @abstractmethod
    def _read(self, blob: Blob) -> np.ndarray:
        pass

    @abstractmethod
    def random_normal(self, shape, dtype):
        pass


class CPUBackend(Backend):
    kind = 'cpu'

    @property
    def xp(self):
        return np

    def _allocate(self, shape, dtype):
        try:
            return np.zeros(shape, dtype=dtype)
        except MemoryError as e:
            raise BackendError(f"Failed to allocate blob of shape {shape}") from e

    def _to_device(self, host: np.ndarray):
        return host.copy()

    def _write(self, blob: Blob, host: np.ndarray) -> None:
        blob.data[...] = host

    def _read(self, blob: Blob) -> np.ndarray:
        return blob.data.copy()

    def random_normal(self, shape, dtype):
        return self.rng.standard_normal(shape).astype(dtype)


class BackendRegistry:
    _backends: Dict[str, Type[Backend]] = {}

    @classmethod
    def register(cls, name: str):
        def wrapper(backend_cls: Type[Backend]) -> Type[Backend]:
            cls._backends[name] = backend_cls
            return backend_cls
        return wrapper

    @classmethod
    def get(cls, name: str) -> Optional[Type[Backend]]:
        if name == 'gpu' and name not in cls._backends:
            try:
                import blobnet.cuda  # noqa: F401  registers GPUBackend
            except ImportError as e:
                raise BackendError("GPU backend requires cupy (pip install blobnet[gpu])") from e
        return cls._backends.get(name)

    @classmethod
    def list_backends(cls) -> list:
        return list(cls._backends.keys())


BackendRegistry.register('cpu')(CPUBackend)


def get_backend(kind: Optional[str] = None, settings: Optional[Settings] = None) -> Backend:
    settings = settings or Settings.from_env()
    kind = kind or settings.backend
    backend_cls = BackendRegistry.get(kind)
    if backend_cls is None:
        raise BackendError(f"Unknown backend '{kind}'. Available: {BackendRegistry.list_backends()}")
    return backend_cls(settings).init()
