import numpy as np
import cupy as cp
from typing import Optional

from blobnet.config import Settings
from blobnet.core.backend import Backend, BackendRegistry
from blobnet.core.blob import Blob
from blobnet.core.errors import BackendError

@BackendRegistry.register('gpu')
class GPUBackend(Backend):
    kind = 'gpu'

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.device_id = self.settings.device_id
        self._device = None
        self._memory_pool = cp.get_default_memory_pool()
        self._rng = None

    @property
    def xp(self):
        return cp

    def __repr__(self) -> str:
        return f"GPUBackend(device_id={self.device_id})"

    def init(self) -> 'GPUBackend':
        try:
            self._device = cp.cuda.Device(self.device_id)
            self._device.use()
        except cp.cuda.runtime.CUDARuntimeError as e:
            raise BackendError(f"CUDA device {self.device_id} not available") from e
        self._rng = cp.random.RandomState(self.settings.seed)
        return super().init()

    def shutdown(self) -> None:
        if not self.initialized:
            return
        super().shutdown()
        self._memory_pool.free_all_blocks()

    def _allocate(self, shape, dtype):
        try:
            return cp.zeros(shape, dtype=dtype)
        except cp.cuda.memory.OutOfMemoryError as e:
            raise BackendError(f"Failed to allocate blob of shape {shape} on {self!r}") from e

    def _to_device(self, host: np.ndarray):
        return cp.array(host)

    def _write(self, blob: Blob, host: np.ndarray) -> None:
        blob.data.set(host)

    def _read(self, blob: Blob) -> np.ndarray:
        return cp.asnumpy(blob.data)

    def random_normal(self, shape, dtype):
        return self._rng.standard_normal(shape, dtype=dtype)
