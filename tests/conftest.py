import pytest
import numpy as np
from blobnet import Settings, get_backend


def _gpu_available():
    try:
        import cupy
        return cupy.cuda.runtime.getDeviceCount() > 0
    except Exception:
        return False


GPU_AVAILABLE = _gpu_available()


@pytest.fixture(params=['cpu', pytest.param('gpu', marks=pytest.mark.skipif(
    not GPU_AVAILABLE, reason="cupy or a CUDA device is not available"))])
def backend(request):
    backend = get_backend(request.param, Settings(backend=request.param, seed=1234))
    yield backend
    backend.shutdown()


@pytest.fixture
def cpu_backend():
    backend = get_backend('cpu', Settings(seed=1234))
    yield backend
    backend.shutdown()


@pytest.fixture
def rng():
    return np.random.default_rng(42)
