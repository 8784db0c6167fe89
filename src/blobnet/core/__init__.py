from .blob import Blob
from .backend import Backend, CPUBackend, BackendRegistry, get_backend
from .dispatch import KernelRegistry, register_kernel
from .errors import (BlobNetError, ConfigurationError, ShapeMismatchError,
                     UnboundSymbolError, TrainabilityError, BackendError)
from .memory import MemoryManager

__all__ = [
    'Blob',
    'Backend', 'CPUBackend', 'BackendRegistry', 'get_backend',
    'KernelRegistry', 'register_kernel',
    'BlobNetError', 'ConfigurationError', 'ShapeMismatchError',
    'UnboundSymbolError', 'TrainabilityError', 'BackendError',
    'MemoryManager',
]
