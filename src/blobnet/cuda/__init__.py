"""
GPU backend built on CuPy.

Importing this package registers the 'gpu' backend and its neuron kernels:

    pip install blobnet[gpu]   # cupy-cuda12x
"""
from .backend import GPUBackend
from . import neurons

__all__ = ['GPUBackend']
