"""Activation functions (neurons) applied in place to a layer's output.

Each neuron is a frozen dataclass; the arithmetic lives in kernels registered
per backend kind. ``backward`` evaluates the derivative on the values already
stored in ``output`` (the post-activation), so pre-activations never need to
be kept around.
"""
import math
from dataclasses import dataclass
from typing import Dict, Type, Union

import numba

from blobnet.core.blob import Blob, check_backend
from blobnet.core.dispatch import KernelRegistry, register_kernel

__all__ = [
    'ActivationFunction', 'Identity', 'ReLU', 'LReLU', 'ExpReLU', 'EpsReLU',
    'Sigmoid', 'PSigmoid', 'Tanh', 'Exponential',
    'forward', 'backward', 'get_neuron',
]


class ActivationFunction:
    pass


@dataclass(frozen=True)
class Identity(ActivationFunction):
    pass


@dataclass(frozen=True)
class ReLU(ActivationFunction):
    epsilon: float = 0.0  # floor value


@dataclass(frozen=True)
class LReLU(ActivationFunction):
    pass


@dataclass(frozen=True)
class ExpReLU(ActivationFunction):
    t: float = 0.0


@dataclass(frozen=True)
class EpsReLU(ActivationFunction):
    pass


@dataclass(frozen=True)
class Sigmoid(ActivationFunction):
    pass


@dataclass(frozen=True)
class PSigmoid(ActivationFunction):
    pass


@dataclass(frozen=True)
class Tanh(ActivationFunction):
    pass


@dataclass(frozen=True)
class Exponential(ActivationFunction):
    pass


def forward(backend, neuron: ActivationFunction, output: Blob) -> None:
    check_backend(backend, [output])
    kernel = KernelRegistry.get('neuron_forward', type(neuron), backend.kind)
    kernel(neuron, output)


def backward(backend, neuron: ActivationFunction, output: Blob, gradient: Blob) -> None:
    if output is gradient:
        raise ValueError("output and gradient must be distinct blobs")
    if output.shape != gradient.shape:
        raise ValueError(f"output {output.shape} and gradient {gradient.shape} differ in shape")
    check_backend(backend, [output, gradient])
    kernel = KernelRegistry.get('neuron_backward', type(neuron), backend.kind)
    kernel(neuron, output, gradient)


NEURONS: Dict[str, Type[ActivationFunction]] = {
    'identity': Identity,
    'linear': Identity,
    'relu': ReLU,
    'lrelu': LReLU,
    'leaky_relu': LReLU,
    'exprelu': ExpReLU,
    'epsrelu': EpsReLU,
    'sigmoid': Sigmoid,
    'psigmoid': PSigmoid,
    'tanh': Tanh,
    'exponential': Exponential,
    'exp': Exponential,
}


def get_neuron(name: Union[str, ActivationFunction, None], **kwargs) -> ActivationFunction:
    """Get a neuron by name, e.g. ``get_neuron('relu', epsilon=1e-3)``."""
    if isinstance(name, ActivationFunction):
        return name
    if name is None:
        return Identity()

    name_lower = name.lower().replace('-', '_')
    if name_lower not in NEURONS:
        available = ', '.join(sorted(NEURONS.keys()))
        raise ValueError(f"Unknown neuron '{name}'. Available: {available}")
    return NEURONS[name_lower](**kwargs)


############################################################
# Identity: nothing to do on any backend
############################################################

@register_kernel('neuron_forward', Identity, 'cpu', 'gpu')
def _identity_forward(neuron, output):
    pass


@register_kernel('neuron_backward', Identity, 'cpu', 'gpu')
def _identity_backward(neuron, output, gradient):
    pass


############################################################
# CPU kernels. Each loop body touches a single element, so the
# parallel loops are deterministic.
############################################################

@numba.jit(nopython=True, parallel=True)
def _relu_fwd(y, epsilon):
    for i in numba.prange(y.shape[0]):
        y[i] = max(epsilon, y[i])


@numba.jit(nopython=True, parallel=True)
def _relu_bwd(y, g, epsilon):
    for i in numba.prange(y.shape[0]):
        g[i] *= 1.0 if y[i] > epsilon else 0.0


@numba.jit(nopython=True, parallel=True)
def _lrelu_fwd(y):
    for i in numba.prange(y.shape[0]):
        y[i] = y[i] if y[i] > 0 else 0.01 * y[i]


@numba.jit(nopython=True, parallel=True)
def _lrelu_bwd(y, g):
    for i in numba.prange(y.shape[0]):
        g[i] *= 1.0 if y[i] > 0 else 0.01


@numba.jit(nopython=True, parallel=True)
def _exprelu_fwd(y, t):
    for i in numba.prange(y.shape[0]):
        x = y[i]
        y[i] = math.exp(x) if x < t else math.exp(t) + (x - t)


@numba.jit(nopython=True, parallel=True)
def _exprelu_bwd(y, g, t):
    # Reads the stored value as if it were the pre-activation.
    for i in numba.prange(y.shape[0]):
        x = y[i]
        g[i] *= math.exp(x) if x < t else 1.0


@numba.jit(nopython=True, parallel=True)
def _epsrelu_fwd(y):
    for i in numba.prange(y.shape[0]):
        x = y[i]
        y[i] = 1e-3 + (x if x >= 0.0 else 0.0)


@numba.jit(nopython=True, parallel=True)
def _epsrelu_bwd(y, g):
    # TODO: gradient is zero wherever the unit is active; confirm against the
    # intended epsilon-rectifier derivative before changing it.
    for i in numba.prange(y.shape[0]):
        g[i] *= 1.0 if y[i] < 0.0 else 0.0


@numba.jit(nopython=True, parallel=True)
def _sigmoid_fwd(y, offset):
    for i in numba.prange(y.shape[0]):
        y[i] = offset + 1.0 / (1.0 + math.exp(-y[i]))


@numba.jit(nopython=True, parallel=True)
def _sigmoid_bwd(y, g):
    for i in numba.prange(y.shape[0]):
        g[i] *= y[i] * (1 - y[i])


@numba.jit(nopython=True, parallel=True)
def _tanh_fwd(y):
    for i in numba.prange(y.shape[0]):
        y[i] = math.tanh(y[i])


@numba.jit(nopython=True, parallel=True)
def _tanh_bwd(y, g):
    for i in numba.prange(y.shape[0]):
        g[i] *= 1 - y[i] * y[i]


@numba.jit(nopython=True, parallel=True)
def _exp_fwd(y):
    for i in numba.prange(y.shape[0]):
        y[i] = math.exp(y[i])


@numba.jit(nopython=True, parallel=True)
def _exp_bwd(y, g):
    for i in numba.prange(y.shape[0]):
        g[i] *= y[i]


@register_kernel('neuron_forward', ReLU, 'cpu')
def _cpu_relu_forward(neuron, output):
    _relu_fwd(output.flat(), neuron.epsilon)


@register_kernel('neuron_backward', ReLU, 'cpu')
def _cpu_relu_backward(neuron, output, gradient):
    _relu_bwd(output.flat(), gradient.flat(), neuron.epsilon)


@register_kernel('neuron_forward', LReLU, 'cpu')
def _cpu_lrelu_forward(neuron, output):
    _lrelu_fwd(output.flat())


@register_kernel('neuron_backward', LReLU, 'cpu')
def _cpu_lrelu_backward(neuron, output, gradient):
    _lrelu_bwd(output.flat(), gradient.flat())


@register_kernel('neuron_forward', ExpReLU, 'cpu')
def _cpu_exprelu_forward(neuron, output):
    _exprelu_fwd(output.flat(), neuron.t)


@register_kernel('neuron_backward', ExpReLU, 'cpu')
def _cpu_exprelu_backward(neuron, output, gradient):
    _exprelu_bwd(output.flat(), gradient.flat(), neuron.t)


@register_kernel('neuron_forward', EpsReLU, 'cpu')
def _cpu_epsrelu_forward(neuron, output):
    _epsrelu_fwd(output.flat())


@register_kernel('neuron_backward', EpsReLU, 'cpu')
def _cpu_epsrelu_backward(neuron, output, gradient):
    _epsrelu_bwd(output.flat(), gradient.flat())


@register_kernel('neuron_forward', Sigmoid, 'cpu')
def _cpu_sigmoid_forward(neuron, output):
    _sigmoid_fwd(output.flat(), 0.0)


@register_kernel('neuron_forward', PSigmoid, 'cpu')
def _cpu_psigmoid_forward(neuron, output):
    _sigmoid_fwd(output.flat(), 1e-4)


# PSigmoid ignores its offset in the derivative.
@register_kernel('neuron_backward', Sigmoid, 'cpu')
@register_kernel('neuron_backward', PSigmoid, 'cpu')
def _cpu_sigmoid_backward(neuron, output, gradient):
    _sigmoid_bwd(output.flat(), gradient.flat())


@register_kernel('neuron_forward', Tanh, 'cpu')
def _cpu_tanh_forward(neuron, output):
    _tanh_fwd(output.flat())


@register_kernel('neuron_backward', Tanh, 'cpu')
def _cpu_tanh_backward(neuron, output, gradient):
    _tanh_bwd(output.flat(), gradient.flat())


@register_kernel('neuron_forward', Exponential, 'cpu')
def _cpu_exp_forward(neuron, output):
    _exp_fwd(output.flat())


@register_kernel('neuron_backward', Exponential, 'cpu')
def _cpu_exp_backward(neuron, output, gradient):
    _exp_bwd(output.flat(), gradient.flat())
