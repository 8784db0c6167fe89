import cupy as cp

from blobnet.core.dispatch import register_kernel
from blobnet.nn.neurons import (ReLU, LReLU, ExpReLU, EpsReLU, Sigmoid, PSigmoid,
                                Tanh, Exponential)

_relu_fwd = cp.ElementwiseKernel('T epsilon', 'T y', 'y = max(y, epsilon)', 'blobnet_relu_fwd')
_relu_bwd = cp.ElementwiseKernel('T y, T epsilon', 'T g', 'g *= (y > epsilon) ? (T)1 : (T)0',
                                 'blobnet_relu_bwd')
_lrelu_fwd = cp.ElementwiseKernel('', 'T y', 'y = y > 0 ? y : (T)0.01 * y', 'blobnet_lrelu_fwd')
_lrelu_bwd = cp.ElementwiseKernel('T y', 'T g', 'g *= y > 0 ? (T)1 : (T)0.01', 'blobnet_lrelu_bwd')
_exprelu_fwd = cp.ElementwiseKernel('T t', 'T y', 'y = y < t ? exp(y) : exp(t) + (y - t)',
                                    'blobnet_exprelu_fwd')
_exprelu_bwd = cp.ElementwiseKernel('T y, T t', 'T g', 'g *= y < t ? exp(y) : (T)1',
                                    'blobnet_exprelu_bwd')
_epsrelu_fwd = cp.ElementwiseKernel('', 'T y', 'y = (T)1e-3 + (y >= 0 ? y : (T)0)', 'blobnet_epsrelu_fwd')
_epsrelu_bwd = cp.ElementwiseKernel('T y', 'T g', 'g *= y < 0 ? (T)1 : (T)0', 'blobnet_epsrelu_bwd')
_sigmoid_fwd = cp.ElementwiseKernel('T offset', 'T y', 'y = offset + (T)1 / ((T)1 + exp(-y))',
                                    'blobnet_sigmoid_fwd')
_sigmoid_bwd = cp.ElementwiseKernel('T y', 'T g', 'g *= y * ((T)1 - y)', 'blobnet_sigmoid_bwd')
_tanh_fwd = cp.ElementwiseKernel('', 'T y', 'y = tanh(y)', 'blobnet_tanh_fwd')
_tanh_bwd = cp.ElementwiseKernel('T y', 'T g', 'g *= (T)1 - y * y', 'blobnet_tanh_bwd')
_exp_fwd = cp.ElementwiseKernel('', 'T y', 'y = exp(y)', 'blobnet_exp_fwd')
_exp_bwd = cp.ElementwiseKernel('T y', 'T g', 'g *= y', 'blobnet_exp_bwd')


def _scalar(blob, value):
    return blob.dtype.type(value)


@register_kernel('neuron_forward', ReLU, 'gpu')
def _gpu_relu_forward(neuron, output):
    _relu_fwd(_scalar(output, neuron.epsilon), output.data)


@register_kernel('neuron_backward', ReLU, 'gpu')
def _gpu_relu_backward(neuron, output, gradient):
    _relu_bwd(output.data, _scalar(output, neuron.epsilon), gradient.data)


@register_kernel('neuron_forward', LReLU, 'gpu')
def _gpu_lrelu_forward(neuron, output):
    _lrelu_fwd(output.data)


@register_kernel('neuron_backward', LReLU, 'gpu')
def _gpu_lrelu_backward(neuron, output, gradient):
    _lrelu_bwd(output.data, gradient.data)


@register_kernel('neuron_forward', ExpReLU, 'gpu')
def _gpu_exprelu_forward(neuron, output):
    _exprelu_fwd(_scalar(output, neuron.t), output.data)


@register_kernel('neuron_backward', ExpReLU, 'gpu')
def _gpu_exprelu_backward(neuron, output, gradient):
    _exprelu_bwd(output.data, _scalar(output, neuron.t), gradient.data)


@register_kernel('neuron_forward', EpsReLU, 'gpu')
def _gpu_epsrelu_forward(neuron, output):
    _epsrelu_fwd(output.data)


@register_kernel('neuron_backward', EpsReLU, 'gpu')
def _gpu_epsrelu_backward(neuron, output, gradient):
    _epsrelu_bwd(output.data, gradient.data)


@register_kernel('neuron_forward', Sigmoid, 'gpu')
def _gpu_sigmoid_forward(neuron, output):
    _sigmoid_fwd(_scalar(output, 0.0), output.data)


@register_kernel('neuron_forward', PSigmoid, 'gpu')
def _gpu_psigmoid_forward(neuron, output):
    _sigmoid_fwd(_scalar(output, 1e-4), output.data)


@register_kernel('neuron_backward', Sigmoid, 'gpu')
@register_kernel('neuron_backward', PSigmoid, 'gpu')
def _gpu_sigmoid_backward(neuron, output, gradient):
    _sigmoid_bwd(output.data, gradient.data)


@register_kernel('neuron_forward', Tanh, 'gpu')
def _gpu_tanh_forward(neuron, output):
    _tanh_fwd(output.data)


@register_kernel('neuron_backward', Tanh, 'gpu')
def _gpu_tanh_backward(neuron, output, gradient):
    _tanh_bwd(output.data, gradient.data)


@register_kernel('neuron_forward', Exponential, 'gpu')
def _gpu_exp_forward(neuron, output):
    _exp_fwd(output.data)


@register_kernel('neuron_backward', Exponential, 'gpu')
def _gpu_exp_backward(neuron, output, gradient):
    _exp_bwd(output.data, gradient.data)
