from . import neurons
from .neurons import ActivationFunction, get_neuron
from .parameter import Parameter, ParameterRegistry
from .layers import *  # noqa: F401,F403
from .layers import __all__ as _layers_all
from .net import Net

__all__ = ['neurons', 'ActivationFunction', 'get_neuron', 'Parameter', 'ParameterRegistry',
           'Net'] + list(_layers_all)
