"""blobnet: a layer-based neural network engine with explicit forward/backward passes."""

__version__ = "0.1.0"

from blobnet.config import Settings
from blobnet.util.netlog import setup_logging

default_log = setup_logging(name="blobnet", level=Settings.from_env().log_level)

# Import core components
from blobnet.core import (Blob, Backend, CPUBackend, get_backend,
                          BlobNetError, ConfigurationError, ShapeMismatchError,
                          UnboundSymbolError, TrainabilityError, BackendError)

# Import neurons and layers
from blobnet.nn import neurons
from blobnet.nn.neurons import ActivationFunction, get_neuron
from blobnet.nn.layers import (
    GaussianReconLossLayer, EncoderLossLayer, SquareLossLayer,
    InnerProductLayer, TiedInnerProductLayer,
    IdentityLayer, PowerLayer, ElementWiseLayer, RandomNormalLayer,
)
from blobnet.nn.net import Net

# Import optimizers
from blobnet.optim import Adam

__all__ = [
    "Settings",
    "Blob", "Backend", "CPUBackend", "get_backend",
    "BlobNetError", "ConfigurationError", "ShapeMismatchError",
    "UnboundSymbolError", "TrainabilityError", "BackendError",
    "neurons", "ActivationFunction", "get_neuron",
    "GaussianReconLossLayer", "EncoderLossLayer", "SquareLossLayer",
    "InnerProductLayer", "TiedInnerProductLayer",
    "IdentityLayer", "PowerLayer", "ElementWiseLayer", "RandomNormalLayer",
    "Net",
    "Adam",
]
