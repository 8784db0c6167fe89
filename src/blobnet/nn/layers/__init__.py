from .base import Layer, LayerState, LayerRegistry, Trainability
from .loss import GaussianReconLossLayer, EncoderLossLayer, SquareLossLayer
from .inner_product import InnerProductLayer, TiedInnerProductLayer
from .elementwise import (IdentityLayer, PowerLayer, ElementWiseLayer,
                          ElementWiseFunctor, Add, Subtract, Multiply, Divide)
from .random import RandomNormalLayer

__all__ = [
    'Layer', 'LayerState', 'LayerRegistry', 'Trainability',
    'GaussianReconLossLayer', 'EncoderLossLayer', 'SquareLossLayer',
    'InnerProductLayer', 'TiedInnerProductLayer',
    'IdentityLayer', 'PowerLayer', 'ElementWiseLayer',
    'ElementWiseFunctor', 'Add', 'Subtract', 'Multiply', 'Divide',
    'RandomNormalLayer',
]
