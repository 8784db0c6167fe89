from .optimizer import Optimizer
from .adam import Adam

__all__ = ['Optimizer', 'Adam']
