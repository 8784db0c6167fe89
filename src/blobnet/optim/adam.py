import math
from typing import Iterable, Tuple
from .optimizer import Optimizer

class Adam(Optimizer):
    """Adam with bias-corrected moments and a fixed learning rate.

    Moment buffers live on each parameter's backend and are updated in place.
    """

    def __init__(self, params: Iterable, lr: float = 1e-3, betas: Tuple[float, float] = (0.9, 0.999),
                 eps: float = 1e-8, weight_decay: float = 0):
        if not 0.0 <= lr:
            raise ValueError(f"Invalid learning rate: {lr}")
        if not 0.0 <= eps:
            raise ValueError(f"Invalid epsilon value: {eps}")
        if not 0.0 <= betas[0] < 1.0:
            raise ValueError(f"Invalid beta parameter at index 0: {betas[0]}")
        if not 0.0 <= betas[1] < 1.0:
            raise ValueError(f"Invalid beta parameter at index 1: {betas[1]}")
        if not 0.0 <= weight_decay:
            raise ValueError(f"Invalid weight_decay value: {weight_decay}")

        defaults = dict(lr=lr, betas=betas, eps=eps, weight_decay=weight_decay)
        super().__init__(params, defaults)

    def reset(self):
        for group in self.param_groups:
            for p in group['params']:
                self.state[p].clear()

    def step(self) -> None:
        for group in self.param_groups:
            beta1, beta2 = group['betas']
            for p in group['params']:
                xp = p.blob.backend.xp
                state = self.state[p]

                # State initialization
                if len(state) == 0:
                    state['step'] = 0
                    # Exponential moving average of gradient values
                    state['exp_avg'] = xp.zeros_like(p.blob.data)
                    # Exponential moving average of squared gradient values
                    state['exp_avg_sq'] = xp.zeros_like(p.blob.data)

                state['step'] += 1
                self._update_param(p, state, beta1, beta2, group['lr'], group['weight_decay'], group['eps'])

    def _update_param(self, param, state, beta1: float, beta2: float, lr: float,
                      weight_decay: float, eps: float) -> None:
        xp = param.blob.backend.xp
        data = param.blob.data
        grad = param.gradient.data
        exp_avg, exp_avg_sq = state['exp_avg'], state['exp_avg_sq']
        step = state['step']

        if weight_decay != 0:
            grad = grad + weight_decay * data

        # Decay the first and second moment running average coefficient
        exp_avg *= beta1
        exp_avg += (1 - beta1) * grad
        exp_avg_sq *= beta2
        exp_avg_sq += (1 - beta2) * xp.square(grad)

        bias_correction1 = 1 - beta1 ** step
        bias_correction2 = 1 - beta2 ** step
        step_size = lr * math.sqrt(bias_correction2) / bias_correction1

        data -= step_size * exp_avg / (xp.sqrt(exp_avg_sq) + eps)
