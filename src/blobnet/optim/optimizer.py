from abc import ABC, abstractmethod
from typing import List, Dict, Any, Iterable, Union
from collections import defaultdict
from blobnet.nn.parameter import Parameter

class Optimizer(ABC):
    """Update rule over parameter groups. The iteration loop belongs to the caller."""

    def __init__(self, params: Iterable[Union[Parameter, Dict[str, Any]]], defaults: Dict[str, Any]):
        self.defaults = defaults
        self.state: Dict[Parameter, Dict[str, Any]] = defaultdict(dict)
        self.param_groups: List[Dict[str, Any]] = []

        param_groups = list(params)
        if len(param_groups) == 0:
            raise ValueError("optimizer got an empty parameter list")
        if not isinstance(param_groups[0], dict):
            param_groups = [{'params': param_groups}]

        for param_group in param_groups:
            self.add_param_group(param_group)

    def zero_grad(self) -> None:
        """Clears the gradients of all optimized parameters."""
        for group in self.param_groups:
            for p in group['params']:
                p.zero_grad()

    @abstractmethod
    def step(self) -> None:
        """Performs a single optimization step."""
        raise NotImplementedError

    def add_param_group(self, param_group: Dict[str, Any]) -> None:
        """Adds a parameter group to the optimizer's param_groups."""
        if not isinstance(param_group, dict):
            raise TypeError("param group must be a dict")

        params = param_group['params']
        if isinstance(params, Parameter):
            param_group['params'] = [params]
        elif isinstance(params, set):
            raise TypeError('optimizer parameters need to be organized in ordered collections, '
                            'but the ordering of parameters in sets will change between runs.')
        else:
            param_group['params'] = list(params)

        for param in param_group['params']:
            if not isinstance(param, Parameter):
                raise TypeError("optimizer can only optimize Parameters, "
                                "but one of the params is " + type(param).__name__)

        for name, default in self.defaults.items():
            param_group.setdefault(name, default)

        param_set = set()
        for group in self.param_groups:
            param_set.update(set(group['params']))

        if not param_set.isdisjoint(set(param_group['params'])):
            raise ValueError("some parameters appear in more than one parameter group")

        self.param_groups.append(param_group)
