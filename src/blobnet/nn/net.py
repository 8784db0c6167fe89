from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import networkx as nx
import numpy as np

from blobnet.core.blob import Blob
from blobnet.core.errors import ConfigurationError, ShapeMismatchError, UnboundSymbolError
from blobnet.nn.layers.base import Layer, LayerState, Trainability
from blobnet.nn.parameter import Parameter, ParameterRegistry
from blobnet.util.netlog import get_logger

log = get_logger(__name__)


class _Binding:
    """One blob bound to a symbol, with the diff its consumers write into."""

    def __init__(self, symbol: str, blob: Blob, diff: Optional[Blob], producer: Optional[int]):
        self.symbol = symbol
        self.blob = blob
        self.diff = diff
        self.producer = producer
        self.claimed = False
        self.consumers: List[int] = []
        # diffs from the second and later consumers, summed into ``diff``
        self.extra_diffs: List[Blob] = []


class Net:
    """An ordered list of layers wired through named blobs.

    Every bottom must be produced by an earlier layer or listed in ``inputs``
    (symbol -> shape or initial host array). ``forward`` runs the layers in
    order, ``backward`` in reverse.
    """

    def __init__(self, name: str, backend, layers: Iterable[Layer],
                 inputs: Optional[Mapping[str, Union[Sequence[int], np.ndarray]]] = None):
        self.name = name
        self.backend = backend
        self.layers: List[Layer] = list(layers)
        self.states: List[LayerState] = []
        self.params = ParameterRegistry(backend)
        self.graph = nx.DiGraph()
        self._bindings: Dict[str, _Binding] = {}
        self._inputs: Dict[str, Blob] = {}
        self._produced: List[List[_Binding]] = []
        self._layer_inputs: List[List[Blob]] = []
        self._layer_diffs: List[List[Optional[Blob]]] = []
        self._scratch: List[Blob] = []
        self.released = False

        try:
            self._build(inputs or {})
        except BaseException:
            self.shutdown()
            raise
        log.info("Constructed net '%s' with %d layer(s) and %d parameter blob(s) on %r",
                 name, len(self.layers), len(self.params), backend)

    def _build(self, inputs: Mapping) -> None:
        for symbol, initial in inputs.items():
            blob = self.backend.make_blob(initial)
            self._inputs[symbol] = blob
            self._bindings[symbol] = _Binding(symbol, blob, None, None)

        seen = set()
        for index, layer in enumerate(self.layers):
            if layer.name in seen:
                raise ConfigurationError(f"Net '{self.name}': duplicate layer name '{layer.name}'")
            seen.add(layer.name)
            self.graph.add_node(layer.name, index=index, is_loss=layer.is_loss)

            blobs, diffs = self._resolve_bottoms(index, layer)
            state = layer.setup(self.backend, blobs, diffs, params=self.params)
            self.states.append(state)
            self._layer_inputs.append(blobs)
            self._layer_diffs.append(diffs)
            self._produced.append(self._bind_tops(index, layer, state))

        self._check_graph()

    def _resolve_bottoms(self, index: int, layer: Layer):
        blobs, diffs = [], []
        for symbol, mode in zip(layer.bottoms, layer.bottom_trainability()):
            binding = self._bindings.get(symbol)
            if binding is None:
                raise UnboundSymbolError(
                    f"Net '{self.name}': bottom '{symbol}' of layer '{layer.name}' is not produced "
                    f"by any earlier layer or net input")
            binding.consumers.append(index)
            if binding.producer is not None:
                producer = self.layers[binding.producer].name
                if self.graph.has_edge(producer, layer.name):
                    self.graph.edges[producer, layer.name]['symbols'].append(symbol)
                else:
                    self.graph.add_edge(producer, layer.name, symbols=[symbol])

            if mode is Trainability.FIXED:
                diff = None
            elif binding.diff is None:
                # nothing upstream wants this gradient
                diff = self._make_scratch(binding.blob) if mode is Trainability.REQUIRED else None
            elif not binding.claimed:
                diff = binding.diff
                binding.claimed = True
            else:
                diff = self._make_scratch(binding.blob)
                binding.extra_diffs.append(diff)
            blobs.append(binding.blob)
            diffs.append(diff)
        return blobs, diffs

    def _bind_tops(self, index: int, layer: Layer, state: LayerState) -> List[_Binding]:
        produced = []
        for symbol, blob, diff in zip(layer.tops, state.blobs, state.blobs_diff):
            previous = self._bindings.get(symbol)
            if previous is not None:
                if previous.blob.shape != blob.shape:
                    raise ShapeMismatchError(
                        f"Net '{self.name}': layer '{layer.name}' rebinds '{symbol}' with shape "
                        f"{blob.shape}, it is already bound with shape {previous.blob.shape}")
                log.debug("Layer '%s' rebinds '%s'", layer.name, symbol)
            binding = _Binding(symbol, blob, diff, index)
            self._bindings[symbol] = binding
            produced.append(binding)
        return produced

    def _make_scratch(self, like: Blob) -> Blob:
        blob = self.backend.make_blob(like.shape, dtype=like.dtype)
        self._scratch.append(blob)
        return blob

    def _check_graph(self) -> None:
        losses = [n for n, loss in self.graph.nodes(data='is_loss') if loss]
        if losses:
            contributing = set(losses)
            for node in losses:
                contributing |= nx.ancestors(self.graph, node)
            for layer in self.layers:
                if layer.name not in contributing:
                    log.warning("Net '%s': layer '%s' does not feed any loss layer", self.name, layer.name)
        for produced in self._produced:
            for binding in produced:
                if not binding.consumers:
                    log.debug("Net '%s': top '%s' is not consumed", self.name, binding.symbol)

    def __repr__(self) -> str:
        return f"Net({self.name!r}, {len(self.layers)} layers, {self.backend!r})"

    def __enter__(self) -> 'Net':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    @property
    def loss(self) -> float:
        return sum(state.loss for state in self.states if state.layer.is_loss)

    def forward(self) -> float:
        for state, blobs in zip(self.states, self._layer_inputs):
            state.forward(blobs)
        return self.loss

    def backward(self) -> None:
        self.params.zero_grad()
        for index in reversed(range(len(self.states))):
            for binding in self._produced[index]:
                for extra in binding.extra_diffs:
                    binding.diff.data[...] += extra.data
            self.states[index].backward(self._layer_inputs[index], self._layer_diffs[index])

    def feed(self, symbol: str, array: np.ndarray) -> None:
        if symbol not in self._inputs:
            raise KeyError(f"Net '{self.name}' has no input named '{symbol}'")
        self._inputs[symbol].copy_from(array)

    def blob(self, symbol: str) -> Blob:
        return self._binding(symbol).blob

    def diff(self, symbol: str) -> Optional[Blob]:
        return self._binding(symbol).diff

    def _binding(self, symbol: str) -> _Binding:
        try:
            return self._bindings[symbol]
        except KeyError:
            raise KeyError(f"Net '{self.name}' has no blob named '{symbol}'") from None

    def state(self, layer_name: str) -> LayerState:
        for state in self.states:
            if state.layer.name == layer_name:
                return state
        raise KeyError(f"Net '{self.name}' has no layer named '{layer_name}'")

    def parameters(self) -> List[Parameter]:
        return list(self.params)

    def shutdown(self) -> None:
        if self.released:
            return
        for state in reversed(self.states):
            state.shutdown()
        for blob in self._scratch:
            blob.shutdown()
        self.params.shutdown()
        for blob in self._inputs.values():
            blob.shutdown()
        self.released = True
        log.debug("Shut down net '%s'", self.name)
