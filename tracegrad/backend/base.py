"""
Tracegrad Backend - Base
========================

A backend evaluates a traced graph on concrete arrays. It walks the nodes
reachable from the requested outputs in topological order and dispatches
each one to the kernel registered for its operation tag:

    @NumpyBackend.implements('exp')
    def _exp(node, x):
        return np.exp(x)

Kernels receive the node (for its attrs, shape and dtype) and the
backend-native values of its operands.
"""

from __future__ import annotations
from typing import Any, Callable, Dict, List, Sequence
import logging

import numpy as np

from ..core.graph import Graph, Node, TensorSpec
from ..errors import ShapeMismatch, TracingError, UnknownOperation, describe_node

logger = logging.getLogger(__name__)


class Backend:
    """
    Base class of graph evaluators.

    Subclasses set ``name``, convert between numpy and their native arrays
    and register one kernel per supported operation with ``implements``.
    """

    name: str = "base"
    _kernels: Dict[str, Callable] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls._kernels = dict(cls._kernels)

    @classmethod
    def implements(cls, op: str):
        """Decorator registering ``kernel(node, *operands)`` for ``op``."""
        def decorator(kernel: Callable) -> Callable:
            cls._kernels[op] = kernel
            return kernel
        return decorator

    @classmethod
    def supported_ops(cls) -> List[str]:
        return sorted(cls._kernels)

    def from_numpy(self, array: np.ndarray) -> Any:
        raise NotImplementedError

    def to_numpy(self, value: Any) -> np.ndarray:
        raise NotImplementedError

    def cast(self, value: Any, node: Node) -> Any:
        """Coerce a kernel result to the node's element type."""
        raise NotImplementedError

    def _argument(self, node: Node, arguments: Sequence[Any]) -> np.ndarray:
        position = node.attrs['position']
        if position >= len(arguments):
            raise TracingError(f"No argument for parameter {position}: got {len(arguments)} arguments")
        argument = arguments[position]
        if isinstance(argument, TensorSpec):
            raise TracingError(f"Cannot execute parameter {position}: it was given as a TensorSpec, not a value")
        array = np.asarray(argument, dtype=node.dtype.numpy_dtype)
        if array.shape != node.shape:
            raise ShapeMismatch(
                f"Argument {position} has shape {array.shape}, traced as {node.shape}",
                shape=array.shape,
                node=node,
            )
        return array

    def run(self, graph: Graph, outputs: Sequence[int], arguments: Sequence[Any]) -> List[np.ndarray]:
        """
        Evaluate ``outputs`` of ``graph``.

        Args:
            graph: the traced graph
            outputs: ids of the nodes to compute
            arguments: flat argument values, indexed by parameter position

        Returns:
            One numpy array per output id
        """
        outputs = list(outputs)
        order = graph.topological_order(outputs)
        values: Dict[int, Any] = {}
        for node_id in order:
            node = graph[node_id]
            if node.op == 'parameter':
                value = self.from_numpy(self._argument(node, arguments))
            elif node.op == 'constant':
                value = self.from_numpy(node.value)
            else:
                kernel = self._kernels.get(node.op)
                if kernel is None:
                    raise UnknownOperation(
                        f"{type(self).__name__} has no kernel for {describe_node(node)}",
                        op=node.op,
                        node=node,
                    )
                value = kernel(node, *(values[arg] for arg in node.args))
            values[node_id] = self.cast(value, node)

        logger.debug("%s evaluated %d nodes for %d outputs", self.name, len(order), len(outputs))
        return [self.to_numpy(values[node_id]) for node_id in outputs]

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
