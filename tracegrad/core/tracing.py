"""
Tracegrad Core: Tracing
=======================

The graph builder. While a function is traced every tensor operation it
performs appends a node to the active graph instead of computing a value:
arguments become ``parameter`` leaves tagged with their position, literals
become ``constant`` leaves, and each primitive call becomes one node that
references its operands.

The stack of active graphs is thread-local, so independent traces on
separate threads never observe each other.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple
import logging
import numbers
import threading

import numpy as np

from .dtypes import DType, as_dtype, infer_dtype, merge, merge_scalar
from .graph import Expr, Graph, TensorSpec
from .registry import get_op
from ..container import TreeDef, flatten, unflatten
from ..errors import ShapeMismatch, TracingError, describe_node

logger = logging.getLogger(__name__)

_state = threading.local()


def _stack() -> List[Graph]:
    stack = getattr(_state, 'graphs', None)
    if stack is None:
        stack = _state.graphs = []
    return stack


def active_graph() -> Optional[Graph]:
    """The innermost graph being traced on this thread, if any."""
    stack = _stack()
    return stack[-1] if stack else None


def is_tracing() -> bool:
    return bool(_stack())


@contextmanager
def graph_scope(graph: Optional[Graph] = None):
    """Make ``graph`` (a new one by default) the active graph for the block."""
    graph = graph if graph is not None else Graph()
    stack = _stack()
    stack.append(graph)
    try:
        yield graph
    finally:
        stack.pop()


def require_graph(graph: Optional[Graph]) -> Graph:
    graph = graph if graph is not None else active_graph()
    if graph is None:
        raise TracingError("Tensor operations must be traced: call them inside tracegrad.defn or tracegrad.trace")
    return graph


def parameter(position: int, shape: Sequence[int], dtype, graph: Optional[Graph] = None) -> Expr:
    """Leaf for the function argument at flat ``position``."""
    graph = require_graph(graph)
    node_id = graph.add_node('parameter', (), shape, as_dtype(dtype), {'position': position})
    return Expr(graph, node_id)


def constant(value: Any, dtype=None, graph: Optional[Graph] = None) -> Expr:
    """Literal leaf embedding ``value``."""
    graph = require_graph(graph)
    dtype = as_dtype(dtype) if dtype is not None else infer_dtype(value)
    array = np.array(value, dtype=dtype.numpy_dtype, copy=True)
    node_id = graph.add_node('constant', (), array.shape, dtype, value=array)
    return Expr(graph, node_id)


def _graph_of(operands: Sequence[Any], op: str) -> Graph:
    graph = None
    for operand in operands:
        if isinstance(operand, Expr):
            if graph is None:
                graph = operand.graph
            elif operand.graph is not graph:
                raise TracingError(f"Operands of {op} belong to different traces")
    return require_graph(graph)


def _coerce(operands: Sequence[Any], graph: Graph) -> List[Expr]:
    reference: Optional[DType] = None
    for operand in operands:
        if isinstance(operand, Expr):
            reference = operand.dtype if reference is None else merge(reference, operand.dtype)

    exprs = []
    for operand in operands:
        if isinstance(operand, Expr):
            exprs.append(operand)
        elif isinstance(operand, numbers.Real) and not isinstance(operand, np.generic):
            # Python literals are weakly typed: they adopt the tensor operand's type
            dtype = merge_scalar(reference, operand) if reference is not None else None
            exprs.append(constant(operand, dtype, graph))
        elif isinstance(operand, (np.ndarray, np.generic)):
            exprs.append(constant(operand, graph=graph))
        else:
            raise TracingError(f"Cannot use {type(operand).__name__} as a tensor operand")
    return exprs


def coerce_operands(op: str, *operands: Any) -> List[Expr]:
    """Operands as Exprs of one graph, literals converted to constants."""
    return _coerce(operands, _graph_of(operands, op))


def apply(op: str, *operands: Any, **attrs: Any) -> Expr:
    """
    Trace one primitive operation and return its result.

    Looks up ``op`` in the registry, converts literal operands to constant
    nodes, infers the result shape and type with the op's shape rule and
    appends a single node. Identical calls produce distinct nodes.
    """
    opdef = get_op(op)
    graph = _graph_of(operands, op)
    exprs = _coerce(operands, graph)
    shape, dtype = opdef.shape_rule(*(e.node for e in exprs), **attrs)
    node_id = graph.add_node(op, [e.id for e in exprs], shape, dtype, attrs)
    return Expr(graph, node_id)


def as_expr(value: Any, graph: Optional[Graph] = None) -> Expr:
    if isinstance(value, Expr):
        return value
    return constant(value, graph=graph)


def _spec_of(leaf: Any) -> Tuple[Tuple[int, ...], DType]:
    if isinstance(leaf, (Expr, TensorSpec)):
        return leaf.shape, leaf.dtype
    return np.shape(leaf), infer_dtype(leaf)


@dataclass
class Trace:
    """
    A traced function invocation.

    Attributes:
        graph: the private graph holding every traced node
        parameters: one parameter leaf per flattened argument leaf
        in_tree: structure of the arguments tuple
        outputs: one node per flattened result leaf
        out_tree: structure of the result
    """
    graph: Graph
    parameters: List[Expr]
    in_tree: TreeDef
    outputs: List[Expr]
    out_tree: TreeDef

    @property
    def result(self) -> Any:
        """The traced result, as Exprs in the function's output structure."""
        return unflatten(self.out_tree, self.outputs)

    def __repr__(self) -> str:
        return f"Trace(parameters={len(self.parameters)}, outputs={len(self.outputs)}, nodes={len(self.graph)})"

    def format(self) -> str:
        return self.graph.format(e.id for e in self.outputs)


def trace(fun: Callable, *args: Any) -> Trace:
    """
    Trace ``fun(*args)`` into a fresh graph.

    Arguments may be composites of numpy arrays, numbers, TensorSpecs or
    Exprs; only their shapes and types are used.
    """
    arg_leaves, in_tree = flatten(args)
    with graph_scope() as graph:
        parameters = []
        for position, leaf in enumerate(arg_leaves):
            shape, dtype = _spec_of(leaf)
            parameters.append(parameter(position, shape, dtype, graph))
        result = fun(*unflatten(in_tree, parameters))
        out_leaves, out_tree = flatten(result)
        outputs = []
        for leaf in out_leaves:
            if isinstance(leaf, Expr) and leaf.graph is not graph:
                raise TracingError(f"{getattr(fun, '__name__', fun)} returned a tensor from another trace")
            outputs.append(as_expr(leaf, graph))

    logger.debug(
        "traced %s: %d parameters, %d outputs, %d nodes",
        getattr(fun, '__name__', repr(fun)), len(parameters), len(outputs), len(graph),
    )
    return Trace(graph, parameters, in_tree, outputs, out_tree)


def check_scalar(expr: Expr, what: str) -> None:
    if expr.shape != ():
        raise ShapeMismatch(
            f"{what} must be a scalar tensor, got {describe_node(expr.node)}",
            shape=expr.shape,
            node=expr.node,
        )
