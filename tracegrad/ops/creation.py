"""
Tracegrad Ops - Leaves
======================

Leaf operations: function parameters, embedded constants and filled
tensors. Leaves have no operands, so they never receive a differentiation
rule call; they are registered so backends and tooling can look them up.
"""

from __future__ import annotations
from typing import Optional, Sequence
import numbers

from ..core import dtypes
from ..core.graph import Expr, Graph
from ..core.registry import no_grad, register_op
from ..core.tracing import require_graph, constant, parameter
from ..config import default_float_type
from ..errors import TracingError


def _leaf_rule(*nodes, **attrs):
    raise TracingError("Leaf operations are created directly, not applied to operands")


register_op('parameter', _leaf_rule, no_grad)
register_op('constant', _leaf_rule, no_grad)
register_op('full', _leaf_rule, no_grad)


def full(value, shape: Sequence[int] = (), dtype=None, graph: Optional[Graph] = None) -> Expr:
    """Tensor of ``shape`` with every element equal to the scalar ``value``."""
    if not isinstance(value, numbers.Real):
        raise TracingError(f"full expects a real scalar, got {type(value).__name__}")
    graph = require_graph(graph)
    dtype = dtypes.as_dtype(dtype) if dtype is not None else dtypes.infer_dtype(value)
    value = float(value) if dtype.is_float else int(value)
    node_id = graph.add_node('full', (), tuple(shape), dtype, {'value': value})
    return Expr(graph, node_id)


def zeros(shape: Sequence[int] = (), dtype=None, graph: Optional[Graph] = None) -> Expr:
    return full(0, shape, dtype if dtype is not None else default_float_type(), graph)


def ones(shape: Sequence[int] = (), dtype=None, graph: Optional[Graph] = None) -> Expr:
    return full(1, shape, dtype if dtype is not None else default_float_type(), graph)


def zeros_like(x: Expr, dtype=None) -> Expr:
    return full(0, x.shape, dtype if dtype is not None else x.dtype, x.graph)


def ones_like(x: Expr, dtype=None) -> Expr:
    return full(1, x.shape, dtype if dtype is not None else x.dtype, x.graph)


__all__ = ['full', 'zeros', 'ones', 'zeros_like', 'ones_like', 'constant', 'parameter']
