"""
Tracegrad Core
==============

Low-level pieces shared by the operation catalogue, the differentiation
engine and the backends:
- dtypes: element types and promotion
- graph: the node arena and the Expr handle
- registry: operation tags and their rules
- tracing: the thread-local graph builder
"""

from .dtypes import (
    DType,
    as_dtype,
    merge,
    merge_scalar,
    to_floating,
    infer_dtype,
    uint8,
    uint16,
    uint32,
    uint64,
    int8,
    int16,
    int32,
    int64,
    float16,
    float32,
    float64,
)
from .graph import Node, Graph, Expr, TensorSpec
from .registry import OpDef, register_op, defgrad, get_op, registered_ops, no_grad
from .tracing import (
    Trace,
    trace,
    apply,
    active_graph,
    is_tracing,
    graph_scope,
    as_expr,
    check_scalar,
    coerce_operands,
)

__all__ = [
    'DType', 'as_dtype', 'merge', 'merge_scalar', 'to_floating', 'infer_dtype',
    'uint8', 'uint16', 'uint32', 'uint64', 'int8', 'int16', 'int32', 'int64',
    'float16', 'float32', 'float64',
    'Node', 'Graph', 'Expr', 'TensorSpec',
    'OpDef', 'register_op', 'defgrad', 'get_op', 'registered_ops', 'no_grad',
    'Trace', 'trace', 'apply', 'active_graph', 'is_tracing', 'graph_scope',
    'as_expr', 'check_scalar', 'coerce_operands',
]
