"""
Tracegrad: Traced Tensor Functions with Symbolic Gradients
==========================================================

Tracegrad traces numerical Python functions into an expression graph and
differentiates them symbolically: gradients are new nodes in the same
graph, so they can be executed, inspected or differentiated again.

Example:
    >>> import numpy as np
    >>> import tracegrad as tg
    >>> def f(x):
    ...     return tg.sum(x ** 3 + x)
    >>> tg.grad(np.array([[1, 1], [2, 3], [5, 8]]), f)
    array([[  4.,   4.],
           [ 13.,  28.],
           [ 76., 193.]], dtype=float32)
"""

__version__ = "0.1.0"

# Core types
from .core import (
    DType,
    Graph,
    Node,
    Expr,
    TensorSpec,
    Trace,
    trace,
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
from .core.registry import OpDef, register_op, defgrad, get_op, registered_ops

# Operations
from .ops import (
    full,
    zeros,
    ones,
    zeros_like,
    ones_like,
    constant,
    add,
    subtract,
    multiply,
    divide,
    power,
    negate,
    exp,
    log,
    sin,
    cos,
    tanh,
    sqrt,
    erf,
    sign,
    abs,
    maximum,
    minimum,
    as_type,
    greater,
    greater_equal,
    less,
    less_equal,
    equal,
    not_equal,
    select,
    broadcast_to,
    reshape,
    transpose,
    sum,
    mean,
    dot,
    stop_grad,
    custom_grad,
)

# Differentiation
from .autograd import gradients, grad, value_and_grad

# Containers
from .container import Container, TreeDef, container, register_container, flatten, unflatten, tree_map, leaves

# Execution
from .defn import defn, trace_only
from .backend import Backend, get_backend, register_backend

from . import config
from .errors import TracegradError, ShapeMismatch, UnknownOperation, TracingError

__all__ = [
    '__version__',
    # Core
    'DType', 'Graph', 'Node', 'Expr', 'TensorSpec', 'Trace', 'trace',
    'uint8', 'uint16', 'uint32', 'uint64', 'int8', 'int16', 'int32', 'int64',
    'float16', 'float32', 'float64',
    'OpDef', 'register_op', 'defgrad', 'get_op', 'registered_ops',
    # Operations
    'full', 'zeros', 'ones', 'zeros_like', 'ones_like', 'constant',
    'add', 'subtract', 'multiply', 'divide', 'power', 'negate',
    'exp', 'log', 'sin', 'cos', 'tanh', 'sqrt', 'erf', 'sign', 'abs',
    'maximum', 'minimum', 'as_type',
    'greater', 'greater_equal', 'less', 'less_equal', 'equal', 'not_equal', 'select',
    'broadcast_to', 'reshape', 'transpose', 'sum', 'mean', 'dot',
    'stop_grad', 'custom_grad',
    # Differentiation
    'gradients', 'grad', 'value_and_grad',
    # Containers
    'Container', 'TreeDef', 'container', 'register_container',
    'flatten', 'unflatten', 'tree_map', 'leaves',
    # Execution
    'defn', 'trace_only', 'Backend', 'get_backend', 'register_backend',
    # Configuration and errors
    'config', 'TracegradError', 'ShapeMismatch', 'UnknownOperation', 'TracingError',
]
