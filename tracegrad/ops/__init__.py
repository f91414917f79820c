"""
Tracegrad Ops
=============

The operation catalogue. Every function here traces nodes into the active
graph through ``tracegrad.core.tracing.apply``; importing this package
registers the shape and differentiation rules of every primitive.
"""

from .creation import full, zeros, ones, zeros_like, ones_like, constant, parameter
from .shape import broadcast_to, reshape, transpose, sum, dot, unbroadcast, broadcast_shapes
from .elementwise import (
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
    greater,
    greater_equal,
    less,
    less_equal,
    equal,
    not_equal,
    sign,
    select,
    as_type,
)
from .composite import mean, maximum, minimum, abs
from .control import stop_grad, custom_grad

__all__ = [
    # Leaves
    'full', 'zeros', 'ones', 'zeros_like', 'ones_like', 'constant', 'parameter',
    # Shape, reduction, contraction
    'broadcast_to', 'reshape', 'transpose', 'sum', 'mean', 'dot',
    'unbroadcast', 'broadcast_shapes',
    # Elementwise
    'add', 'subtract', 'multiply', 'divide', 'power', 'negate',
    'exp', 'log', 'sin', 'cos', 'tanh', 'sqrt', 'erf', 'sign', 'abs',
    'maximum', 'minimum', 'as_type',
    # Comparison and selection
    'greater', 'greater_equal', 'less', 'less_equal', 'equal', 'not_equal', 'select',
    # Gradient control
    'stop_grad', 'custom_grad',
]
