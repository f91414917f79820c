"""
Tracegrad Ops - Elementwise
===========================

Elementwise arithmetic, transcendental, comparison and selection
operations. Binary operations broadcast their operands with numpy rules;
their backward rules sum each contribution back down to its operand's
shape.
"""

from __future__ import annotations
import math

from ..core.dtypes import DType, as_dtype, merge, to_floating
from ..core.graph import Expr
from ..core.registry import no_grad, register_op
from ..core.tracing import apply
from .shape import broadcast_shapes, unbroadcast


def _result(node, g: Expr) -> Expr:
    """The Expr of ``node`` itself, for rules written in terms of the output."""
    return Expr(g.graph, node.id)


# =============================================================================
# Shape rules
# =============================================================================

def _binary_rule(op):
    def rule(a, b):
        return broadcast_shapes(op, a.shape, b.shape), merge(a.dtype, b.dtype)
    return rule


def _divide_rule(a, b):
    return broadcast_shapes('divide', a.shape, b.shape), to_floating(merge(a.dtype, b.dtype))


def _compare_rule(op):
    def rule(a, b):
        return broadcast_shapes(op, a.shape, b.shape), DType.UINT8
    return rule


def _unary_rule(x):
    return x.shape, x.dtype


def _float_unary_rule(x):
    return x.shape, to_floating(x.dtype)


# =============================================================================
# Arithmetic
# =============================================================================

def _add_grad(node, operands, g):
    a, b = operands
    return unbroadcast(g, a.shape), unbroadcast(g, b.shape)


def _subtract_grad(node, operands, g):
    a, b = operands
    return unbroadcast(g, a.shape), unbroadcast(negate(g), b.shape)


def _multiply_grad(node, operands, g):
    a, b = operands
    return unbroadcast(g * b, a.shape), unbroadcast(g * a, b.shape)


def _divide_grad(node, operands, g):
    a, b = operands
    return unbroadcast(g / b, a.shape), unbroadcast(negate(g * a) / (b * b), b.shape)


def _power_grad(node, operands, g):
    # d/da a**b = b * a**(b-1);  d/db a**b = a**b * log(a)
    a, b = operands
    if b.dtype.is_integer:
        # integer powers cannot go negative; b == 0 contributes 0 either way
        exponent = b - 1
        exponent = select(exponent > 0, exponent, 0)
    else:
        # a**0 has zero slope everywhere, a == 0 included
        exponent = select(equal(b, 0), 1, b - 1)
    da = g * (b * power(a, exponent))
    # a**b * log(a) vanishes at a == 0
    db = g * (_result(node, g) * log(select(equal(a, 0), 1, a)))
    return unbroadcast(da, a.shape), unbroadcast(db, b.shape)


def _negate_grad(node, operands, g):
    return (negate(g),)


register_op('add', _binary_rule('add'), _add_grad)
register_op('subtract', _binary_rule('subtract'), _subtract_grad)
register_op('multiply', _binary_rule('multiply'), _multiply_grad)
register_op('divide', _divide_rule, _divide_grad)
register_op('power', _binary_rule('power'), _power_grad)
register_op('negate', _unary_rule, _negate_grad)


def add(a, b) -> Expr:
    return apply('add', a, b)


def subtract(a, b) -> Expr:
    return apply('subtract', a, b)


def multiply(a, b) -> Expr:
    return apply('multiply', a, b)


def divide(a, b) -> Expr:
    """True division; integer operands give a float result."""
    return apply('divide', a, b)


def power(a, b) -> Expr:
    return apply('power', a, b)


def negate(x) -> Expr:
    return apply('negate', x)


# =============================================================================
# Transcendental
# =============================================================================

def _exp_grad(node, operands, g):
    return (g * _result(node, g),)


def _log_grad(node, operands, g):
    return (g / operands[0],)


def _sin_grad(node, operands, g):
    return (g * cos(operands[0]),)


def _cos_grad(node, operands, g):
    return (negate(g * sin(operands[0])),)


def _tanh_grad(node, operands, g):
    out = _result(node, g)
    return (g * (1 - out * out),)


def _sqrt_grad(node, operands, g):
    return (g / (2 * _result(node, g)),)


def _erf_grad(node, operands, g):
    x = operands[0]
    return (g * (2.0 / math.sqrt(math.pi)) * exp(negate(x * x)),)


register_op('exp', _float_unary_rule, _exp_grad)
register_op('log', _float_unary_rule, _log_grad)
register_op('sin', _float_unary_rule, _sin_grad)
register_op('cos', _float_unary_rule, _cos_grad)
register_op('tanh', _float_unary_rule, _tanh_grad)
register_op('sqrt', _float_unary_rule, _sqrt_grad)
register_op('erf', _float_unary_rule, _erf_grad)


def exp(x) -> Expr:
    return apply('exp', x)


def log(x) -> Expr:
    return apply('log', x)


def sin(x) -> Expr:
    return apply('sin', x)


def cos(x) -> Expr:
    return apply('cos', x)


def tanh(x) -> Expr:
    return apply('tanh', x)


def sqrt(x) -> Expr:
    return apply('sqrt', x)


def erf(x) -> Expr:
    """Gauss error function."""
    return apply('erf', x)


# =============================================================================
# Comparison, selection and conversion
# =============================================================================

for _name in ('greater', 'greater_equal', 'less', 'less_equal', 'equal', 'not_equal'):
    register_op(_name, _compare_rule(_name), no_grad)
register_op('sign', _unary_rule, no_grad)


def greater(a, b) -> Expr:
    return apply('greater', a, b)


def greater_equal(a, b) -> Expr:
    return apply('greater_equal', a, b)


def less(a, b) -> Expr:
    return apply('less', a, b)


def less_equal(a, b) -> Expr:
    return apply('less_equal', a, b)


def equal(a, b) -> Expr:
    """Elementwise ``a == b`` as uint8 (``==`` on Exprs keeps identity semantics)."""
    return apply('equal', a, b)


def not_equal(a, b) -> Expr:
    return apply('not_equal', a, b)


def sign(x) -> Expr:
    return apply('sign', x)


def _select_rule(pred, on_true, on_false):
    shape = broadcast_shapes('select', pred.shape, on_true.shape, on_false.shape)
    return shape, merge(on_true.dtype, on_false.dtype)


def _select_grad(node, operands, g):
    pred, on_true, on_false = operands
    return (
        None,
        unbroadcast(select(pred, g, 0), on_true.shape),
        unbroadcast(select(pred, 0, g), on_false.shape),
    )


register_op('select', _select_rule, _select_grad)


def select(pred, on_true, on_false) -> Expr:
    """Elementwise ``on_true`` where ``pred`` is nonzero, else ``on_false``."""
    return apply('select', pred, on_true, on_false)


def _as_type_rule(x, dtype):
    return x.shape, dtype


def _as_type_grad(node, operands, g):
    return (as_type(g, to_floating(operands[0].dtype)),)


register_op('as_type', _as_type_rule, _as_type_grad)


def as_type(x, dtype) -> Expr:
    dtype = as_dtype(dtype)
    if isinstance(x, Expr) and x.dtype is dtype:
        return x
    return apply('as_type', x, dtype=dtype)


__all__ = [
    'add', 'subtract', 'multiply', 'divide', 'power', 'negate',
    'exp', 'log', 'sin', 'cos', 'tanh', 'sqrt', 'erf',
    'greater', 'greater_equal', 'less', 'less_equal', 'equal', 'not_equal',
    'sign', 'select', 'as_type',
]
