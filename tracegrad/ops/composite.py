"""
Tracegrad Ops - Composites
==========================

Operations expressed through the primitives. They need no rules of their
own: tracing one emits its primitive nodes, which differentiate as usual.
"""

from __future__ import annotations
import math

from ..core.dtypes import merge, to_floating
from ..core.graph import Expr
from ..core.tracing import coerce_operands
from .elementwise import as_type, divide, greater, less, negate, select
from .shape import _normalize_axes, sum


def mean(x: Expr, axes=None, keep_axes: bool = False) -> Expr:
    """Arithmetic mean over ``axes`` (all axes by default), always floating."""
    normalized = _normalize_axes(axes, x.ndim, 'mean')
    count = math.prod(x.shape[a] for a in normalized)
    total = sum(as_type(x, to_floating(x.dtype)), axes=normalized, keep_axes=keep_axes)
    return divide(total, count)


def _tie(a: Expr, b: Expr) -> Expr:
    # equals a where a == b, with half the slope on each side
    return a + as_type((b - a) / 2, merge(a.dtype, b.dtype))


def maximum(a, b) -> Expr:
    """Elementwise maximum. Where ``a == b`` the gradient is split evenly."""
    a, b = coerce_operands('maximum', a, b)
    return select(greater(a, b), a, select(less(a, b), b, _tie(a, b)))


def minimum(a, b) -> Expr:
    """Elementwise minimum. Where ``a == b`` the gradient is split evenly."""
    a, b = coerce_operands('minimum', a, b)
    return select(less(a, b), a, select(greater(a, b), b, _tie(a, b)))


def abs(x) -> Expr:
    (x,) = coerce_operands('abs', x)
    return select(less(x, 0), negate(x), x)


__all__ = ['mean', 'maximum', 'minimum', 'abs']
