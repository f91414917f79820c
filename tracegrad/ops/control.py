"""
Tracegrad Ops - Gradient Control
================================

Identity operations that change how differentiation sees a value:

- ``stop_grad(x)`` evaluates to ``x`` but contributes no gradient;
- ``custom_grad(x, inputs, fun)`` evaluates to ``x`` but routes the
  gradient arriving at it to ``inputs`` through a user function.
"""

from __future__ import annotations
from typing import Callable, Sequence

from ..core.graph import Expr
from ..core.registry import no_grad, register_op
from ..core.tracing import apply, coerce_operands
from ..errors import ShapeMismatch


def _identity_rule(x, *inputs, **attrs):
    return x.shape, x.dtype


register_op('stop_grad', _identity_rule, no_grad)


def stop_grad(x) -> Expr:
    """``x`` as a constant for differentiation."""
    return apply('stop_grad', x)


def _custom_grad_rule(node, operands, g):
    inputs = operands[1:]
    contributions = tuple(node.attrs['fun'](g))
    if len(contributions) != len(inputs):
        raise ShapeMismatch(
            f"custom_grad function returned {len(contributions)} gradients for {len(inputs)} inputs",
            node=node,
        )
    return (None,) + contributions


register_op('custom_grad', _identity_rule, _custom_grad_rule)


def custom_grad(x, inputs: Sequence, fun: Callable) -> Expr:
    """
    Give ``x`` a hand-written derivative.

    The result evaluates to ``x``. During differentiation the gradient ``g``
    reaching the result is passed to ``fun(g)``, which must return one
    contribution per element of ``inputs``; ``x``'s own dependencies
    receive nothing through this node.

    Example:
        def clipped(x):
            y = tg.tanh(x)
            return tg.custom_grad(y, [x], lambda g: [tg.minimum(g, 1.0)])
    """
    operands = coerce_operands('custom_grad', x, *inputs)
    return apply('custom_grad', *operands, fun=fun)


__all__ = ['stop_grad', 'custom_grad']
