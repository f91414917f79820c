"""
Tracegrad Autograd Module
=========================

Symbolic reverse-mode differentiation.

Differentiating a traced scalar appends its gradient computation to the
same expression graph:

    y = f(x)                       # nodes for f
    (dx,) = gradients(y, [x])      # nodes for df/dx, in the same graph
    (ddx,) = gradients(tg.sum(dx), [x])

``grad`` and ``value_and_grad`` wrap the engine for composite variables
and concrete values.
"""

from .engine import gradients
from .transforms import grad, value_and_grad

__all__ = ['gradients', 'grad', 'value_and_grad']
