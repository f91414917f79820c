"""
Tracegrad defn
==============

Numerical function definitions. ``defn`` turns a Python function over
tensors into one that is traced against its arguments and executed on a
backend:

    @tg.defn
    def softplus(x):
        return tg.log(1 + tg.exp(x))

    softplus(np.linspace(-1, 1, 5))         # numpy array

Every call traces into a fresh private graph; graphs are never cached or
shared between calls. Calling a defn function while another function is
being traced inlines it into the outer trace.
"""

from __future__ import annotations
from typing import Any, Callable, Optional, Union
import functools

from .backend import Backend, get_backend
from .container import flatten, unflatten
from .core.tracing import Trace, is_tracing, trace


def defn(fun: Optional[Callable] = None, *, backend: Union[str, Backend, None] = None):
    """
    Decorate ``fun`` for traced execution.

    Args:
        fun: function of tensors (or composites of tensors)
        backend: backend name or instance; the configured default when None

    Returns:
        A function returning numpy arrays in ``fun``'s output structure

    Usable bare (``@defn``) or with options (``@defn(backend="torch")``).
    """
    if fun is None:
        return functools.partial(defn, backend=backend)

    @functools.wraps(fun)
    def wrapper(*args):
        if is_tracing():
            return fun(*args)
        traced = trace(fun, *args)
        arguments, _ = flatten(args)
        values = get_backend(backend).run(traced.graph, [e.id for e in traced.outputs], arguments)
        return unflatten(traced.out_tree, values)

    return wrapper


def trace_only(fun: Callable) -> Callable[..., Trace]:
    """``trace_only(fun)(*args)`` traces ``fun`` and returns the Trace without running it."""
    @functools.wraps(fun)
    def wrapper(*args: Any) -> Trace:
        return trace(fun, *args)

    return wrapper
