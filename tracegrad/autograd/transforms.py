"""
Tracegrad Autograd - Transforms
===============================

``grad`` and ``value_and_grad`` over functions of composite variables.

Inside a traced function they work on Exprs and return Exprs. Called with
concrete values they trace and execute the differentiation themselves:

    >>> def f(params):
    ...     return tg.sum(params['w'] * params['x'])
    >>> tg.grad({'w': np.ones(3), 'x': np.arange(3.0)}, f)
    {'w': array([0., 1., 2.]), 'x': array([1., 1., 1.])}

Both also accept the function alone and return the transformed function:

    >>> df = tg.grad(f)
    >>> df(params)
"""

from __future__ import annotations
from typing import Any, Callable, Optional, Tuple
import logging

from .engine import gradients
from ..container import Container, flatten, is_leaf, unflatten
from ..core.graph import Expr
from ..core.tracing import as_expr, check_scalar, graph_scope, is_tracing
from ..errors import ShapeMismatch

logger = logging.getLogger(__name__)


def _is_function(value: Any) -> bool:
    return callable(value) and not isinstance(value, (Expr, Container))


def value_and_grad(variables: Any, fun: Optional[Callable] = None, transform: Optional[Callable] = None):
    """
    Value of ``fun(variables)`` and its gradient with respect to ``variables``.

    Args:
        variables: a tensor or composite of tensors
        fun: function of ``variables``
        transform: maps ``fun``'s result to the scalar being differentiated
            (identity by default); the returned value is not transformed

    Returns:
        ``(value, grads)`` with ``grads`` structured like ``variables``

    Raises:
        ShapeMismatch: if the differentiated objective is not a single
            scalar tensor

    ``value_and_grad(fun, transform=None)`` returns a function of the
    variables instead.
    """
    if _is_function(variables):
        target, objective = variables, fun if transform is None else transform
        return lambda values: value_and_grad(values, target, objective)
    if fun is None:
        raise TypeError("value_and_grad requires a function to differentiate")

    var_leaves, _ = flatten(variables)
    traced = [leaf for leaf in var_leaves if isinstance(leaf, Expr)]
    if traced and not is_tracing():
        with graph_scope(traced[0].graph):
            return _value_and_grad(variables, fun, transform)
    if is_tracing():
        return _value_and_grad(variables, fun, transform)

    from ..defn import defn
    logger.debug("executing value_and_grad of %s", getattr(fun, '__name__', repr(fun)))
    return defn(lambda values: _value_and_grad(values, fun, transform))(variables)


def grad(variables: Any, fun: Optional[Callable] = None, transform: Optional[Callable] = None):
    """
    Gradient of ``fun(variables)`` with respect to ``variables``.

    ``grad(fun)`` returns the gradient function; see ``value_and_grad``.
    """
    if _is_function(variables):
        target, objective = variables, fun if transform is None else transform
        return lambda values: grad(values, target, objective)
    return value_and_grad(variables, fun, transform)[1]


def _value_and_grad(variables: Any, fun: Callable, transform: Optional[Callable]) -> Tuple[Any, Any]:
    var_leaves, var_tree = flatten(variables)
    exprs = [as_expr(leaf) for leaf in var_leaves]
    value = fun(unflatten(var_tree, exprs))

    objective = transform(value) if transform is not None else value
    if not isinstance(objective, Expr):
        if not is_leaf(objective):
            raise ShapeMismatch(
                f"Cannot differentiate a composite of type {type(objective).__name__}; "
                "pass a transform reducing it to a scalar tensor"
            )
        objective = as_expr(objective)
    check_scalar(objective, "Differentiated objective")

    grads = gradients(objective, exprs)
    return value, unflatten(var_tree, grads)
