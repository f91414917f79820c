"""
Tracegrad Core: Operation Registry
==================================

Maps operation tags to their paired rules:

- a shape rule, ``shape_rule(*operand_nodes, **attrs) -> (shape, dtype)``,
  run once when a node is traced;
- a differentiation rule (VJP), ``grad_rule(node, operands, g)``, mapping
  the upstream gradient ``g`` of ``node`` to one contribution per operand
  (``None`` for "no contribution").

New operations are added by registering them here. Backends keep their own
kernel tables keyed by the same tags.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional

from ..errors import UnknownOperation


@dataclass(frozen=True)
class OpDef:
    name: str
    shape_rule: Callable
    grad_rule: Optional[Callable] = None

    @property
    def differentiable(self) -> bool:
        return self.grad_rule is not None


_REGISTRY: Dict[str, OpDef] = {}


def register_op(name: str, shape_rule: Callable, grad_rule: Optional[Callable] = None) -> OpDef:
    """
    Register an operation.

    Args:
        name: operation tag stored on traced nodes
        shape_rule: result shape/type inference over operand nodes
        grad_rule: differentiation rule; ops registered without one can be
            traced and executed but not differentiated through

    Returns:
        The registered OpDef
    """
    if name in _REGISTRY:
        raise ValueError(f"Operation {name!r} is already registered")
    op = OpDef(name, shape_rule, grad_rule)
    _REGISTRY[name] = op
    return op


def defgrad(name: str):
    """Decorator attaching a differentiation rule to a registered operation."""
    def decorator(rule: Callable) -> Callable:
        _REGISTRY[name] = replace(get_op(name), grad_rule=rule)
        return rule
    return decorator


def get_op(name: str) -> OpDef:
    try:
        return _REGISTRY[name]
    except KeyError:
        raise UnknownOperation(f"No operation registered under {name!r}", op=name) from None


def registered_ops() -> List[str]:
    return sorted(_REGISTRY)


def no_grad(node, operands, g):
    """Differentiation rule of operations whose result is locally constant."""
    return (None,) * len(operands)
