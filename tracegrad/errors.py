"""
Tracegrad Errors
================

Exceptions raised while building or differentiating expression graphs.

All of them are raised synchronously, at graph-construction or
differentiation time. Computation is pure, so nothing here is retryable.
"""

from __future__ import annotations
from typing import Any, Optional, Tuple


class TracegradError(Exception):
    """Base class for all tracegrad errors."""


class ShapeMismatch(TracegradError, ValueError):
    """
    A tensor does not have the shape an operation requires.

    Raised when the root of a differentiation (or the output of a
    ``value_and_grad`` transform) is not scalar, when operand shapes are
    incompatible for an operation, and when a differentiation rule returns
    a contribution whose shape differs from its operand.
    """

    def __init__(self, message: str, shape: Optional[Tuple[int, ...]] = None, node: Any = None):
        super().__init__(message)
        self.shape = shape
        self.node = node


class UnknownOperation(TracegradError, LookupError):
    """
    No registered implementation exists for an operation tag.

    This signals a gap in the operation registry (a missing shape rule,
    differentiation rule or backend kernel), not bad user input.
    """

    def __init__(self, message: str, op: Optional[str] = None, node: Any = None):
        super().__init__(message)
        self.op = op
        self.node = node


class TracingError(TracegradError, TypeError):
    """Symbolic values were used in a way that cannot be traced."""


def describe_node(node) -> str:
    """Short description used in error messages: ``#id op shape dtype``."""
    if node is None:
        return "<unknown node>"
    return f"#{node.id} {node.op} shape={node.shape} dtype={node.dtype.type_name}"
