"""
Tracegrad Ops - Shape, Reduction and Contraction
================================================

broadcast_to, reshape, transpose, sum and dot, with their shape rules and
backward rules.
"""

from __future__ import annotations
from typing import Optional, Sequence, Tuple
import math

from ..core.dtypes import merge
from ..core.graph import Expr
from ..core.registry import register_op
from ..core.tracing import apply, coerce_operands
from ..errors import ShapeMismatch


def broadcast_shapes(op: str, *shapes: Tuple[int, ...]) -> Tuple[int, ...]:
    """Numpy broadcasting of ``shapes``; ShapeMismatch if incompatible."""
    ndim = max(len(s) for s in shapes)
    result = []
    for i in range(ndim):
        dims = {s[i - ndim + len(s)] for s in shapes if i - ndim + len(s) >= 0}
        dims.discard(1)
        if len(dims) > 1:
            raise ShapeMismatch(
                f"{op}: cannot broadcast shapes {', '.join(map(str, shapes))}",
                shape=tuple(shapes[0]),
            )
        result.append(dims.pop() if dims else 1)
    return tuple(result)


def _normalize_axes(axes, ndim: int, op: str) -> Tuple[int, ...]:
    if axes is None:
        return tuple(range(ndim))
    if isinstance(axes, int):
        axes = (axes,)
    normalized = []
    for axis in axes:
        if not -ndim <= axis < ndim:
            raise ShapeMismatch(f"{op}: axis {axis} out of range for rank {ndim}")
        normalized.append(axis % ndim)
    if len(set(normalized)) != len(normalized):
        raise ShapeMismatch(f"{op}: repeated axis in {tuple(axes)}")
    return tuple(sorted(normalized))


def unbroadcast(g: Expr, shape: Sequence[int]) -> Expr:
    """Sum ``g`` over the axes broadcasting added to reach its shape from ``shape``."""
    shape = tuple(shape)
    if g.shape == shape:
        return g
    lead = g.ndim - len(shape)
    axes = tuple(range(lead)) + tuple(
        lead + i for i, d in enumerate(shape) if d == 1 and g.shape[lead + i] != 1
    )
    summed = sum(g, axes=axes) if axes else g
    return reshape(summed, shape)


# =============================================================================
# broadcast_to
# =============================================================================

def _broadcast_to_rule(x, shape):
    if broadcast_shapes('broadcast_to', x.shape, shape) != tuple(shape):
        raise ShapeMismatch(f"broadcast_to: cannot broadcast {x.shape} to {tuple(shape)}", shape=x.shape)
    return shape, x.dtype


def _broadcast_to_grad(node, operands, g):
    return (unbroadcast(g, operands[0].shape),)


register_op('broadcast_to', _broadcast_to_rule, _broadcast_to_grad)


def broadcast_to(x: Expr, shape: Sequence[int]) -> Expr:
    shape = tuple(int(s) for s in shape)
    if isinstance(x, Expr) and x.shape == shape:
        return x
    return apply('broadcast_to', x, shape=shape)


# =============================================================================
# reshape
# =============================================================================

def _reshape_rule(x, shape):
    if math.prod(shape) != math.prod(x.shape):
        raise ShapeMismatch(f"reshape: cannot reshape {x.shape} to {shape}", shape=x.shape)
    return shape, x.dtype


def _reshape_grad(node, operands, g):
    return (reshape(g, operands[0].shape),)


register_op('reshape', _reshape_rule, _reshape_grad)


def reshape(x: Expr, shape: Sequence[int]) -> Expr:
    """Reshape ``x``; one dimension may be -1 and is inferred."""
    shape = [int(s) for s in shape]
    if shape.count(-1) > 1:
        raise ShapeMismatch("reshape: only one dimension can be -1", shape=tuple(shape))
    if -1 in shape:
        known = math.prod(s for s in shape if s != -1)
        shape[shape.index(-1)] = math.prod(x.shape) // known if known else 0
    shape = tuple(shape)
    if x.shape == shape:
        return x
    return apply('reshape', x, shape=shape)


# =============================================================================
# transpose
# =============================================================================

def _transpose_rule(x, axes):
    if sorted(axes) != list(range(x.ndim)):
        raise ShapeMismatch(f"transpose: {axes} is not a permutation of the axes of {x.shape}", shape=x.shape)
    return tuple(x.shape[a] for a in axes), x.dtype


def _transpose_grad(node, operands, g):
    axes = node.attrs['axes']
    inverse = tuple(sorted(range(len(axes)), key=lambda i: axes[i]))
    return (transpose(g, inverse),)


register_op('transpose', _transpose_rule, _transpose_grad)


def transpose(x: Expr, axes: Optional[Sequence[int]] = None) -> Expr:
    """Permute the axes of ``x`` (reverses them by default)."""
    axes = tuple(reversed(range(x.ndim))) if axes is None else tuple(int(a) for a in axes)
    return apply('transpose', x, axes=axes)


# =============================================================================
# sum
# =============================================================================

def _sum_rule(x, axes, keep_axes):
    if keep_axes:
        shape = tuple(1 if i in axes else d for i, d in enumerate(x.shape))
    else:
        shape = tuple(d for i, d in enumerate(x.shape) if i not in axes)
    return shape, x.dtype


def _sum_grad(node, operands, g):
    x = operands[0]
    axes = node.attrs['axes']
    kept = tuple(1 if i in axes else d for i, d in enumerate(x.shape))
    return (broadcast_to(reshape(g, kept), x.shape),)


register_op('sum', _sum_rule, _sum_grad)


def sum(x: Expr, axes=None, keep_axes: bool = False) -> Expr:
    """Sum of ``x`` over ``axes`` (all axes by default)."""
    axes = _normalize_axes(axes, x.ndim, 'sum')
    return apply('sum', x, axes=axes, keep_axes=bool(keep_axes))


# =============================================================================
# dot
# =============================================================================

def _dot_rule(a, b):
    if a.ndim != 2 or b.ndim != 2 or a.shape[1] != b.shape[0]:
        raise ShapeMismatch(f"dot: incompatible shapes {a.shape} and {b.shape}", shape=a.shape)
    return (a.shape[0], b.shape[1]), merge(a.dtype, b.dtype)


def _dot_grad(node, operands, g):
    a, b = operands
    return apply('dot', g, transpose(b)), apply('dot', transpose(a), g)


register_op('dot', _dot_rule, _dot_grad)


def dot(a: Expr, b: Expr) -> Expr:
    """
    Matrix product with matmul semantics for operands of rank 1 or 2.

    Vectors are promoted to single-row/column matrices around the rank-2
    primitive and the added dimension is dropped from the result.
    """
    a, b = coerce_operands('dot', a, b)
    if a.ndim not in (1, 2) or b.ndim not in (1, 2):
        raise ShapeMismatch(f"dot: operands must have rank 1 or 2, got {a.shape} and {b.shape}", shape=a.shape)
    a2 = reshape(a, (1, a.shape[0])) if a.ndim == 1 else a
    b2 = reshape(b, (b.shape[0], 1)) if b.ndim == 1 else b
    out = apply('dot', a2, b2)
    shape = tuple(d for d, keep in zip(out.shape, (a.ndim == 2, b.ndim == 2)) if keep)
    return reshape(out, shape)


__all__ = ['broadcast_to', 'reshape', 'transpose', 'sum', 'dot', 'unbroadcast', 'broadcast_shapes']
