"""
Tracegrad Backend - PyTorch
===========================

Evaluates traced graphs with CPU torch tensors. Operands are moved to the
node's result type before kernels that torch does not promote across
(matmul, selection, transcendental functions of integers).
"""

from __future__ import annotations
from typing import Dict

import numpy as np
import torch

from .base import Backend
from ..core.dtypes import DType
from ..errors import TracingError

_TORCH_DTYPES: Dict[DType, torch.dtype] = {
    DType.UINT8: torch.uint8,
    DType.INT8: torch.int8,
    DType.INT16: torch.int16,
    DType.INT32: torch.int32,
    DType.INT64: torch.int64,
    DType.FLOAT16: torch.float16,
    DType.FLOAT32: torch.float32,
    DType.FLOAT64: torch.float64,
}
# Wider unsigned types only exist in recent torch releases
for _dtype in (DType.UINT16, DType.UINT32, DType.UINT64):
    if hasattr(torch, _dtype.type_name):
        _TORCH_DTYPES[_dtype] = getattr(torch, _dtype.type_name)


def torch_dtype(dtype: DType) -> torch.dtype:
    try:
        return _TORCH_DTYPES[dtype]
    except KeyError:
        raise TracingError(f"{dtype!r} is not supported by the torch backend") from None


class TorchBackend(Backend):
    name = "torch"

    def from_numpy(self, array):
        # torch.tensor copies, so read-only constants are safe to pass
        return torch.tensor(np.asarray(array))

    def to_numpy(self, value):
        return value.detach().numpy()

    def cast(self, value, node):
        return value.to(torch_dtype(node.dtype)).reshape(node.shape)


def _as(node, x):
    return x.to(torch_dtype(node.dtype))


# =============================================================================
# Leaves and identities
# =============================================================================

@TorchBackend.implements('full')
def _full(node):
    return torch.full(node.shape, node.attrs['value'], dtype=torch_dtype(node.dtype))


@TorchBackend.implements('stop_grad')
def _stop_grad(node, x):
    return x


@TorchBackend.implements('custom_grad')
def _custom_grad(node, x, *inputs):
    return x


@TorchBackend.implements('as_type')
def _as_type(node, x):
    return _as(node, x)


# =============================================================================
# Elementwise
# =============================================================================

_BINARY = {
    'add': torch.add,
    'subtract': torch.sub,
    'multiply': torch.mul,
    'divide': torch.true_divide,
    'greater': torch.gt,
    'greater_equal': torch.ge,
    'less': torch.lt,
    'less_equal': torch.le,
    'equal': torch.eq,
    'not_equal': torch.ne,
}

for _op, _fn in _BINARY.items():
    TorchBackend.implements(_op)(lambda node, a, b, _fn=_fn: _fn(a, b))


@TorchBackend.implements('power')
def _power(node, a, b):
    return torch.pow(_as(node, a), _as(node, b))


@TorchBackend.implements('negate')
def _negate(node, x):
    return torch.neg(x)


@TorchBackend.implements('sign')
def _sign(node, x):
    return torch.sign(x)


_FLOAT_UNARY = {
    'exp': torch.exp,
    'log': torch.log,
    'sin': torch.sin,
    'cos': torch.cos,
    'tanh': torch.tanh,
    'sqrt': torch.sqrt,
    'erf': torch.special.erf,
}

for _op, _fn in _FLOAT_UNARY.items():
    TorchBackend.implements(_op)(lambda node, x, _fn=_fn: _fn(_as(node, x)))


@TorchBackend.implements('select')
def _select(node, pred, on_true, on_false):
    return torch.where(pred != 0, _as(node, on_true), _as(node, on_false))


# =============================================================================
# Shape, reduction and contraction
# =============================================================================

@TorchBackend.implements('broadcast_to')
def _broadcast_to(node, x):
    return torch.broadcast_to(x, node.attrs['shape'])


@TorchBackend.implements('reshape')
def _reshape(node, x):
    return torch.reshape(x, node.attrs['shape'])


@TorchBackend.implements('transpose')
def _transpose(node, x):
    return x.permute(*node.attrs['axes'])


@TorchBackend.implements('sum')
def _sum(node, x):
    axes = node.attrs['axes']
    if not axes:
        # an empty dim list means "all dims" to torch
        return x
    return torch.sum(x, dim=axes, keepdim=node.attrs['keep_axes'])


@TorchBackend.implements('dot')
def _dot(node, a, b):
    return torch.matmul(_as(node, a), _as(node, b))
