"""
Tracegrad Backend - NumPy
=========================

Reference evaluator on numpy arrays. ``erf`` comes from scipy.
"""

from __future__ import annotations
import numpy as np
from scipy import special

from .base import Backend


class NumpyBackend(Backend):
    name = "numpy"

    def from_numpy(self, array):
        return np.asarray(array)

    def to_numpy(self, value):
        return np.array(value, copy=True)

    def cast(self, value, node):
        return np.asarray(value, dtype=node.dtype.numpy_dtype).reshape(node.shape)


def _floating(node, x):
    return np.asarray(x, dtype=node.dtype.numpy_dtype)


# =============================================================================
# Leaves and identities
# =============================================================================

@NumpyBackend.implements('full')
def _full(node):
    return np.full(node.shape, node.attrs['value'], dtype=node.dtype.numpy_dtype)


@NumpyBackend.implements('stop_grad')
def _stop_grad(node, x):
    return x


@NumpyBackend.implements('custom_grad')
def _custom_grad(node, x, *inputs):
    return x


@NumpyBackend.implements('as_type')
def _as_type(node, x):
    return x.astype(node.dtype.numpy_dtype)


# =============================================================================
# Elementwise
# =============================================================================

_BINARY = {
    'add': np.add,
    'subtract': np.subtract,
    'multiply': np.multiply,
    'divide': np.true_divide,
    'greater': np.greater,
    'greater_equal': np.greater_equal,
    'less': np.less,
    'less_equal': np.less_equal,
    'equal': np.equal,
    'not_equal': np.not_equal,
}

for _op, _ufunc in _BINARY.items():
    NumpyBackend.implements(_op)(lambda node, a, b, _ufunc=_ufunc: _ufunc(a, b))


@NumpyBackend.implements('power')
def _power(node, a, b):
    dtype = node.dtype.numpy_dtype
    return np.power(a.astype(dtype), b.astype(dtype))


@NumpyBackend.implements('negate')
def _negate(node, x):
    return np.negative(x)


@NumpyBackend.implements('sign')
def _sign(node, x):
    return np.sign(x)


_FLOAT_UNARY = {
    'exp': np.exp,
    'log': np.log,
    'sin': np.sin,
    'cos': np.cos,
    'tanh': np.tanh,
    'sqrt': np.sqrt,
    'erf': special.erf,
}

for _op, _ufunc in _FLOAT_UNARY.items():
    NumpyBackend.implements(_op)(lambda node, x, _ufunc=_ufunc: _ufunc(_floating(node, x)))


@NumpyBackend.implements('select')
def _select(node, pred, on_true, on_false):
    return np.where(pred != 0, on_true, on_false)


# =============================================================================
# Shape, reduction and contraction
# =============================================================================

@NumpyBackend.implements('broadcast_to')
def _broadcast_to(node, x):
    return np.broadcast_to(x, node.attrs['shape'])


@NumpyBackend.implements('reshape')
def _reshape(node, x):
    return np.reshape(x, node.attrs['shape'])


@NumpyBackend.implements('transpose')
def _transpose(node, x):
    return np.transpose(x, node.attrs['axes'])


@NumpyBackend.implements('sum')
def _sum(node, x):
    return np.sum(x, axis=node.attrs['axes'], keepdims=node.attrs['keep_axes'])


@NumpyBackend.implements('dot')
def _dot(node, a, b):
    dtype = node.dtype.numpy_dtype
    return np.matmul(a.astype(dtype), b.astype(dtype))
