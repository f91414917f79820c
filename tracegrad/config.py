"""
Tracegrad Configuration
=======================

Process-wide defaults: the types given to Python literals and integer
gradients, and the backend ``defn`` executes traced graphs on.

Usage:
    import tracegrad as tg

    tg.config.set_default_float_type("float64")
    tg.config.set_default_backend("torch")

Initial values can be set with the ``TRACEGRAD_DEFAULT_FLOAT`` and
``TRACEGRAD_BACKEND`` environment variables.
"""

from __future__ import annotations
import os

from .core.dtypes import DType, as_dtype

_BACKENDS = ("numpy", "torch")


def _float_from_env() -> DType:
    name = os.environ.get("TRACEGRAD_DEFAULT_FLOAT", "float32")
    dtype = as_dtype(name)
    if not dtype.is_float:
        raise ValueError(f"TRACEGRAD_DEFAULT_FLOAT must name a float type, got {name!r}")
    return dtype


def _backend_from_env() -> str:
    name = os.environ.get("TRACEGRAD_BACKEND", "numpy")
    if name not in _BACKENDS:
        raise ValueError(f"TRACEGRAD_BACKEND must be one of {_BACKENDS}, got {name!r}")
    return name


_default_float = _float_from_env()
_default_int = DType.INT64
_default_backend = _backend_from_env()


def default_float_type() -> DType:
    return _default_float


def default_int_type() -> DType:
    return _default_int


def default_backend() -> str:
    return _default_backend


def set_default_float_type(dtype) -> None:
    """
    Set the float type used for float literals and integer gradients.

    Args:
        dtype: a float DType or its name, e.g. ``"float64"``
    """
    global _default_float

    dtype = as_dtype(dtype)
    if not dtype.is_float:
        raise ValueError(f"Default float type must be a float type, got {dtype!r}")
    _default_float = dtype


def set_default_int_type(dtype) -> None:
    """Set the integer type given to Python ``int`` values."""
    global _default_int

    dtype = as_dtype(dtype)
    if not dtype.is_integer:
        raise ValueError(f"Default int type must be an integer type, got {dtype!r}")
    _default_int = dtype


def set_default_backend(name: str) -> None:
    """
    Set the backend ``defn`` runs traced graphs on.

    Args:
        name: ``'numpy'`` or ``'torch'``
    """
    global _default_backend

    if name not in _BACKENDS:
        raise ValueError(f"Unknown backend: {name}")
    _default_backend = name
