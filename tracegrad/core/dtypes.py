"""
Tracegrad Core: Numeric Types
=============================

Tensor element types and the promotion rules applied when operands of
different types meet in one operation.
"""

from __future__ import annotations
from enum import Enum
from typing import Any
import numbers

import numpy as np

from ..errors import TracingError


class DType(Enum):
    UINT8 = ("uint8", "u", 8, np.uint8)
    UINT16 = ("uint16", "u", 16, np.uint16)
    UINT32 = ("uint32", "u", 32, np.uint32)
    UINT64 = ("uint64", "u", 64, np.uint64)
    INT8 = ("int8", "s", 8, np.int8)
    INT16 = ("int16", "s", 16, np.int16)
    INT32 = ("int32", "s", 32, np.int32)
    INT64 = ("int64", "s", 64, np.int64)
    FLOAT16 = ("float16", "f", 16, np.float16)
    FLOAT32 = ("float32", "f", 32, np.float32)
    FLOAT64 = ("float64", "f", 64, np.float64)

    def __init__(self, type_name: str, kind: str, bits: int, numpy_dtype):
        self.type_name = type_name
        self.kind = kind
        self.bits = bits
        self.numpy_dtype = numpy_dtype

    def __repr__(self) -> str:
        return f"tg.{self.type_name}"

    @property
    def is_float(self) -> bool:
        return self.kind == "f"

    @property
    def is_integer(self) -> bool:
        return self.kind in ("s", "u")

    @staticmethod
    def from_numpy(dtype) -> "DType":
        dtype = np.dtype(dtype)
        if dtype == np.bool_:
            return DType.UINT8
        for member in DType:
            if np.dtype(member.numpy_dtype) == dtype:
                return member
        raise TracingError(f"Unsupported numpy dtype: {dtype}")

    @staticmethod
    def of(kind: str, bits: int) -> "DType":
        for member in DType:
            if member.kind == kind and member.bits == bits:
                return member
        raise ValueError(f"No type of kind {kind!r} with {bits} bits")


uint8 = DType.UINT8
uint16 = DType.UINT16
uint32 = DType.UINT32
uint64 = DType.UINT64
int8 = DType.INT8
int16 = DType.INT16
int32 = DType.INT32
int64 = DType.INT64
float16 = DType.FLOAT16
float32 = DType.FLOAT32
float64 = DType.FLOAT64


def as_dtype(value) -> DType:
    """Accept a DType, its name, or anything numpy understands as a dtype."""
    if isinstance(value, DType):
        return value
    if isinstance(value, str):
        for member in DType:
            if member.type_name == value:
                return member
    try:
        return DType.from_numpy(value)
    except TypeError:
        raise ValueError(f"Not a tensor type: {value!r}") from None


def merge(a: DType, b: DType) -> DType:
    """
    Promote two tensor types to the type of a binary operation's result.

    float beats integer, the larger size wins within a kind, and mixing
    signed with unsigned gives a signed type wide enough for both.
    """
    if a is b:
        return a
    if a.is_float or b.is_float:
        if a.is_float and b.is_float:
            return a if a.bits >= b.bits else b
        return a if a.is_float else b
    if a.kind == b.kind:
        return a if a.bits >= b.bits else b
    signed, unsigned = (a, b) if a.kind == "s" else (b, a)
    if signed.bits > unsigned.bits:
        return signed
    return DType.of("s", min(unsigned.bits * 2, 64))


def merge_scalar(dtype: DType, number) -> DType:
    """Type of ``tensor <op> number`` where the number is a Python literal."""
    if isinstance(number, (bool, numbers.Integral)):
        return dtype
    if dtype.is_float:
        return dtype
    from .. import config
    return config.default_float_type()


def to_floating(dtype: DType) -> DType:
    """The floating type gradients of ``dtype`` values are expressed in."""
    if dtype.is_float:
        return dtype
    from .. import config
    return config.default_float_type()


def infer_dtype(value: Any) -> DType:
    from .. import config

    if isinstance(value, bool):
        return DType.UINT8
    if isinstance(value, numbers.Integral) and not isinstance(value, np.generic):
        return config.default_int_type()
    if isinstance(value, numbers.Real) and not isinstance(value, np.generic):
        return config.default_float_type()
    if isinstance(value, (np.ndarray, np.generic)):
        return DType.from_numpy(value.dtype)
    raise TracingError(f"Cannot infer a tensor type for {type(value).__name__}")
