"""
Tracegrad Core: Expression Graph
================================

The symbolic representation traced functions are turned into.

A ``Graph`` is an append-only arena of immutable ``Node`` records addressed
by integer ids. A node may be the operand of many consumers (the graph is a
DAG, not a tree) and, because operands must already exist when a node is
added, the arena can never contain a cycle. ``Expr`` is the handle user code
manipulates while tracing.
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .dtypes import DType, as_dtype
from ..errors import TracingError

_EMPTY_ATTRS: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True, eq=False)
class Node:
    """
    One traced operation.

    Attributes
    ----------
    id : int
        Position of the node in its graph.
    op : str
        Operation tag, the key into the operation registry.
    args : Tuple[int, ...]
        Ordered operand node ids.
    shape : Tuple[int, ...]
        Result shape.
    dtype : DType
        Result element type.
    attrs : Mapping[str, Any]
        Static parameters of the operation (axes, target shape, ...).
    value : Optional[np.ndarray]
        Embedded constant for literal leaves.
    """
    id: int
    op: str
    args: Tuple[int, ...]
    shape: Tuple[int, ...]
    dtype: DType
    attrs: Mapping[str, Any] = field(default_factory=lambda: _EMPTY_ATTRS)
    value: Optional[np.ndarray] = None

    @property
    def is_leaf(self) -> bool:
        return not self.args

    @property
    def ndim(self) -> int:
        return len(self.shape)


class Graph:
    """Append-only arena of nodes."""

    def __init__(self):
        self._nodes: List[Node] = []

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, node_id: int) -> Node:
        return self._nodes[node_id]

    def __iter__(self):
        return iter(self._nodes)

    def __repr__(self) -> str:
        return f"Graph(nodes={len(self._nodes)})"

    def add_node(
        self,
        op: str,
        args: Sequence[int],
        shape: Sequence[int],
        dtype: DType,
        attrs: Optional[Mapping[str, Any]] = None,
        value: Optional[np.ndarray] = None,
    ) -> int:
        """Append a node and return its id. Operands must already exist."""
        node_id = len(self._nodes)
        args = tuple(int(a) for a in args)
        for arg in args:
            if not 0 <= arg < node_id:
                raise TracingError(f"Operand #{arg} of {op} does not exist in this graph")
        if value is not None:
            value.setflags(write=False)
        node = Node(
            id=node_id,
            op=op,
            args=args,
            shape=tuple(int(s) for s in shape),
            dtype=dtype,
            attrs=MappingProxyType(dict(attrs)) if attrs else _EMPTY_ATTRS,
            value=value,
        )
        self._nodes.append(node)
        return node_id

    def topological_order(self, outputs: Iterable[int]) -> List[int]:
        """
        Every node reachable from ``outputs``, operands before consumers.

        Each node appears once no matter how many consumers reference it.
        The walk is an explicit-stack postorder so deep graphs do not hit
        the recursion limit.
        """
        order: List[int] = []
        visited = set()
        for root in outputs:
            stack = [(root, False)]
            while stack:
                node_id, expanded = stack.pop()
                if expanded:
                    order.append(node_id)
                    continue
                if node_id in visited:
                    continue
                visited.add(node_id)
                stack.append((node_id, True))
                for arg in reversed(self._nodes[node_id].args):
                    if arg not in visited:
                        stack.append((arg, False))
        return order

    def consumers(self, order: Iterable[int]) -> Dict[int, List[int]]:
        """Map each node in ``order`` to its consumers within ``order``, one entry per edge."""
        result: Dict[int, List[int]] = {node_id: [] for node_id in order}
        for node_id in result:
            for arg in self._nodes[node_id].args:
                if arg in result:
                    result[arg].append(node_id)
        return result

    def summary(self, outputs: Optional[Iterable[int]] = None) -> Dict[str, Any]:
        """Node and edge counts, fan-in/fan-out and a per-op breakdown."""
        ids = self.topological_order(outputs) if outputs is not None else range(len(self._nodes))
        nodes = [self._nodes[i] for i in ids]
        if not nodes:
            return {'nodes': 0, 'edges': 0, 'max_fan_in': 0, 'max_fan_out': 0, 'operations': {}}

        fan_out = Counter(arg for node in nodes for arg in node.args)
        return {
            'nodes': len(nodes),
            'edges': sum(len(node.args) for node in nodes),
            'max_fan_in': max(len(node.args) for node in nodes),
            'max_fan_out': max(fan_out.values()) if fan_out else 0,
            'operations': dict(Counter(node.op for node in nodes)),
        }

    def format(self, outputs: Optional[Iterable[int]] = None) -> str:
        ids = self.topological_order(outputs) if outputs is not None else range(len(self._nodes))
        lines = []
        for i in ids:
            node = self._nodes[i]
            parts = [f"#{a}" for a in node.args]
            parts += [f"{k}={v!r}" for k, v in node.attrs.items() if not callable(v)]
            lines.append(f"#{node.id:<4d} = {node.op}({', '.join(parts)})  {node.shape} {node.dtype.type_name}")
        return "\n".join(lines)


class Expr:
    """
    Handle to one node of a graph, with Python operator overloading.

    Operations on an Expr build new nodes; nothing is computed.
    """

    __slots__ = ("graph", "id")
    # numpy defers binary operators with an Expr to the Expr's reflected method
    __array_ufunc__ = None

    def __init__(self, graph: Graph, node_id: int):
        self.graph = graph
        self.id = node_id

    @property
    def node(self) -> Node:
        return self.graph[self.id]

    @property
    def op(self) -> str:
        return self.node.op

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.node.shape

    @property
    def dtype(self) -> DType:
        return self.node.dtype

    @property
    def ndim(self) -> int:
        return len(self.node.shape)

    @property
    def size(self) -> int:
        return int(np.prod(self.node.shape, dtype=np.int64))

    def __repr__(self) -> str:
        node = self.node
        return f"Expr<#{node.id} {node.op} {node.shape} {node.dtype.type_name}>"

    def __bool__(self):
        raise TracingError(
            f"Cannot use the truth value of symbolic {self!r}; "
            "use tracegrad.select for data-dependent choices"
        )

    def __iter__(self):
        raise TracingError(f"Cannot iterate over symbolic {self!r}")

    def __add__(self, other):
        from ..ops import add
        return add(self, other)

    def __radd__(self, other):
        from ..ops import add
        return add(other, self)

    def __sub__(self, other):
        from ..ops import subtract
        return subtract(self, other)

    def __rsub__(self, other):
        from ..ops import subtract
        return subtract(other, self)

    def __mul__(self, other):
        from ..ops import multiply
        return multiply(self, other)

    def __rmul__(self, other):
        from ..ops import multiply
        return multiply(other, self)

    def __truediv__(self, other):
        from ..ops import divide
        return divide(self, other)

    def __rtruediv__(self, other):
        from ..ops import divide
        return divide(other, self)

    def __pow__(self, other):
        from ..ops import power
        return power(self, other)

    def __rpow__(self, other):
        from ..ops import power
        return power(other, self)

    def __matmul__(self, other):
        from ..ops import dot
        return dot(self, other)

    def __rmatmul__(self, other):
        from ..ops import dot
        return dot(other, self)

    def __neg__(self):
        from ..ops import negate
        return negate(self)

    def __abs__(self):
        from ..ops import abs as abs_
        return abs_(self)

    def __lt__(self, other):
        from ..ops import less
        return less(self, other)

    def __le__(self, other):
        from ..ops import less_equal
        return less_equal(self, other)

    def __gt__(self, other):
        from ..ops import greater
        return greater(self, other)

    def __ge__(self, other):
        from ..ops import greater_equal
        return greater_equal(self, other)

    @property
    def T(self) -> "Expr":
        from ..ops import transpose
        return transpose(self)

    def astype(self, dtype) -> "Expr":
        from ..ops import as_type
        return as_type(self, dtype)

    def reshape(self, *shape) -> "Expr":
        from ..ops import reshape
        if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
            shape = tuple(shape[0])
        return reshape(self, shape)

    def sum(self, axes=None, keep_axes: bool = False) -> "Expr":
        from ..ops import sum as sum_
        return sum_(self, axes=axes, keep_axes=keep_axes)

    def mean(self, axes=None, keep_axes: bool = False) -> "Expr":
        from ..ops import mean
        return mean(self, axes=axes, keep_axes=keep_axes)


@dataclass(frozen=True)
class TensorSpec:
    """Shape and type of a tensor argument, for tracing without data."""
    shape: Tuple[int, ...]
    dtype: DType

    def __post_init__(self):
        object.__setattr__(self, 'shape', tuple(int(s) for s in self.shape))
        object.__setattr__(self, 'dtype', as_dtype(self.dtype))
