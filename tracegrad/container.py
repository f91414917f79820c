"""
Tracegrad Containers
====================

Flatten/unflatten protocol that lets composite values (tuples, lists, dicts,
namedtuples and user classes) act as function arguments, results and
differentiation variables.

``flatten`` turns a composite into an ordered list of tensor leaves plus a
``TreeDef`` describing the scaffolding; ``unflatten`` rebuilds an equal
composite around replacement leaves:

    >>> leaves, tree = flatten({'w': w, 'b': (b0, b1)})
    >>> unflatten(tree, leaves) == {'w': w, 'b': (b0, b1)}

A type opts in either by subclassing ``Container`` or through
``register_container`` / the ``container`` class decorator.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, is_dataclass
from typing import Any, Callable, Dict, Hashable, Iterator, List, NamedTuple, Optional, Sequence, Tuple
import numbers

import numpy as np

from .core.graph import Expr, TensorSpec
from .errors import TracingError


class Container(ABC):
    """
    Interface for user types that hold tensors.

    Subclasses return their children (tensors or nested containers) plus any
    non-tensor metadata from ``tree_flatten`` and rebuild themselves in
    ``tree_unflatten``. Children order must be deterministic.
    """

    @abstractmethod
    def tree_flatten(self) -> Tuple[Sequence[Any], Hashable]:
        ...

    @classmethod
    @abstractmethod
    def tree_unflatten(cls, aux: Hashable, children: Sequence[Any]) -> "Container":
        ...


class _Handler(NamedTuple):
    flatten: Callable[[Any], Tuple[Sequence[Any], Any]]
    unflatten: Callable[[Any, Sequence[Any]], Any]


_HANDLERS: Dict[type, _Handler] = {}


def register_container(cls: type, flatten: Callable, unflatten: Callable) -> None:
    """
    Make ``cls`` flattenable without subclassing ``Container``.

    Args:
        cls: the composite type
        flatten: ``flatten(obj) -> (children, aux)``
        unflatten: ``unflatten(aux, children) -> obj``
    """
    if cls in _HANDLERS:
        raise ValueError(f"{cls.__name__} is already registered as a container")
    _HANDLERS[cls] = _Handler(flatten, unflatten)


def container(cls: Optional[type] = None, *, containers: Optional[Sequence[str]] = None, keep: Sequence[str] = ()):
    """
    Class decorator deriving the container protocol for a dataclass.

    Fields listed in ``containers`` (default: every field not in ``keep``)
    are children; fields in ``keep`` are carried as metadata and restored
    unchanged by unflatten.

    Example:
        @container(keep=['activation'])
        @dataclass
        class Dense:
            weight: Any
            bias: Any
            activation: str = 'relu'
    """
    keep = tuple(keep)

    def wrap(cls: type) -> type:
        if containers is not None:
            names = tuple(containers)
        elif is_dataclass(cls):
            names = tuple(f.name for f in fields(cls) if f.name not in keep)
        else:
            raise TypeError(f"{cls.__name__} is not a dataclass; pass containers= explicitly")
        if is_dataclass(cls):
            missing = {f.name for f in fields(cls) if f.init} - set(names) - set(keep)
            if missing:
                raise ValueError(f"Fields {sorted(missing)} of {cls.__name__} are neither containers nor kept")

        def flatten_obj(obj):
            return [getattr(obj, n) for n in names], tuple(getattr(obj, k) for k in keep)

        def unflatten_obj(aux, children):
            kwargs = dict(zip(names, children))
            kwargs.update(zip(keep, aux))
            return cls(**kwargs)

        register_container(cls, flatten_obj, unflatten_obj)
        return cls

    return wrap if cls is None else wrap(cls)


def _sorted_keys(mapping: dict) -> Tuple:
    try:
        return tuple(sorted(mapping))
    except TypeError:
        return tuple(sorted(mapping, key=lambda k: (type(k).__name__, repr(k))))


register_container(tuple, lambda t: (t, None), lambda aux, children: tuple(children))
register_container(list, lambda l: (l, None), lambda aux, children: list(children))
register_container(type(None), lambda n: ((), None), lambda aux, children: None)
register_container(
    dict,
    lambda d: ([d[k] for k in _sorted_keys(d)], _sorted_keys(d)),
    lambda keys, children: dict(zip(keys, children)),
)


def _is_namedtuple(cls: type) -> bool:
    return issubclass(cls, tuple) and hasattr(cls, '_fields')


def _handler_for(cls: type) -> Optional[_Handler]:
    handler = _HANDLERS.get(cls)
    if handler is not None:
        return handler
    if _is_namedtuple(cls):
        return _Handler(lambda t: (list(t), None), lambda aux, children: cls(*children))
    if issubclass(cls, Container):
        return _Handler(lambda obj: obj.tree_flatten(), cls.tree_unflatten)
    return None


def is_leaf(value: Any) -> bool:
    """Tensors, tensor specs, numpy arrays/scalars and real Python numbers."""
    if isinstance(value, (Expr, np.ndarray, np.generic, TensorSpec)):
        return True
    return isinstance(value, numbers.Real)


@dataclass(frozen=True)
class TreeDef:
    """
    Reconstruction token produced by ``flatten``.

    ``kind`` is None for a single leaf, otherwise the container type;
    ``aux`` is that container's metadata (dict keys, kept fields, ...).
    """
    kind: Optional[type]
    aux: Any
    children: Tuple["TreeDef", ...]
    num_leaves: int

    @property
    def is_leaf(self) -> bool:
        return self.kind is None

    def __repr__(self) -> str:
        if self.kind is None:
            return "*"
        inner = ", ".join(repr(c) for c in self.children)
        return f"{self.kind.__name__}[{inner}]"


_LEAF = TreeDef(None, None, (), 1)


def flatten(value: Any) -> Tuple[List[Any], TreeDef]:
    """
    Decompose ``value`` into its ordered tensor leaves and a TreeDef.

    Raises:
        TracingError: if a part of ``value`` is neither a leaf nor a
            registered container
    """
    leaves: List[Any] = []
    treedef = _flatten(value, leaves)
    return leaves, treedef


def _flatten(value: Any, leaves: List[Any]) -> TreeDef:
    if is_leaf(value):
        leaves.append(value)
        return _LEAF
    handler = _handler_for(type(value))
    if handler is None:
        raise TracingError(
            f"{type(value).__name__} is neither a tensor nor a registered container"
        )
    children, aux = handler.flatten(value)
    child_defs = tuple(_flatten(child, leaves) for child in children)
    return TreeDef(type(value), aux, child_defs, sum(c.num_leaves for c in child_defs))


def unflatten(treedef: TreeDef, leaves: Sequence[Any]) -> Any:
    """Rebuild a composite shaped like ``treedef`` around ``leaves``."""
    leaves = list(leaves)
    if len(leaves) != treedef.num_leaves:
        raise ValueError(f"Expected {treedef.num_leaves} leaves for {treedef!r}, got {len(leaves)}")
    return _unflatten(treedef, iter(leaves))


def _unflatten(treedef: TreeDef, leaves: Iterator[Any]) -> Any:
    if treedef.kind is None:
        return next(leaves)
    children = [_unflatten(child, leaves) for child in treedef.children]
    return _handler_for(treedef.kind).unflatten(treedef.aux, children)


def leaves(value: Any) -> List[Any]:
    return flatten(value)[0]


def tree_map(fn: Callable, tree: Any, *rest: Any) -> Any:
    """Apply ``fn`` leafwise across ``tree`` and structurally identical ``rest``."""
    flat, treedef = flatten(tree)
    others = []
    for other in rest:
        other_flat, other_def = flatten(other)
        if other_def != treedef:
            raise ValueError(f"Structure mismatch: {treedef!r} vs {other_def!r}")
        others.append(other_flat)
    return unflatten(treedef, [fn(*args) for args in zip(flat, *others)])
