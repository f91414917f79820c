"""
Tracegrad Backends
==================

Evaluators that run traced graphs on concrete arrays:
- ``numpy``: NumpyBackend, the reference implementation
- ``torch``: TorchBackend, CPU torch tensors

Usage:
    backend = get_backend("torch")
    values = backend.run(graph, output_ids, arguments)
"""

from __future__ import annotations
from importlib import import_module
from typing import Callable, Dict, Union

from .base import Backend

_FACTORIES: Dict[str, Callable[[], Backend]] = {}
_INSTANCES: Dict[str, Backend] = {}


def register_backend(name: str, factory: Callable[[], Backend]) -> None:
    """Make a backend available to ``get_backend`` and ``defn`` under ``name``."""
    _FACTORIES[name] = factory
    _INSTANCES.pop(name, None)


def _lazy(module: str, cls: str) -> Callable[[], Backend]:
    # torch is only imported once the torch backend is asked for
    def factory() -> Backend:
        return getattr(import_module(module, __name__), cls)()
    return factory


register_backend("numpy", _lazy(".numpy_backend", "NumpyBackend"))
register_backend("torch", _lazy(".torch_backend", "TorchBackend"))


def get_backend(backend: Union[str, Backend, None] = None) -> Backend:
    """
    Resolve a backend name (or instance) to a backend instance.

    ``None`` selects ``tracegrad.config.default_backend()``.
    """
    if isinstance(backend, Backend):
        return backend
    if backend is None:
        from ..config import default_backend
        backend = default_backend()
    if backend not in _FACTORIES:
        raise ValueError(f"Unknown backend: {backend} (available: {', '.join(sorted(_FACTORIES))})")
    if backend not in _INSTANCES:
        _INSTANCES[backend] = _FACTORIES[backend]()
    return _INSTANCES[backend]


__all__ = ['Backend', 'get_backend', 'register_backend']
