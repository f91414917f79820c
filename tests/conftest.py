"""Pytest configuration and fixtures."""

import numpy as np
import pytest

import tracegrad as tg


@pytest.fixture
def rng():
    """Seeded random generator for reproducible inputs."""
    return np.random.default_rng(42)


@pytest.fixture
def graph():
    """A fresh graph made active for the duration of the test."""
    from tracegrad.core.tracing import graph_scope

    with graph_scope() as g:
        yield g


@pytest.fixture(params=['numpy', 'torch'])
def backend(request):
    """Fixture that parametrizes over the shipped backends."""
    if request.param == 'torch':
        pytest.importorskip('torch')
    return tg.get_backend(request.param)


@pytest.fixture
def float64_default():
    """Use float64 as the default float type within the test."""
    previous = tg.config.default_float_type()
    tg.config.set_default_float_type('float64')
    yield
    tg.config.set_default_float_type(previous)


def _central_differences(fun, x, eps=1e-6):
    x = np.asarray(x, dtype=np.float64)
    out = np.zeros_like(x)
    for index in np.ndindex(x.shape):
        plus = x.copy()
        minus = x.copy()
        plus[index] += eps
        minus[index] -= eps
        out[index] = (float(fun(plus)) - float(fun(minus))) / (2 * eps)
    return out


@pytest.fixture
def numerical_grad():
    """Central finite differences of a scalar function at a float64 point."""
    return _central_differences

