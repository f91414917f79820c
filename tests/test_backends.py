"""Tests for the numpy and torch backends."""

import numpy as np
import pytest
import torch

import tracegrad as tg
from tracegrad.backend import Backend, get_backend
from tracegrad.backend.numpy_backend import NumpyBackend
from tracegrad.backend.torch_backend import TorchBackend
from tracegrad.core.registry import registered_ops


def _model(params, x):
    hidden = tg.tanh(x @ params['w1'] + params['b1'])
    out = tg.erf(hidden @ params['w2'])
    return tg.mean(tg.maximum(out, -0.5) ** 2 + tg.sqrt(tg.exp(-x * x).sum(axes=1) + 1.0))


def _torch_model(params, x):
    hidden = torch.tanh(x @ params['w1'] + params['b1'])
    out = torch.special.erf(hidden @ params['w2'])
    return torch.mean(torch.maximum(out, torch.tensor(-0.5, dtype=out.dtype)) ** 2
                      + torch.sqrt(torch.exp(-x * x).sum(dim=1) + 1.0))


@pytest.fixture
def model_inputs(rng):
    params = {
        'w1': rng.normal(size=(3, 4)),
        'b1': rng.normal(size=(4,)),
        'w2': rng.normal(size=(4,)),
    }
    x = rng.normal(size=(5, 3))
    return params, x


class TestRegistry:
    """Tests for backend lookup."""

    def test_get_backend(self):
        assert isinstance(get_backend('numpy'), NumpyBackend)
        assert isinstance(get_backend('torch'), TorchBackend)
        assert get_backend('numpy') is get_backend('numpy')

    def test_instances_pass_through(self):
        backend = NumpyBackend()
        assert get_backend(backend) is backend

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            get_backend('jax')

    def test_default_backend(self):
        assert get_backend(None).name == tg.config.default_backend()

    @pytest.mark.parametrize('cls', [NumpyBackend, TorchBackend])
    def test_full_catalogue(self, cls):
        """Every registered primitive has a kernel (leaves are handled by run)."""
        missing = set(registered_ops()) - set(cls.supported_ops()) - {'parameter', 'constant'}
        missing = {op for op in missing if not op.startswith('test_')}
        assert not missing

    def test_missing_kernel(self):
        class Partial(Backend):
            name = 'partial'

            def from_numpy(self, array):
                return np.asarray(array)

            def to_numpy(self, value):
                return value

            def cast(self, value, node):
                return value

        t = tg.trace(lambda x: tg.exp(x), np.ones(2))
        with pytest.raises(tg.UnknownOperation):
            Partial().run(t.graph, [t.outputs[0].id], [np.ones(2)])

    def test_kernels_are_per_backend(self):
        assert 'exp' not in Backend.supported_ops()


class TestExecution:
    """Both backends compute the same values."""

    def test_elementwise(self, backend):
        f = tg.defn(lambda x, y: (x + y, x - y, x * y, x / y, x ** 2, -x, tg.sign(x)), backend=backend)
        x = np.array([1.5, -2.0, 3.0])
        y = np.array([2.0, 4.0, -1.0])
        results = f(x, y)
        expected = (x + y, x - y, x * y, x / y, x ** 2, -x, np.sign(x))
        for result, value in zip(results, expected):
            np.testing.assert_allclose(result, value)

    def test_comparisons(self, backend):
        f = tg.defn(lambda x: (x > 0, x >= 0, x < 0, x <= 0, tg.equal(x, 0), tg.not_equal(x, 0)), backend=backend)
        x = np.array([-1.0, 0.0, 2.0])
        results = f(x)
        assert all(r.dtype == np.uint8 for r in results)
        np.testing.assert_array_equal(results[0], [0, 0, 1])
        np.testing.assert_array_equal(results[1], [0, 1, 1])
        np.testing.assert_array_equal(results[4], [0, 1, 0])
        np.testing.assert_array_equal(results[5], [1, 0, 1])

    def test_shape_ops(self, backend):
        def f(x):
            return (
                tg.transpose(x),
                tg.reshape(x, (3, 2)),
                tg.broadcast_to(tg.sum(x, axes=0, keep_axes=True), (4, 3)),
                x @ tg.transpose(x),
                tg.sum(x, axes=1),
            )

        x = np.arange(6.0).reshape(2, 3)
        results = tg.defn(f, backend=backend)(x)
        np.testing.assert_allclose(results[0], x.T)
        np.testing.assert_allclose(results[1], x.reshape(3, 2))
        np.testing.assert_allclose(results[2], np.broadcast_to(x.sum(axis=0), (4, 3)))
        np.testing.assert_allclose(results[3], x @ x.T)
        np.testing.assert_allclose(results[4], x.sum(axis=1))

    def test_integer_types(self, backend):
        f = tg.defn(lambda x: (x * 3, x / 2, tg.as_type(x, 'float64'), tg.sum(x)), backend=backend)
        x = np.array([1, 2, 3], dtype=np.int32)
        times, half, as_float, total = f(x)
        assert times.dtype == np.int32
        assert half.dtype == np.float32
        assert as_float.dtype == np.float64
        assert total.dtype == np.int32
        np.testing.assert_array_equal(times, [3, 6, 9])
        np.testing.assert_allclose(half, [0.5, 1.0, 1.5])
        assert int(total) == 6

    def test_torch_matches_numpy(self, model_inputs):
        params, x = model_inputs
        numpy_result = tg.value_and_grad(params, lambda p: _model(p, x))
        f = tg.defn(lambda p, x: tg.value_and_grad(p, lambda p: _model(p, x)), backend='torch')
        torch_result = f(params, x)
        np.testing.assert_allclose(torch_result[0], numpy_result[0], rtol=1e-10)
        for name in params:
            np.testing.assert_allclose(torch_result[1][name], numpy_result[1][name], rtol=1e-10, atol=1e-12)


class TestAgainstTorchAutograd:
    """Symbolic gradients agree with torch.autograd."""

    def test_model_gradients(self, model_inputs):
        params, x = model_inputs
        grads = tg.grad(params, lambda p: _model(p, x))

        torch_params = {k: torch.tensor(v, requires_grad=True) for k, v in params.items()}
        loss = _torch_model(torch_params, torch.tensor(x))
        loss.backward()
        for name, tensor in torch_params.items():
            np.testing.assert_allclose(grads[name], tensor.grad.numpy(), rtol=1e-8, atol=1e-10)

    @pytest.mark.parametrize('name', ['exp', 'log', 'sin', 'cos', 'tanh', 'sqrt'])
    def test_unary(self, name):
        x = np.array([0.3, 1.2, 2.5])
        ours = tg.grad(x, lambda x: tg.sum(getattr(tg, name)(x)))

        tx = torch.tensor(x, requires_grad=True)
        getattr(torch, name)(tx).sum().backward()
        np.testing.assert_allclose(ours, tx.grad.numpy(), rtol=1e-10)
