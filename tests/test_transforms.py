"""Tests for grad, value_and_grad and defn."""

from collections import namedtuple

import numpy as np
import pytest

import tracegrad as tg

Params = namedtuple('Params', ['w', 'b'])


def _loss(params):
    return tg.sum(tg.tanh(params['w'] * 3.0 + params['b']) ** 2)


class TestValueAndGrad:
    """Tests for value_and_grad over composite variables."""

    def test_matches_separate_calls(self, rng):
        """value_and_grad equals (f(x), grad(f)(x)) computed separately."""
        params = {'w': rng.normal(size=(3,)), 'b': rng.normal(size=(3,))}
        value, grads = tg.value_and_grad(params, _loss)
        np.testing.assert_allclose(value, tg.defn(_loss)(params))
        separate = tg.grad(params, _loss)
        assert set(grads) == {'w', 'b'}
        np.testing.assert_allclose(grads['w'], separate['w'])
        np.testing.assert_allclose(grads['b'], separate['b'])

    def test_composite_partials(self):
        """z * (x + y) has partials (z, z, x + y)."""
        variables = {'x': np.float64(2.0), 'y': np.float64(3.0), 'z': np.float64(4.0)}
        grads = tg.grad(variables, lambda v: v['z'] * (v['x'] + v['y']))
        np.testing.assert_allclose(grads['x'], 4.0)
        np.testing.assert_allclose(grads['y'], 4.0)
        np.testing.assert_allclose(grads['z'], 5.0)

    def test_structure_is_preserved(self):
        variables = Params(w=np.ones((2, 2)), b=[np.zeros(2), np.zeros(2)])
        grads = tg.grad(variables, lambda p: tg.sum(p.w @ (p.b[0] + 2 * p.b[1])))
        assert type(grads) is Params
        assert isinstance(grads.b, list)
        np.testing.assert_allclose(grads.w, np.zeros((2, 2)))
        np.testing.assert_allclose(grads.b[0], [2.0, 2.0])
        np.testing.assert_allclose(grads.b[1], [4.0, 4.0])

    def test_transform(self):
        """The transform picks the objective; the value is returned untransformed."""
        x = np.array([1.0, 2.0])

        def f(x):
            return {'loss': tg.sum(x * x), 'aux': x + 1}

        value, grads = tg.value_and_grad(x, f, lambda out: out['loss'])
        assert set(value) == {'loss', 'aux'}
        np.testing.assert_allclose(value['aux'], [2.0, 3.0])
        np.testing.assert_allclose(grads, 2 * x)

    def test_composite_objective_fails(self):
        with pytest.raises(tg.ShapeMismatch):
            tg.grad(np.ones(2), lambda x: (tg.sum(x), tg.sum(x)))

    def test_non_scalar_objective_fails(self):
        with pytest.raises(tg.ShapeMismatch):
            tg.value_and_grad(np.ones(3), lambda x: x * 2)

    def test_curried(self):
        x = np.array([0.5, -1.0])
        df = tg.grad(lambda x: tg.sum(tg.exp(x)))
        np.testing.assert_allclose(df(x), np.exp(x), rtol=1e-6)

        vg = tg.value_and_grad(lambda x: {'out': x * x}, lambda out: tg.sum(out['out']))
        value, grads = vg(x)
        np.testing.assert_allclose(value['out'], x * x)
        np.testing.assert_allclose(grads, 2 * x)

    def test_inside_trace_returns_exprs(self):
        def f(x):
            value, grads = tg.value_and_grad(x, lambda x: tg.sum(x * x))
            assert isinstance(value, tg.Expr)
            assert isinstance(grads, tg.Expr)
            return grads

        np.testing.assert_allclose(tg.defn(f)(np.array([1.0, 3.0])), [2.0, 6.0])


class TestDefn:
    """Tests for traced execution."""

    def test_returns_numpy(self):
        @tg.defn
        def softplus(x):
            return tg.log(1 + tg.exp(x))

        x = np.linspace(-1, 1, 5)
        result = softplus(x)
        assert isinstance(result, np.ndarray)
        np.testing.assert_allclose(result, np.log1p(np.exp(x)))

    def test_composite_output(self):
        @tg.defn
        def stats(x):
            return {'mean': tg.mean(x), 'sum': tg.sum(x)}

        result = stats(np.arange(4.0))
        np.testing.assert_allclose(result['mean'], 1.5)
        np.testing.assert_allclose(result['sum'], 6.0)

    def test_fresh_graph_per_call(self):
        """Each call traces again, so new shapes just work."""
        f = tg.defn(lambda x: tg.sum(x))
        np.testing.assert_allclose(f(np.ones(2)), 2.0)
        np.testing.assert_allclose(f(np.ones((3, 3))), 9.0)

    def test_inlining(self):
        inner = tg.defn(lambda x: x * 2)
        outer = tg.defn(lambda x: inner(x) + 1)
        t = tg.trace_only(lambda x: inner(x) + 1)(np.ones(2))
        assert isinstance(t, tg.Trace)
        np.testing.assert_allclose(outer(np.ones(2)), [3.0, 3.0])

    def test_trace_only_with_specs(self):
        t = tg.trace_only(lambda x, y: x @ y)(tg.TensorSpec((2, 3), 'float32'), tg.TensorSpec((3,), 'float32'))
        assert t.result.shape == (2,)
        assert t.graph.summary([e.id for e in t.outputs])['operations']['dot'] == 1

    def test_argument_shape_checked(self):
        t = tg.trace(lambda x: x + 1, np.ones(2))
        with pytest.raises(tg.ShapeMismatch):
            tg.get_backend('numpy').run(t.graph, [t.outputs[0].id], [np.ones(3)])

    def test_float64_default(self, float64_default):
        assert tg.defn(lambda x: x * 1.5)(2.0).dtype == np.float64
