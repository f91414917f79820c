"""Tests for the expression graph, tracing and the operation catalogue's shape rules."""

import threading

import numpy as np
import pytest

import tracegrad as tg
from tracegrad.core.graph import Graph, Node
from tracegrad.core.registry import get_op, register_op
from tracegrad.core.tracing import active_graph, apply, constant, graph_scope, parameter


class TestGraph:
    """Tests for the node arena."""

    def test_add_node(self):
        g = Graph()
        a = g.add_node('parameter', (), (2,), tg.float32, {'position': 0})
        b = g.add_node('negate', [a], (2,), tg.float32)
        assert len(g) == 2
        assert g[b].args == (a,)
        assert g[a].is_leaf
        assert not g[b].is_leaf
        assert g[a].attrs['position'] == 0

    def test_operands_must_exist(self):
        """A node can only reference earlier nodes, so no cycle can form."""
        g = Graph()
        with pytest.raises(tg.TracingError):
            g.add_node('negate', [0], (), tg.float32)
        a = g.add_node('full', (), (), tg.float32, {'value': 1.0})
        with pytest.raises(tg.TracingError):
            g.add_node('negate', [a + 1], (), tg.float32)

    def test_nodes_are_immutable(self):
        g = Graph()
        a = g.add_node('full', (), (), tg.float32, {'value': 1.0})
        with pytest.raises(Exception):
            g[a].op = 'other'

    def test_node_default_attrs(self):
        """A node built without attrs gets an empty read-only mapping."""
        node = Node(id=0, op='full', args=(), shape=(), dtype=tg.float32)
        assert node.attrs == {}
        assert node.value is None
        with pytest.raises(TypeError):
            node.attrs['value'] = 1.0
        g = Graph()
        a = g.add_node('full', (), (), tg.float32)
        with pytest.raises(TypeError):
            g[a].attrs['value'] = 2.0

    def test_constant_value_is_read_only(self, graph):
        data = np.arange(3.0)
        c = constant(data)
        data[0] = 10.0
        assert c.node.value[0] == 0.0
        with pytest.raises(ValueError):
            c.node.value[0] = 5.0

    def test_topological_order_shared_operand(self, graph):
        """A node with several consumers appears once, before all of them."""
        x = parameter(0, (3,), 'float32')
        y = tg.exp(x)
        z = y * y + tg.sin(y)
        order = graph.topological_order([z.id])
        assert order.count(y.id) == 1
        assert order.count(x.id) == 1
        position = {node_id: i for i, node_id in enumerate(order)}
        for node_id in order:
            for arg in graph[node_id].args:
                assert position[arg] < position[node_id]
        assert order[-1] == z.id

    def test_topological_order_deep_graph(self, graph):
        """Long chains do not hit the recursion limit."""
        x = parameter(0, (), 'float32')
        y = x
        for _ in range(5000):
            y = y + 1.0
        assert len(graph.topological_order([y.id])) == len(graph)

    def test_consumers(self, graph):
        x = parameter(0, (2,), 'float32')
        y = x * x
        order = graph.topological_order([y.id])
        assert graph.consumers(order)[x.id] == [y.id, y.id]

    def test_summary(self, graph):
        x = parameter(0, (2,), 'float32')
        y = tg.exp(x)
        z = y * y
        stats = graph.summary([z.id])
        assert stats['nodes'] == 3
        assert stats['edges'] == 3
        assert stats['max_fan_in'] == 2
        assert stats['max_fan_out'] == 2
        assert stats['operations'] == {'parameter': 1, 'exp': 1, 'multiply': 1}

    def test_format(self, graph):
        x = parameter(0, (2,), 'float32')
        y = tg.exp(x)
        text = graph.format([y.id])
        assert 'parameter' in text
        assert 'exp(#0)' in text


class TestTracing:
    """Tests for the graph builder."""

    def test_operations_need_a_trace(self):
        with pytest.raises(tg.TracingError):
            tg.zeros((2,))

    def test_identical_calls_are_not_merged(self, graph):
        x = parameter(0, (2,), 'float32')
        a = tg.exp(x)
        b = tg.exp(x)
        assert a.id != b.id
        assert len(graph) == 3

    def test_graph_scope_nesting(self):
        with graph_scope() as outer:
            assert active_graph() is outer
            with graph_scope() as inner:
                assert active_graph() is inner
            assert active_graph() is outer
        assert active_graph() is None

    def test_mixing_graphs_fails(self):
        with graph_scope():
            a = parameter(0, (), 'float32')
        with graph_scope():
            b = parameter(0, (), 'float32')
            with pytest.raises(tg.TracingError):
                a + b

    def test_truth_value_fails(self, graph):
        x = parameter(0, (), 'float32')
        with pytest.raises(tg.TracingError):
            if x > 0:
                pass

    def test_unknown_operation(self, graph):
        x = parameter(0, (), 'float32')
        with pytest.raises(tg.UnknownOperation):
            apply('no_such_op', x)

    def test_register_op_twice(self):
        with pytest.raises(ValueError):
            register_op('add', get_op('add').shape_rule)

    def test_trace(self):
        """Composite arguments become one parameter per leaf, in flat order."""
        def f(params, x):
            return {'out': params['w'] * x + params['b']}

        t = tg.trace(f, {'w': np.ones(3), 'b': 0.5}, np.zeros(3, dtype=np.float32))
        assert [p.node.attrs['position'] for p in t.parameters] == [0, 1, 2]
        # dict leaves are ordered by key: b, w
        assert t.parameters[0].shape == ()
        assert t.parameters[1].shape == (3,)
        assert t.parameters[1].dtype is tg.float64
        assert t.parameters[2].dtype is tg.float32
        assert set(t.result) == {'out'}
        assert t.result['out'].shape == (3,)

    def test_trace_literal_output(self):
        t = tg.trace(lambda x: (x, 2.0), tg.TensorSpec((2,), 'float32'))
        assert t.outputs[1].op == 'constant'

    def test_traces_are_private_per_thread(self):
        """Concurrent traces on different threads never see each other's graph."""
        results = {}

        def work(name, size):
            t = tg.trace(lambda x: tg.sum(tg.exp(x)), np.zeros(size))
            results[name] = (len(t.graph), active_graph())

        threads = [threading.Thread(target=work, args=(i, i + 1)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert all(nodes == 3 and active is None for nodes, active in results.values())


class TestShapeRules:
    """Tests for shape inference of traced operations."""

    def test_broadcasting(self, graph):
        a = parameter(0, (3, 1), 'float32')
        b = parameter(1, (4,), 'float32')
        assert (a + b).shape == (3, 4)

    def test_broadcast_mismatch(self, graph):
        a = parameter(0, (3,), 'float32')
        b = parameter(1, (4,), 'float32')
        with pytest.raises(tg.ShapeMismatch):
            a * b

    def test_sum(self, graph):
        x = parameter(0, (2, 3, 4), 'float32')
        assert tg.sum(x).shape == ()
        assert tg.sum(x, axes=1).shape == (2, 4)
        assert tg.sum(x, axes=(0, -1), keep_axes=True).shape == (1, 3, 1)
        with pytest.raises(tg.ShapeMismatch):
            tg.sum(x, axes=3)

    def test_mean_is_floating(self, graph):
        x = parameter(0, (2, 3), 'int32')
        m = tg.mean(x, axes=0)
        assert m.shape == (3,)
        assert m.dtype is tg.config.default_float_type()

    def test_reshape(self, graph):
        x = parameter(0, (2, 3), 'float32')
        assert tg.reshape(x, (3, -1)).shape == (3, 2)
        assert x.reshape(6).shape == (6,)
        with pytest.raises(tg.ShapeMismatch):
            tg.reshape(x, (4,))

    def test_transpose(self, graph):
        x = parameter(0, (2, 3, 4), 'float32')
        assert tg.transpose(x).shape == (4, 3, 2)
        assert tg.transpose(x, (1, 0, 2)).shape == (3, 2, 4)
        with pytest.raises(tg.ShapeMismatch):
            tg.transpose(x, (0, 0, 1))

    def test_broadcast_to(self, graph):
        x = parameter(0, (3, 1), 'float32')
        assert tg.broadcast_to(x, (2, 3, 5)).shape == (2, 3, 5)
        with pytest.raises(tg.ShapeMismatch):
            tg.broadcast_to(x, (4, 5))

    def test_dot(self, graph):
        m = parameter(0, (2, 3), 'float32')
        n = parameter(1, (3, 4), 'float32')
        v = parameter(2, (3,), 'float32')
        assert (m @ n).shape == (2, 4)
        assert tg.dot(m, v).shape == (2,)
        assert tg.dot(v, n).shape == (4,)
        assert tg.dot(v, v).shape == ()
        with pytest.raises(tg.ShapeMismatch):
            tg.dot(n, m)

    def test_select(self, graph):
        x = parameter(0, (3,), 'float32')
        y = tg.select(x > 0, x, 0)
        assert y.shape == (3,)
        assert y.dtype is tg.float32

    def test_as_type(self, graph):
        x = parameter(0, (3,), 'float32')
        assert x.astype('int32').dtype is tg.int32
        assert tg.as_type(x, tg.float32) is x
