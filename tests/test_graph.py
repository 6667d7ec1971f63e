import numpy as np
import pytest

from plonkml import GraphError
from plonkml.graph import Graph, Node, OpKind, normalize
from plonkml.graph.normalize import fold_constants, infer_shapes, sort_topologically, validate


def kinds(graph):
    return [node.kind for node in graph]


def test_constants_are_folded():
    graph = Graph()
    x = graph.input((2,))
    s = graph.add(OpKind.ADD, graph.const([1.0, 2.0]), graph.const([2.0, 2.0]))
    graph.output(graph.add(OpKind.MUL, x, s))
    out = normalize(graph)
    assert kinds(out) == [OpKind.INPUT, OpKind.CONST, OpKind.MUL]
    assert out[1].value.tolist() == [3.0, 4.0]
    assert out.outputs == [2]


def test_matmul_chain_is_fused():
    rng = np.random.default_rng(1)
    w1 = rng.normal(size=(2, 3))
    w2 = rng.normal(size=(3, 2))
    graph = Graph()
    x = graph.input((2,))
    h = graph.add(OpKind.MATMUL, x, graph.const(w1))
    graph.output(graph.add(OpKind.MATMUL, h, graph.const(w2)))
    out = normalize(graph)
    assert kinds(out) == [OpKind.INPUT, OpKind.CONST, OpKind.MATMUL]
    assert np.allclose(out[1].value, w1 @ w2)
    x_value = np.array([0.5, -1.25])
    assert np.allclose(out.evaluate([x_value])[0], graph.evaluate([x_value])[0])


def test_bias_add_becomes_linear():
    graph = Graph()
    x = graph.input((2,))
    h = graph.add(OpKind.MATMUL, x, graph.const(np.eye(2)))
    graph.output(graph.add(OpKind.ADD, graph.const([1.0, -1.0]), h))
    out = normalize(graph)
    linear = [node for node in out if node.kind is OpKind.LINEAR]
    assert len(linear) == 1
    assert out.outputs == [linear[0].idx]
    assert out.evaluate([np.array([2.0, 3.0])])[0].tolist() == [3.0, 2.0]


def test_shared_producers_are_not_fused():
    graph = Graph()
    x = graph.input((2,))
    h = graph.add(OpKind.MATMUL, x, graph.const(np.eye(2)))
    graph.output(graph.add(OpKind.MATMUL, h, graph.const(np.eye(2))))
    graph.output(h)
    out = normalize(graph)
    assert kinds(out).count(OpKind.MATMUL) == 2


def test_dead_nodes_are_dropped():
    graph = Graph()
    x = graph.input((2,))
    graph.add(OpKind.RELU, x)
    graph.output(graph.add(OpKind.NEG, x))
    assert kinds(normalize(graph)) == [OpKind.INPUT, OpKind.NEG]


def test_nodes_are_sorted_topologically():
    graph = Graph(
        nodes=[
            Node(idx=0, kind=OpKind.RELU, inputs=(1,)),
            Node(idx=1, kind=OpKind.INPUT, shape=(2,)),
        ],
        inputs=[1],
        outputs=[0],
    )
    out = sort_topologically(graph)
    assert kinds(out) == [OpKind.INPUT, OpKind.RELU]
    assert out[1].inputs == (0,)
    assert out.inputs == [0] and out.outputs == [1]


def test_cycle_is_detected():
    graph = Graph()
    x = graph.input((2,))
    graph.add(OpKind.ADD, x, 2)
    graph.add(OpKind.RELU, 1)
    graph.output(2)
    with pytest.raises(GraphError) as e:
        normalize(graph)
    assert e.value.node == 1


def test_shape_mismatch_names_the_node():
    graph = Graph()
    a = graph.input((2,))
    b = graph.input((3,))
    graph.output(graph.add(OpKind.ADD, a, b))
    with pytest.raises(GraphError) as e:
        normalize(graph)
    assert e.value.node == 2


def test_declared_shape_must_agree():
    graph = Graph()
    x = graph.input((2, 3))
    graph.output(graph.add(OpKind.FLATTEN, x, shape=(5,)))
    with pytest.raises(GraphError):
        infer_shapes(graph)


@pytest.mark.parametrize("make", [
    # wrong arity
    lambda g: g.output(g.add(OpKind.ADD, g.input((2,)))),
    # input index out of range
    lambda g: g.output(g.add(OpKind.RELU, 7)),
    # missing attribute
    lambda g: g.output(g.add(OpKind.RESHAPE, g.input((2,)))),
    # non-constant linear weight
    lambda g: g.output(g.add(OpKind.LINEAR, g.input((2,)), g.input((2, 2)), g.const([0.0, 0.0]))),
    # no outputs
    lambda g: g.input((2,)),
])
def test_invalid_graphs(make):
    graph = Graph()
    make(graph)
    with pytest.raises(GraphError):
        validate(graph)


def test_shapes_are_inferred():
    graph = Graph()
    x = graph.input((1, 4, 4))
    k = graph.const(np.ones((2, 1, 3, 3)))
    c = graph.add(OpKind.CONV2D, x, k, padding=1, stride=2)
    f = graph.add(OpKind.FLATTEN, c)
    r = graph.add(OpKind.RESHAPE, f, target=(2, -1))
    s = graph.add(OpKind.SUM, r)
    graph.output(s)
    out = infer_shapes(graph)
    assert out[c].shape == (2, 2, 2)
    assert out[f].shape == (8,)
    assert out[r].shape == (2, 4)
    assert out[s].shape == (1,)


def test_dict_round_trip():
    graph = Graph()
    x = graph.input((2,), name="x")
    y = graph.add(OpKind.LEAKY_RELU, x, slope=0.1)
    graph.output(graph.add(OpKind.GREATER_THAN, y, threshold=0.5))
    again = Graph.from_dict(graph.to_dict())
    assert again.to_dict() == graph.to_dict()
    assert again[1].attrs == {"slope": 0.1}
    with pytest.raises(GraphError):
        Graph.from_dict({"nodes": [{"kind": "softmax"}], "inputs": [], "outputs": [0]})


def test_float_evaluation():
    graph = Graph()
    x = graph.input((3,))
    graph.output(graph.add(OpKind.MAX, graph.add(OpKind.TANH, x)))
    (out,) = graph.evaluate([np.array([-1.0, 0.5, 0.25])])
    assert np.allclose(out, [np.tanh(0.5)])


def test_fold_keeps_inputs():
    graph = Graph()
    graph.output(graph.input((1,)))
    assert kinds(fold_constants(graph)) == [OpKind.INPUT]
