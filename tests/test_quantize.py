import numpy as np
import pytest

from plonkml import QuantizationError, RunArgs, Tensor
from plonkml.graph import Graph, OpKind, normalize
from plonkml.quantize import check_precision, quantize


def quantized(graph, run_args):
    return quantize(normalize(graph), run_args)


def test_products_are_rescaled(relu_graph):
    args = RunArgs(scale=8, bits=16)
    graph = quantized(relu_graph(), args)
    kinds = [node.kind for node in graph]
    assert kinds == [OpKind.INPUT, OpKind.CONST, OpKind.CONST, OpKind.LINEAR, OpKind.RESCALE, OpKind.RELU]
    weight, bias, linear, rescale, relu = graph[1], graph[2], graph[3], graph[4], graph[5]
    assert weight.scale == 8
    # biases join the product at twice the scale
    assert bias.scale == 16
    assert bias.qvalue.tolist() == [6554, -13107]
    assert linear.scale == 16
    assert rescale.attrs["shift"] == 8 and rescale.scale == 8
    assert relu.scale == 8
    assert graph.outputs == [5]


def test_elementwise_ops_keep_the_scale():
    graph = Graph()
    x = graph.input((2,))
    y = graph.add(OpKind.SUB, x, graph.const([0.5, 0.25]))
    graph.output(graph.add(OpKind.LEAKY_RELU, y, slope=0.2))
    out = quantized(graph, RunArgs(scale=4, bits=8))
    assert all(node.scale == 4 for node in out)
    assert out[1].qvalue.tolist() == [8, 4]
    assert out[3].attrs["slope_q"] == 3


def test_thresholds_are_pinned_to_the_input_range():
    graph = Graph()
    x = graph.input((2,))
    for threshold in (20.0, -20.0, 0.5):
        graph.output(graph.add(OpKind.GREATER_THAN, x, threshold=threshold))
    out = quantized(graph, RunArgs(scale=4, bits=8))
    assert [out[i].attrs["threshold_q"] for i in (1, 2, 3)] == [127, -129, 8]


def test_division_by_an_integer_stays_exact():
    graph = Graph()
    x = graph.input((2,))
    graph.output(graph.add(OpKind.DIV, x, divisor=4.0))
    out = quantized(graph, RunArgs(scale=4, bits=8))
    assert out[1].kind is OpKind.DIV
    assert out[1].attrs["divisor"] == 4


def test_division_by_a_fraction_becomes_multiplication():
    graph = Graph()
    x = graph.input((2,))
    graph.output(graph.add(OpKind.DIV, x, divisor=0.5))
    out = quantized(graph, RunArgs(scale=4, bits=8))
    assert [node.kind for node in out] == [OpKind.INPUT, OpKind.CONST, OpKind.MUL, OpKind.RESCALE]
    assert out[1].qvalue.tolist() == 32
    assert out.outputs == [3]


def test_division_by_zero():
    graph = Graph()
    x = graph.input((2,))
    graph.output(graph.add(OpKind.DIV, x, divisor=0))
    with pytest.raises(QuantizationError):
        quantized(graph, RunArgs(scale=4, bits=8))


def test_precision_loss_beyond_tolerance():
    graph = Graph()
    x = graph.input((2,))
    graph.output(graph.add(OpKind.ADD, x, graph.const([0.01, 0.02], name="offset")))
    with pytest.raises(QuantizationError) as e:
        quantized(graph, RunArgs(scale=2, bits=8))
    assert e.value.tensor == "offset"
    # fine at a higher scale
    quantized(graph, RunArgs(scale=8, bits=16))


def test_constants_outside_the_bit_width():
    graph = Graph()
    x = graph.input((2,))
    graph.output(graph.add(OpKind.MUL, x, graph.const([100.0, 1.0])))
    with pytest.raises(QuantizationError):
        quantized(graph, RunArgs(scale=4, bits=8))


def test_check_precision_warns_before_failing(caplog):
    value = np.array([1.0, 0.3])
    tensor = Tensor.quantize(value, scale=1, bits=8)
    # 0.3 -> 0.5, a relative error of 0.2
    with caplog.at_level("WARNING"):
        error = check_precision(value, tensor, tolerance=0.3, name="w")
    assert error == pytest.approx(0.2)
    assert "loses" in caplog.text
    with pytest.raises(QuantizationError):
        check_precision(value, tensor, tolerance=0.1)
    assert check_precision(np.zeros(2), Tensor([0, 0], 1), 0.0) == 0.0


def test_table_ops_need_the_base_scale():
    graph = Graph()
    x = graph.input((2,))
    shifted = graph.add(OpKind.RESCALE, x, shift=1)
    graph.output(graph.add(OpKind.TANH, shifted))
    with pytest.raises(QuantizationError):
        quantized(graph, RunArgs(scale=4, bits=8))
