import numpy as np
import pytest

import plonkml
from plonkml import GraphError, RejectReason, RunArgs, Tensor
from plonkml.graph import Graph, OpKind

ARGS = RunArgs(scale=4, bits=8, lookup_bits=4, input_visibility="public", num_workers=2)


@pytest.fixture(scope="module")
def tiny():
    graph = Graph()
    x = graph.input((3,), name="x")
    graph.output(graph.add(OpKind.MAX, graph.add(OpKind.RELU, x)))
    circuit, pk, vk = plonkml.compile(graph, ARGS)
    x_value = np.array([-1.0, 0.5, 0.25])
    proof, outputs = plonkml.prove(circuit, pk, [x_value])
    return circuit, vk, proof, outputs, Tensor.quantize(x_value, 4, 8)


def test_public_inputs_are_checked(tiny):
    circuit, vk, proof, outputs, x = tiny
    assert circuit.group_order <= 128
    assert outputs[0].to_list() == [8]
    assert plonkml.verify(vk, proof, outputs, public_inputs=[x])
    assert plonkml.verify(vk, proof, [np.array([8])], public_inputs=[np.array(x.to_list())])

    other = Tensor([-16, 8, 5], 4)
    result = plonkml.verify_proof(vk, proof, outputs, public_inputs=[other])
    assert result.reason is RejectReason.COMMITMENT_MISMATCH
    # public inputs cannot be left out
    assert plonkml.verify_proof(vk, proof, outputs).reason is RejectReason.MALFORMED_PROOF


def test_instances_follow_the_layout(tiny):
    _, vk, _, outputs, x = tiny
    assert [e["role"] for e in vk.instance_layout] == ["input", "output"]
    assert vk.public_count == 4
    assert plonkml.public_instances(vk, outputs, [x]) == x.to_list() + [8]


def test_compile_reports_graph_errors():
    graph = Graph()
    graph.output(graph.add(OpKind.ADD, graph.input((2,)), graph.input((3,))))
    with pytest.raises(GraphError):
        plonkml.compile(graph, ARGS)
