import dataclasses

import numpy as np
import pytest

import plonkml
from plonkml import RunArgs
from plonkml.compiler import compile_circuit
from plonkml.graph import Graph, OpKind, normalize
from plonkml.quantize import quantize
from plonkml.witness import generate_witness, mock_prove

# output = ReLU(Wx + b)
W = np.array([[0.5, -1.0], [0.25, 0.75]])
B = np.array([0.1, -0.2])
X = np.array([1.5, -2.0])


def relu_affine_graph(w=W, b=B) -> Graph:
    graph = Graph()
    x = graph.input((2,), name="x")
    wx = graph.add(OpKind.MATMUL, x, graph.const(w, name="W"))
    h = graph.add(OpKind.ADD, wx, graph.const(b, name="b"))
    graph.output(graph.add(OpKind.RELU, h, name="y"))
    return graph


@pytest.fixture(scope="session")
def relu_graph():
    return relu_affine_graph


@pytest.fixture(scope="session")
def run_args():
    return RunArgs(scale=8, bits=16, lookup_bits=8)


# Small fixed point format for circuits that are only mock proved
@pytest.fixture(scope="session")
def small_args():
    return RunArgs(scale=4, bits=8, lookup_bits=4)


@pytest.fixture(scope="session")
def build():
    """normalize -> quantize -> compile, without keys."""
    def build(graph, run_args):
        return compile_circuit(quantize(normalize(graph), run_args), run_args)
    return build


@pytest.fixture(scope="session")
def mock_run(build):
    """Compiles the graph, fills the witness and checks every row."""
    def mock_run(graph, inputs, run_args):
        circuit = build(graph, run_args)
        witness = generate_witness(circuit, inputs)
        mock_prove(circuit, witness)
        return circuit, witness
    return mock_run


@pytest.fixture(scope="session")
def compiled(run_args):
    return plonkml.compile(relu_affine_graph(), run_args)


@pytest.fixture(scope="session")
def proved(compiled):
    circuit, pk, vk = compiled
    return plonkml.prove(circuit, pk, [X])


@pytest.fixture
def corrupt():
    """Copy of a witness with one wire value changed."""
    def corrupt(witness, name, delta=1):
        values = dict(witness.values)
        values[name] += delta
        return dataclasses.replace(witness, values=values)
    return corrupt
