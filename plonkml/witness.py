"""
Witness generation and mock proving.

The witness is produced in two passes over the quantized graph. The first
evaluates every node with the integer reference semantics, level by level
of the dependency graph. The second replays the circuit lowering with
values switched on, which fills every wire; each node's wires are checked
against the first pass as they are produced.
"""

import logging
from dataclasses import dataclass

import numpy as np

from .compiler.lower import lower_graph
from .compiler.program import Circuit
from .compiler.region import Region
from .curve import Scalar
from .errors import QuantizationError, UnsatisfiedConstraintError, WitnessError
from .graph.model import Graph
from .graph.ops import QUANT_FORWARD, OpKind
from .parallel import parallel_map
from .settings import RunArgs
from .tables import TableManager
from .tensor import Tensor

logger = logging.getLogger(__name__)


@dataclass
class Witness:
    values: dict[str, int]
    instances: list[int]
    outputs: list[Tensor]
    tensors: dict[int, np.ndarray]

    def value(self, name) -> int:
        if name is None:
            return 0
        return self.values[name]


def quantize_inputs(graph: Graph, inputs, run_args: RunArgs) -> dict[int, np.ndarray]:
    if len(inputs) != len(graph.inputs):
        raise WitnessError("expected {} inputs, got {}".format(len(graph.inputs), len(inputs)))
    o = {}
    for idx, array in zip(graph.inputs, inputs):
        node = graph[idx]
        if isinstance(array, Tensor):
            if array.scale != node.scale:
                raise WitnessError("input at scale {}, circuit expects {}".format(
                    array.scale, node.scale), node=idx)
            if not array.check_range(run_args.bits):
                raise WitnessError("input does not fit {} bits".format(run_args.bits), node=idx)
            tensor = array
        else:
            data = np.asarray(array, dtype=np.float64)
            if data.shape != tuple(node.shape):
                raise WitnessError("input of shape {}, circuit expects {}".format(
                    data.shape, tuple(node.shape)), node=idx)
            try:
                tensor = Tensor.quantize(data, node.scale, run_args.bits, name=node.label)
            except QuantizationError as e:
                raise WitnessError(str(e), node=idx) from e
        if tensor.shape != tuple(node.shape):
            raise WitnessError("input of shape {}, circuit expects {}".format(
                tensor.shape, tuple(node.shape)), node=idx)
        o[idx] = tensor.values
    return o


def forward(graph: Graph, inputs: dict[int, np.ndarray], run_args: RunArgs) -> dict[int, np.ndarray]:
    """Quantized reference values of every node. Nodes of one dependency
    level are independent and run on the worker pool."""
    tensors = dict(inputs)

    def run(idx: int) -> np.ndarray:
        node = graph[idx]
        try:
            return QUANT_FORWARD[node.kind](node, [tensors[j] for j in node.inputs], run_args)
        except ValueError as e:
            raise WitnessError(str(e), node=idx) from e

    for level in graph.levels():
        pending = [i for i in level if graph[i].kind is not OpKind.INPUT]
        for idx, result in zip(pending, parallel_map(run, pending, run_args.num_workers)):
            tensors[idx] = result
    return tensors


def generate_witness(circuit: Circuit, inputs) -> Witness:
    run_args = circuit.run_args
    graph = circuit.graph
    quantized = quantize_inputs(graph, inputs, run_args)
    tensors = forward(graph, quantized, run_args)

    values: dict[str, int] = {}
    with TableManager(run_args) as manager:
        region = Region(run_args, manager, values=values, inputs=quantized)
        lower_graph(graph, region, expected=tensors)
    if region.all_rows() != circuit.rows:
        raise UnsatisfiedConstraintError("witness layout differs from the compiled circuit")

    instances = [values[name] for name in circuit.public_assignments()]
    outputs = [Tensor(tensors[i], graph[i].scale) for i in graph.outputs]
    logger.info("Generated witness: %d wires, %d public values", len(values), len(instances))
    return Witness(values=values, instances=instances, outputs=outputs, tensors=tensors)


def mock_prove(circuit: Circuit, witness: Witness):
    """Checks every gate, copy constraint and lookup of the circuit against
    the witness, without any cryptography."""
    modulus = Scalar.field_modulus
    if len(witness.instances) != circuit.public_count:
        raise UnsatisfiedConstraintError("{} public values for {} public rows".format(
            len(witness.instances), circuit.public_count))
    for i, row in enumerate(circuit.rows):
        try:
            a, b, c = (witness.value(name) for name in row.wires.as_list())
        except KeyError as e:
            raise UnsatisfiedConstraintError("unassigned wire {}".format(e), row=i) from None
        # Copy constraints hold as long as each wire carries one value and
        # every public row carries its instance
        pi = -witness.instances[i] if i < circuit.public_count else 0
        if (row.gate.evaluate(a, b, c) + pi) % modulus != 0:
            raise UnsatisfiedConstraintError(
                "gate {} fails on ({}, {}, {})".format(row.gate, a, b, c), row=i)
        if row.table:
            table = circuit.tables[row.table - 1]
            if not table.contains(a, c):
                raise UnsatisfiedConstraintError(
                    "({}, {}) is not in the {}-bit {} table".format(a, c, table.bits, table.kind.value),
                    row=i)
    logger.debug("Mock proof passed for %d rows", len(circuit.rows))
