"""
Lowering of quantized graph nodes onto rows.

Every rule maps (region, node, input reference arrays) to the reference
array of the node's output, laid out in the node's shape.
"""

import logging
from typing import Optional

import numpy as np

from ..errors import UnsatisfiedConstraintError
from ..graph.model import Graph, Node
from ..graph.ops import TABLE_OPS, OpKind, conv2d_windows
from . import gadgets as g
from .region import Region

logger = logging.getLogger(__name__)


def ref_array(items, shape) -> np.ndarray:
    items = list(items)
    out = np.empty(len(items), dtype=object)
    out[:] = items
    return out.reshape(shape)


def elementwise(fn, *arrays) -> np.ndarray:
    arrays = np.broadcast_arrays(*arrays)
    flat = [a.reshape(-1) for a in arrays]
    return ref_array((fn(*items) for items in zip(*flat)), arrays[0].shape)


def _lower_input(region: Region, node: Node, args):
    size = int(np.prod(node.shape, dtype=np.int64))
    values = region.inputs.get(node.idx)
    flat = values.reshape(-1) if values is not None else [None] * size
    refs = []
    for v in flat:
        ref = region.new_var(lambda: v)
        g.signed_range_check(region, ref, region.run_args.bits)
        refs.append(ref)
    return ref_array(refs, node.shape)


def _lower_const(region: Region, node: Node, args):
    return ref_array((int(v) for v in node.qvalue.reshape(-1)), node.qvalue.shape)


def _lower_matmul(region: Region, node: Node, args, bias=None):
    x, w = args[0], args[1]
    rows = np.atleast_2d(x)
    if bias is not None:
        bias = np.broadcast_to(bias, (rows.shape[0], w.shape[1]))
    out = [
        g.dot(region, row, w[:, p], 0 if bias is None else bias[i, p])
        for i, row in enumerate(rows)
        for p in range(w.shape[1])
    ]
    return ref_array(out, node.shape)


def _lower_conv2d(region: Region, node: Node, args):
    x, kernel = args[0], args[1]
    bias = args[2].reshape(-1) if len(args) > 2 else None
    out_channels, _, kh, kw = kernel.shape
    out = np.empty(node.shape, dtype=object)
    for i, j, window in conv2d_windows(x, kh, kw, node.attrs.get("stride", 1), node.attrs.get("padding", 0)):
        flat = window.reshape(-1)
        for o in range(out_channels):
            b = 0 if bias is None else bias[o if bias.size > 1 else 0]
            out[o, i, j] = g.dot(region, flat, kernel[o].reshape(-1), b)
    return out


def _lower_table(kind):
    def lower(region, node, args):
        return elementwise(lambda x: g.table_op(region, x, kind), args[0])
    return lower


LOWERING = {
    OpKind.INPUT: _lower_input,
    OpKind.CONST: _lower_const,
    OpKind.ADD: lambda region, node, args: elementwise(
        lambda a, b: g.lincomb(region, [(1, a), (1, b)]), args[0], args[1]),
    OpKind.SUB: lambda region, node, args: elementwise(
        lambda a, b: g.lincomb(region, [(1, a), (-1, b)]), args[0], args[1]),
    OpKind.MUL: lambda region, node, args: elementwise(
        lambda a, b: g.mul(region, a, b), args[0], args[1]),
    OpKind.NEG: lambda region, node, args: elementwise(
        lambda a: g.lincomb(region, [(-1, a)]), args[0]),
    OpKind.SUM: lambda region, node, args: ref_array(
        [g.lincomb(region, [(1, a) for a in args[0].reshape(-1)])], (1,)),
    OpKind.MAX: lambda region, node, args: ref_array(
        [g.max_reduce(region, args[0].reshape(-1))], (1,)),
    OpKind.MATMUL: _lower_matmul,
    OpKind.LINEAR: lambda region, node, args: _lower_matmul(region, node, args, bias=args[2]),
    OpKind.CONV2D: _lower_conv2d,
    OpKind.RESHAPE: lambda region, node, args: args[0].reshape(node.shape),
    OpKind.FLATTEN: lambda region, node, args: args[0].reshape(-1),
    OpKind.BROADCAST: lambda region, node, args: np.broadcast_to(args[0], node.shape).copy(),
    OpKind.RESCALE: lambda region, node, args: elementwise(
        lambda x: g.rescale(region, x, int(node.attrs["shift"])), args[0]),
    OpKind.RELU: lambda region, node, args: elementwise(lambda x: g.relu(region, x), args[0]),
    OpKind.LEAKY_RELU: lambda region, node, args: elementwise(
        lambda x: g.leaky_relu(region, x, int(node.attrs["slope_q"])), args[0]),
    OpKind.GREATER_THAN: lambda region, node, args: elementwise(
        lambda x: g.greater_than(region, x, int(node.attrs["threshold_q"])), args[0]),
    OpKind.DIV: lambda region, node, args: elementwise(
        lambda x: g.int_div(region, x, int(node.attrs["divisor"])), args[0]),
}
for _op, _kind in TABLE_OPS.items():
    LOWERING[_op] = _lower_table(_kind)

assert set(LOWERING) == set(OpKind), set(OpKind) - set(LOWERING)


def lower_graph(graph: Graph, region: Region, expected: Optional[dict] = None) -> dict[str, list]:
    """Lays out every node, then the public rows. Returns the flat cell
    references of the graph inputs and outputs.

    With ``expected`` (node index -> quantized values) every node's wires
    are compared against the reference semantics as they are filled in.
    """
    refs: dict[int, np.ndarray] = {}
    for node in graph:
        region.node = node.idx
        before = len(region.rows)
        refs[node.idx] = LOWERING[node.kind](region, node, [refs[j] for j in node.inputs])
        if expected is not None:
            got = [region.value(r) for r in refs[node.idx].reshape(-1)]
            want = [int(v) for v in np.asarray(expected[node.idx]).reshape(-1)]
            if got != want:
                raise UnsatisfiedConstraintError(
                    "node {} ({}) computes {} in the circuit but {} in the reference".format(
                        node.idx, node.kind.value, got, want),
                    row=before,
                )
        logger.debug("Lowered node %d (%s) into %d rows", node.idx, node.kind.value,
                     len(region.rows) - before)
    region.node = None

    cells = {
        "inputs": [list(refs[i].reshape(-1)) for i in graph.inputs],
        "outputs": [list(refs[i].reshape(-1)) for i in graph.outputs],
    }
    run_args = region.run_args
    if run_args.input_visibility == "public":
        cells["inputs"] = [[region.make_public(r) for r in flat] for flat in cells["inputs"]]
    if run_args.output_visibility == "public":
        cells["outputs"] = [[region.make_public(r) for r in flat] for flat in cells["outputs"]]
    cells["inputs"] = [[_plain(r) for r in flat] for flat in cells["inputs"]]
    cells["outputs"] = [[_plain(r) for r in flat] for flat in cells["outputs"]]
    return cells


def _plain(ref):
    return ref if isinstance(ref, str) else int(ref)
