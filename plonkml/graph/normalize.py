"""
Graph normalization: validation, ordering, shape inference, constant
folding, operator fusion and dead node elimination.

Every pass returns a new graph; the input graph is never modified.
"""

import logging

import numpy as np

from ..errors import GraphError
from .model import Graph, Node
from .ops import ARITY, BIAS_OPS, FLOAT_FORWARD, SHAPE_RULES, OpKind

logger = logging.getLogger(__name__)


def normalize(graph: Graph) -> Graph:
    validate(graph)
    graph = sort_topologically(graph)
    graph = infer_shapes(graph)
    graph = fold_constants(graph)
    graph = fuse_operators(graph)
    graph = eliminate_dead_nodes(graph)
    logger.info("Normalized graph to %d nodes", len(graph))
    return graph


def validate(graph: Graph):
    count = len(graph)
    for i, node in enumerate(graph):
        if node.idx != i:
            raise GraphError("node stored at position {} claims index {}".format(i, node.idx), node=i)
        if not isinstance(node.kind, OpKind):
            raise GraphError("unknown op kind {!r}".format(node.kind), node=i)
        low, high = ARITY[node.kind]
        if not low <= len(node.inputs) <= high:
            raise GraphError("{} takes {} inputs, got {}".format(
                node.kind.value, low if low == high else "{}-{}".format(low, high),
                len(node.inputs)), node=i)
        for j in node.inputs:
            if not 0 <= j < count:
                raise GraphError("input index {} out of range".format(j), node=i)
        if node.kind is OpKind.CONST and node.value is None:
            raise GraphError("constant without a value", node=i)
        if node.kind is OpKind.INPUT and node.shape is None:
            raise GraphError("input without a shape", node=i)
        if node.kind in BIAS_OPS and len(node.inputs) == 3:
            if graph[node.inputs[-1]].kind is not OpKind.CONST:
                raise GraphError("{} bias must be a constant".format(node.kind.value), node=i)
        if node.kind is OpKind.LINEAR and graph[node.inputs[1]].kind is not OpKind.CONST:
            raise GraphError("linear weight must be a constant", node=i)
        for attr in _REQUIRED_ATTRS.get(node.kind, ()):
            if attr not in node.attrs:
                raise GraphError("{} needs attribute {!r}".format(node.kind.value, attr), node=i)
    for i in graph.inputs:
        if not 0 <= i < count or graph[i].kind is not OpKind.INPUT:
            raise GraphError("graph input {} is not an input node".format(i))
    if sorted(set(graph.inputs)) != sorted(graph.inputs):
        raise GraphError("graph inputs listed twice")
    for node in graph:
        if node.kind is OpKind.INPUT and node.idx not in graph.inputs:
            raise GraphError("input node missing from the graph inputs", node=node.idx)
    if not graph.outputs:
        raise GraphError("graph has no outputs")
    for i in graph.outputs:
        if not 0 <= i < count:
            raise GraphError("graph output {} out of range".format(i))


_REQUIRED_ATTRS = {
    OpKind.RESHAPE: ("target",),
    OpKind.BROADCAST: ("target",),
    OpKind.RESCALE: ("shift",),
    OpKind.GREATER_THAN: ("threshold",),
    OpKind.DIV: ("divisor",),
}


# Rebuilds the graph from the given old indices, in the given order
def _reindex(graph: Graph, order: list[int]) -> Graph:
    new_idx = {old: new for new, old in enumerate(order)}
    nodes = [
        graph[old].replace(idx=new_idx[old], inputs=tuple(new_idx[j] for j in graph[old].inputs))
        for old in order
    ]
    return Graph(nodes, [new_idx[i] for i in graph.inputs], [new_idx[i] for i in graph.outputs])


def sort_topologically(graph: Graph) -> Graph:
    return _reindex(graph, graph.topological_order())


def infer_shapes(graph: Graph) -> Graph:
    nodes = []
    for node in graph:
        shapes = [nodes[j].shape for j in node.inputs]
        try:
            shape = SHAPE_RULES[node.kind](node, shapes)
        except (ValueError, KeyError, TypeError) as e:
            raise GraphError(str(e), node=node.idx) from e
        if node.shape is not None and tuple(node.shape) != shape:
            raise GraphError("declared shape {} disagrees with inferred {}".format(
                tuple(node.shape), shape), node=node.idx)
        nodes.append(node.replace(shape=shape))
    return Graph(nodes, graph.inputs, graph.outputs)


def fold_constants(graph: Graph) -> Graph:
    nodes = []
    folded = 0
    for node in graph:
        if node.kind not in (OpKind.INPUT, OpKind.CONST) and all(
            nodes[j].kind is OpKind.CONST for j in node.inputs
        ):
            value = FLOAT_FORWARD[node.kind](node, [nodes[j].value for j in node.inputs])
            node = Node(idx=node.idx, kind=OpKind.CONST, shape=node.shape,
                        value=np.asarray(value, dtype=np.float64), name=node.name)
            folded += 1
        nodes.append(node)
    if folded:
        logger.debug("Folded %d constant nodes", folded)
    return Graph(nodes, graph.inputs, graph.outputs)


class _Builder:
    """Emits nodes in order while remembering where each old node went."""

    def __init__(self):
        self.nodes: list[Node] = []
        self.where: dict[int, int] = {}
        self.origin: dict[int, int] = {}

    def emit(self, node: Node, old=None) -> int:
        idx = len(self.nodes)
        self.nodes.append(node.replace(idx=idx))
        if old is not None:
            self.where[old] = idx
            self.origin[idx] = old
        return idx

    def const(self, value, name=None) -> int:
        value = np.asarray(value, dtype=np.float64)
        return self.emit(Node(idx=-1, kind=OpKind.CONST, shape=value.shape, value=value, name=name))


# An affine node computes x @ W (+ b) with constant W and b. Returns
# (x, W, b or None) for such nodes and None for anything else.
def _affine(nodes: list[Node], node: Node):
    if node.kind is OpKind.MATMUL:
        w = nodes[node.inputs[1]]
        if w.kind is OpKind.CONST:
            return node.inputs[0], w.value, None
    if node.kind is OpKind.LINEAR:
        return node.inputs[0], nodes[node.inputs[1]].value, nodes[node.inputs[2]].value
    return None


def fuse_operators(graph: Graph) -> Graph:
    """MATMUL/LINEAR chains with constant weights collapse into one
    affine node; ADD of an affine node and a constant becomes LINEAR.
    A producer is only absorbed when nothing else reads it."""
    consumers = graph.consumers()
    outputs = set(graph.outputs)
    out = _Builder()
    fused = 0

    def absorbable(new_idx: int) -> bool:
        old = out.origin.get(new_idx)
        return old is not None and old not in outputs and len(consumers[old]) == 1

    for node in graph:
        node = node.replace(inputs=tuple(out.where[j] for j in node.inputs))
        nodes = out.nodes
        replacement = None

        outer = _affine(nodes, node)
        if outer is not None and absorbable(outer[0]):
            inner = _affine(nodes, nodes[outer[0]])
            if inner is not None and np.ndim(inner[1]) == 2:
                x, w1, b1 = inner
                _, w2, b2 = outer
                bias = None
                if b1 is not None:
                    bias = np.dot(b1, w2)
                if b2 is not None:
                    bias = b2 if bias is None else bias + b2
                replacement = (x, np.dot(w1, w2), bias)

        if replacement is None and node.kind is OpKind.ADD:
            for side in (0, 1):
                producer, other = node.inputs[side], node.inputs[1 - side]
                if nodes[other].kind is not OpKind.CONST or not absorbable(producer):
                    continue
                inner = _affine(nodes, nodes[producer])
                if inner is None:
                    continue
                x, w, b = inner
                bias = nodes[other].value if b is None else b + nodes[other].value
                if np.broadcast_shapes(nodes[producer].shape, np.shape(bias)) == tuple(nodes[producer].shape):
                    replacement = (x, w, bias)
                    break

        if replacement is None:
            out.emit(node, old=node.idx)
            continue

        x, w, b = replacement
        w_idx = out.const(w)
        if b is None:
            fused_node = Node(idx=-1, kind=OpKind.MATMUL, inputs=(x, w_idx),
                              shape=node.shape, name=node.name)
        else:
            b_idx = out.const(b)
            fused_node = Node(idx=-1, kind=OpKind.LINEAR, inputs=(x, w_idx, b_idx),
                              shape=node.shape, name=node.name)
        out.emit(fused_node, old=node.idx)
        fused += 1

    if fused:
        logger.debug("Fused %d affine operators", fused)
    return Graph(out.nodes, [out.where[i] for i in graph.inputs], [out.where[i] for i in graph.outputs])


def eliminate_dead_nodes(graph: Graph) -> Graph:
    live = set()
    stack = list(graph.outputs)
    while stack:
        i = stack.pop()
        if i in live:
            continue
        live.add(i)
        stack.extend(graph[i].inputs)
    live.update(graph.inputs)
    dropped = len(graph) - len(live)
    if dropped:
        logger.debug("Dropped %d dead nodes", dropped)
    return _reindex(graph, sorted(live))
