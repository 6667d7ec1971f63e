"""
Fixed-point quantization of a normalized graph.

Every activation lives at ``run_args.scale`` fractional bits. Products
(MUL, MATMUL, LINEAR, CONV2D) come out at the sum of their input scales and
are followed by an explicit RESCALE back to ``scale``. Constants are
quantized at the scale of the tensor they meet; biases at the scale of the
product they are added to.
"""

import logging

import numpy as np

from .errors import QuantizationError
from .graph.model import Graph, Node
from .graph.ops import BIAS_OPS, PRODUCT_OPS, TABLE_OPS, OpKind
from .settings import RunArgs
from .tensor import Tensor, round_half_up

logger = logging.getLogger(__name__)

# Ops whose quantized rule assumes its input sits at run_args.scale
_NEEDS_BASE_SCALE = (OpKind.GREATER_THAN, OpKind.LEAKY_RELU, *TABLE_OPS)


def check_precision(value, tensor: Tensor, tolerance: float, name=None) -> float:
    """Relative error max|v - deq(q)| / max|v|; raises above tolerance."""
    value = np.asarray(value, dtype=np.float64)
    peak = float(np.max(np.abs(value))) if value.size else 0.0
    if peak == 0.0:
        return 0.0
    error = float(np.max(np.abs(value - tensor.dequantize()))) / peak
    if error > tolerance:
        raise QuantizationError(
            "relative precision loss {:.3f} at scale {} exceeds tolerance {}".format(
                error, tensor.scale, tolerance),
            tensor=name,
        )
    if error > tolerance / 2:
        logger.warning("Constant %s loses %.3f relative precision at scale %d",
                       name, error, tensor.scale)
    return error


class _Quantizer:
    def __init__(self, graph: Graph, run_args: RunArgs):
        self.graph = graph
        self.run_args = run_args
        self.nodes: list[Node] = []
        self.where: dict[int, int] = {}
        self.consts: dict[tuple, int] = {}

    def emit(self, node: Node) -> int:
        idx = len(self.nodes)
        self.nodes.append(node.replace(idx=idx))
        return idx

    def scale_of(self, idx: int) -> int:
        return self.nodes[idx].scale

    def constant(self, value, scale: int, bits: int, name=None, shape=None) -> int:
        value = np.asarray(value, dtype=np.float64)
        tensor = Tensor.quantize(value, scale, bits, name=name)
        check_precision(value, tensor, self.run_args.tolerance, name)
        return self.emit(Node(
            idx=-1, kind=OpKind.CONST, shape=value.shape if shape is None else shape,
            value=value, scale=scale, qvalue=tensor.values, name=name,
        ))

    def const_input(self, old: int, scale: int, bits: int) -> int:
        key = (old, scale, bits)
        if key not in self.consts:
            node = self.graph[old]
            self.consts[key] = self.constant(node.value, scale, bits, name=node.label, shape=node.shape)
        return self.consts[key]

    def rescale(self, idx: int, node: Node) -> int:
        shift = self.scale_of(idx) - self.run_args.scale
        if shift <= 0:
            return idx
        return self.emit(Node(
            idx=-1, kind=OpKind.RESCALE, inputs=(idx,), shape=self.nodes[idx].shape,
            attrs={"shift": shift}, scale=self.run_args.scale,
            name="{}/rescale".format(node.name) if node.name else None,
        ))

    def resolve_inputs(self, node: Node) -> list[int]:
        s, bits = self.run_args.scale, self.run_args.bits
        variables = [self.where[j] for j in node.inputs if self.graph[j].kind is not OpKind.CONST]
        # Constants meet the scale of the variable operand, or the base scale
        operand_scale = self.scale_of(variables[0]) if variables else s
        o = []
        for pos, j in enumerate(node.inputs):
            if self.graph[j].kind is not OpKind.CONST:
                o.append(self.where[j])
            elif node.kind in BIAS_OPS and pos == 2:
                o.append(None)
            elif node.kind in PRODUCT_OPS:
                o.append(self.const_input(j, s, bits))
            else:
                o.append(self.const_input(j, operand_scale, bits))
        if node.kind in BIAS_OPS and len(o) == 3:
            product_scale = self.scale_of(o[0]) + self.scale_of(o[1])
            o[2] = self.const_input(node.inputs[2], product_scale, 2 * bits)
        return o

    def quantize_node(self, node: Node) -> int:
        s = self.run_args.scale
        if node.kind is OpKind.INPUT:
            return self.emit(node.replace(inputs=(), scale=s))

        inputs = self.resolve_inputs(node)
        scales = [self.scale_of(i) for i in inputs]
        attrs = dict(node.attrs)

        if node.kind in PRODUCT_OPS:
            out_scale = scales[0] + scales[1]
            if node.kind in BIAS_OPS and len(inputs) == 3 and scales[2] != out_scale:
                raise QuantizationError("bias at scale {} added to a product at scale {}".format(
                    scales[2], out_scale), tensor=node.label)
            idx = self.emit(node.replace(inputs=tuple(inputs), scale=out_scale))
            return self.rescale(idx, node)

        if node.kind in (OpKind.ADD, OpKind.SUB) and scales[0] != scales[1]:
            raise QuantizationError("operands at scales {} and {}".format(*scales), tensor=node.label)

        if node.kind in _NEEDS_BASE_SCALE and scales[0] != s:
            raise QuantizationError("{} expects its input at scale {}, got {}".format(
                node.kind.value, s, scales[0]), tensor=node.label)

        out_scale = scales[0]
        if node.kind is OpKind.RESCALE:
            out_scale = scales[0] - int(attrs["shift"])
            if out_scale < 0:
                raise QuantizationError("rescale below scale 0", tensor=node.label)
        elif node.kind is OpKind.LEAKY_RELU:
            attrs["slope_q"] = int(round_half_up(float(attrs.get("slope", 0.01)) * (1 << s)))
        elif node.kind is OpKind.GREATER_THAN:
            # inputs lie in [min_value, max_value]; a threshold beyond that
            # range is pinned just outside it, which keeps x - t - 1 in bits + 1
            threshold_q = int(round_half_up(float(attrs["threshold"]) * (1 << s)))
            attrs["threshold_q"] = min(max(threshold_q, self.run_args.min_value - 1),
                                       self.run_args.max_value)
        elif node.kind is OpKind.DIV:
            return self.quantize_div(node, inputs[0], attrs)

        return self.emit(node.replace(inputs=tuple(inputs), attrs=attrs, scale=out_scale))

    # Division by a positive integer stays exact; anything else becomes a
    # multiplication by the quantized reciprocal.
    def quantize_div(self, node: Node, x: int, attrs: dict) -> int:
        divisor = float(attrs["divisor"])
        if divisor == 0 or not np.isfinite(divisor):
            raise QuantizationError("division by {}".format(divisor), tensor=node.label)
        if divisor >= 1 and divisor.is_integer():
            attrs["divisor"] = int(divisor)
            return self.emit(node.replace(inputs=(x,), attrs=attrs, scale=self.scale_of(x)))
        recip = self.constant(np.array(1.0 / divisor), self.run_args.scale, self.run_args.bits,
                              name="{}/reciprocal".format(node.label))
        product = self.emit(Node(
            idx=-1, kind=OpKind.MUL, inputs=(x, recip), shape=node.shape,
            scale=self.scale_of(x) + self.run_args.scale, name=node.name,
        ))
        logger.debug("Rewrote division by %s as a multiplication", divisor)
        return self.rescale(product, node)

    def run(self) -> Graph:
        for node in self.graph:
            if node.kind is OpKind.CONST:
                continue
            self.where[node.idx] = self.quantize_node(node)
        outputs = []
        for i in self.graph.outputs:
            if self.graph[i].kind is OpKind.CONST:
                outputs.append(self.const_input(i, self.run_args.scale, self.run_args.bits))
            else:
                outputs.append(self.where[i])
        return Graph(self.nodes, [self.where[i] for i in self.graph.inputs], outputs)


def quantize(graph: Graph, run_args: RunArgs) -> Graph:
    quantized = _Quantizer(graph, run_args).run()
    logger.info("Quantized graph at scale %d (%d nodes)", run_args.scale, len(quantized))
    return quantized
