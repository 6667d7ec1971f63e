"""
Operator kinds and their per-kind rules.

Each rule table below maps every ``OpKind`` to one function:

    SHAPE_RULES      (node, input shapes)             -> output shape
    FLOAT_FORWARD    (node, input arrays)             -> float ndarray
    QUANT_FORWARD    (node, input int arrays, args)   -> int (object) ndarray

Shape rules raise ValueError, forward rules raise ValueError for values a
lookup table cannot take; callers attach the node index.
"""

from enum import Enum
from math import prod

import numpy as np

from ..tables import LookupKind, lookup
from ..tensor import int_array


class OpKind(Enum):
    INPUT = "input"
    CONST = "const"
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    NEG = "neg"
    SUM = "sum"
    MATMUL = "matmul"
    LINEAR = "linear"
    CONV2D = "conv2d"
    RESHAPE = "reshape"
    FLATTEN = "flatten"
    BROADCAST = "broadcast"
    RESCALE = "rescale"
    RELU = "relu"
    LEAKY_RELU = "leaky_relu"
    MAX = "max"
    GREATER_THAN = "greater_than"
    DIV = "div"
    EXP = "exp"
    SIGMOID = "sigmoid"
    TANH = "tanh"
    SQRT = "sqrt"
    RECIP = "recip"


# Allowed (min, max) number of inputs
ARITY = {
    OpKind.INPUT: (0, 0),
    OpKind.CONST: (0, 0),
    OpKind.ADD: (2, 2),
    OpKind.SUB: (2, 2),
    OpKind.MUL: (2, 2),
    OpKind.MATMUL: (2, 2),
    OpKind.LINEAR: (3, 3),
    OpKind.CONV2D: (2, 3),
}
for _kind in OpKind:
    ARITY.setdefault(_kind, (1, 1))

# Element-wise non-linearities proven by a function table
TABLE_OPS = {
    OpKind.EXP: LookupKind.EXP,
    OpKind.SIGMOID: LookupKind.SIGMOID,
    OpKind.TANH: LookupKind.TANH,
    OpKind.SQRT: LookupKind.SQRT,
    OpKind.RECIP: LookupKind.RECIP,
}

# Ops whose output carries twice the scale of their inputs
PRODUCT_OPS = (OpKind.MUL, OpKind.MATMUL, OpKind.LINEAR, OpKind.CONV2D)

# Ops taking a bias as their third input
BIAS_OPS = (OpKind.LINEAR, OpKind.CONV2D)

_ELEMENTWISE = (
    OpKind.NEG, OpKind.RESCALE, OpKind.RELU, OpKind.LEAKY_RELU,
    OpKind.GREATER_THAN, OpKind.DIV, *TABLE_OPS,
)


def pair(v) -> tuple[int, int]:
    if isinstance(v, (list, tuple)):
        if len(v) != 2:
            raise ValueError("expected a pair, got {}".format(v))
        return int(v[0]), int(v[1])
    return int(v), int(v)


# Shape rules

def _declared_shape(node, shapes):
    if node.shape is None:
        raise ValueError("input without a declared shape")
    return tuple(node.shape)


def _const_shape(node, shapes):
    return tuple(np.shape(node.value))


def _broadcast_shape(node, shapes):
    try:
        return tuple(np.broadcast_shapes(*shapes))
    except ValueError:
        raise ValueError("cannot broadcast shapes {}".format(
            " and ".join(str(s) for s in shapes))) from None


def _same_shape(node, shapes):
    return tuple(shapes[0])


def _reduced_shape(node, shapes):
    return (1,)


def _matmul_shape(node, shapes):
    a, w = shapes[0], shapes[1]
    if len(w) != 2 or len(a) not in (1, 2):
        raise ValueError("matmul needs a 1-D or 2-D input and a 2-D weight, got {} and {}".format(a, w))
    if a[-1] != w[0]:
        raise ValueError("matmul inner dimensions differ: {} and {}".format(a, w))
    return tuple(a[:-1]) + (w[1],)


def _linear_shape(node, shapes):
    out = _matmul_shape(node, shapes)
    if tuple(np.broadcast_shapes(out, shapes[2])) != out:
        raise ValueError("bias {} does not broadcast to {}".format(shapes[2], out))
    return out


def conv2d_output_shape(x, k, stride, padding) -> tuple:
    if len(x) != 3 or len(k) != 4:
        raise ValueError("conv2d needs a (C, H, W) input and an (O, C, kH, kW) kernel")
    if x[0] != k[1]:
        raise ValueError("conv2d channel mismatch: {} and {}".format(x, k))
    (sh, sw), (ph, pw) = stride, padding
    if sh < 1 or sw < 1 or ph < 0 or pw < 0:
        raise ValueError("bad conv2d stride {} or padding {}".format(stride, padding))
    h = (x[1] + 2 * ph - k[2]) // sh + 1
    w = (x[2] + 2 * pw - k[3]) // sw + 1
    if h < 1 or w < 1:
        raise ValueError("conv2d kernel {} larger than padded input {}".format(k, x))
    return (k[0], h, w)


def _conv2d_shape(node, shapes):
    out = conv2d_output_shape(
        shapes[0], shapes[1],
        pair(node.attrs.get("stride", 1)), pair(node.attrs.get("padding", 0)),
    )
    if len(shapes) == 3 and tuple(shapes[2]) not in ((out[0],), (1,)):
        raise ValueError("conv2d bias must have shape ({},)".format(out[0]))
    return out


def _reshape_shape(node, shapes):
    target = [int(d) for d in node.attrs["target"]]
    size = prod(shapes[0])
    if target.count(-1) > 1:
        raise ValueError("reshape allows at most one -1")
    if -1 in target:
        known = prod(d for d in target if d != -1)
        if known == 0 or size % known:
            raise ValueError("cannot reshape {} into {}".format(shapes[0], target))
        target[target.index(-1)] = size // known
    if prod(target) != size:
        raise ValueError("cannot reshape {} into {}".format(shapes[0], target))
    return tuple(target)


def _flatten_shape(node, shapes):
    return (prod(shapes[0]),)


def _broadcast_to_shape(node, shapes):
    target = tuple(int(d) for d in node.attrs["target"])
    try:
        if tuple(np.broadcast_shapes(shapes[0], target)) != target:
            raise ValueError
    except ValueError:
        raise ValueError("cannot broadcast {} to {}".format(shapes[0], target)) from None
    return target


SHAPE_RULES = {
    OpKind.INPUT: _declared_shape,
    OpKind.CONST: _const_shape,
    OpKind.ADD: _broadcast_shape,
    OpKind.SUB: _broadcast_shape,
    OpKind.MUL: _broadcast_shape,
    OpKind.SUM: _reduced_shape,
    OpKind.MAX: _reduced_shape,
    OpKind.MATMUL: _matmul_shape,
    OpKind.LINEAR: _linear_shape,
    OpKind.CONV2D: _conv2d_shape,
    OpKind.RESHAPE: _reshape_shape,
    OpKind.FLATTEN: _flatten_shape,
    OpKind.BROADCAST: _broadcast_to_shape,
}
for _kind in _ELEMENTWISE:
    SHAPE_RULES[_kind] = _same_shape


# Windows of a (C, H, W) array for each output position of a convolution.
# Works on float arrays and on object arrays of ints or wire names alike;
# padding cells hold the integer 0.
def conv2d_windows(x: np.ndarray, kh: int, kw: int, stride, padding):
    (sh, sw), (ph, pw) = pair(stride), pair(padding)
    padded = np.pad(x, ((0, 0), (ph, ph), (pw, pw)), constant_values=0)
    out_h = (padded.shape[1] - kh) // sh + 1
    out_w = (padded.shape[2] - kw) // sw + 1
    for i in range(out_h):
        for j in range(out_w):
            yield i, j, padded[:, i * sh:i * sh + kh, j * sw:j * sw + kw]


def conv2d(x, kernel, bias, stride, padding) -> np.ndarray:
    out_channels, _, kh, kw = kernel.shape
    out = np.empty(conv2d_output_shape(x.shape, kernel.shape, pair(stride), pair(padding)),
                   dtype=np.result_type(x, kernel))
    for i, j, window in conv2d_windows(x, kh, kw, stride, padding):
        for o in range(out_channels):
            acc = (window * kernel[o]).sum()
            if bias is not None:
                acc = acc + bias.reshape(-1)[o if bias.size > 1 else 0]
            out[o, i, j] = acc
    return out


# Float reference semantics

def _no_forward(node, args):
    raise ValueError("{} nodes take their value from the caller".format(node.kind.value))


def _float_apply(fn):
    def forward(node, args):
        with np.errstate(all="ignore"):
            return fn(np.asarray(args[0], dtype=np.float64))
    return forward


def _float_leaky_relu(node, args):
    slope = float(node.attrs.get("slope", 0.01))
    return np.where(args[0] >= 0, args[0], slope * args[0])


def _float_sqrt(x):
    return np.sqrt(np.maximum(x, 0.0))


FLOAT_FORWARD = {
    OpKind.INPUT: _no_forward,
    OpKind.CONST: lambda node, args: np.asarray(node.value, dtype=np.float64),
    OpKind.ADD: lambda node, args: args[0] + args[1],
    OpKind.SUB: lambda node, args: args[0] - args[1],
    OpKind.MUL: lambda node, args: args[0] * args[1],
    OpKind.NEG: lambda node, args: -args[0],
    OpKind.SUM: lambda node, args: np.array([np.sum(args[0])]),
    OpKind.MAX: lambda node, args: np.array([np.max(args[0])]),
    OpKind.MATMUL: lambda node, args: np.dot(args[0], args[1]),
    OpKind.LINEAR: lambda node, args: np.dot(args[0], args[1]) + args[2],
    OpKind.CONV2D: lambda node, args: conv2d(
        args[0], args[1], args[2] if len(args) > 2 else None,
        node.attrs.get("stride", 1), node.attrs.get("padding", 0)),
    OpKind.RESHAPE: lambda node, args: np.reshape(args[0], [int(d) for d in node.attrs["target"]]),
    OpKind.FLATTEN: lambda node, args: np.reshape(args[0], -1),
    OpKind.BROADCAST: lambda node, args: np.broadcast_to(
        args[0], tuple(int(d) for d in node.attrs["target"])).copy(),
    OpKind.RESCALE: lambda node, args: args[0],
    OpKind.RELU: lambda node, args: np.maximum(args[0], 0),
    OpKind.LEAKY_RELU: _float_leaky_relu,
    OpKind.GREATER_THAN: lambda node, args: (args[0] > float(node.attrs["threshold"])).astype(np.float64),
    OpKind.DIV: lambda node, args: args[0] / float(node.attrs["divisor"]),
    OpKind.EXP: _float_apply(np.exp),
    OpKind.SIGMOID: _float_apply(lambda x: 1.0 / (1.0 + np.exp(-x))),
    OpKind.TANH: _float_apply(np.tanh),
    OpKind.SQRT: _float_apply(_float_sqrt),
    OpKind.RECIP: _float_apply(lambda x: 1.0 / x),
}


# Quantized reference semantics. Values are exact ints; every rule here is
# the value the corresponding circuit gadget forces.

def map_ints(fn, arr: np.ndarray) -> np.ndarray:
    return int_array([fn(int(v)) for v in np.asarray(arr).reshape(-1)], np.shape(arr))


def rescale_int(v: int, shift: int) -> int:
    if shift == 0:
        return v
    return (v + (1 << (shift - 1))) >> shift


def _q_rescale(node, args, run_args):
    shift = int(node.attrs["shift"])
    return map_ints(lambda v: rescale_int(v, shift), args[0])


def _q_leaky_relu(node, args, run_args):
    slope_q = int(node.attrs["slope_q"])
    return map_ints(
        lambda v: v if v >= 0 else rescale_int(slope_q * v, run_args.scale), args[0])


def _q_greater_than(node, args, run_args):
    threshold_q = int(node.attrs["threshold_q"])
    one = 1 << run_args.scale
    return map_ints(lambda v: one if v > threshold_q else 0, args[0])


def _q_div(node, args, run_args):
    d = int(node.attrs["divisor"])
    return map_ints(lambda v: (v + d // 2) // d, args[0])


def _q_table(kind: LookupKind):
    def forward(node, args, run_args):
        return map_ints(lambda v: lookup(kind, run_args.bits, run_args.scale, v), args[0])
    return forward


def _q_const(node, args, run_args):
    if node.qvalue is None:
        raise ValueError("constant was never quantized")
    return node.qvalue


def _q_conv2d(node, args, run_args):
    return conv2d(args[0], args[1], args[2] if len(args) > 2 else None,
                  node.attrs.get("stride", 1), node.attrs.get("padding", 0))


QUANT_FORWARD = {
    OpKind.INPUT: lambda node, args, run_args: _no_forward(node, args),
    OpKind.CONST: _q_const,
    OpKind.ADD: lambda node, args, run_args: args[0] + args[1],
    OpKind.SUB: lambda node, args, run_args: args[0] - args[1],
    OpKind.MUL: lambda node, args, run_args: args[0] * args[1],
    OpKind.NEG: lambda node, args, run_args: -args[0],
    OpKind.SUM: lambda node, args, run_args: int_array([sum(int(v) for v in args[0].reshape(-1))]),
    OpKind.MAX: lambda node, args, run_args: int_array([max(int(v) for v in args[0].reshape(-1))]),
    OpKind.MATMUL: lambda node, args, run_args: np.dot(args[0], args[1]),
    OpKind.LINEAR: lambda node, args, run_args: np.dot(args[0], args[1]) + args[2],
    OpKind.CONV2D: _q_conv2d,
    OpKind.RESHAPE: lambda node, args, run_args: args[0].reshape(node.shape),
    OpKind.FLATTEN: lambda node, args, run_args: args[0].reshape(-1),
    OpKind.BROADCAST: lambda node, args, run_args: np.broadcast_to(args[0], node.shape).copy(),
    OpKind.RESCALE: _q_rescale,
    OpKind.RELU: lambda node, args, run_args: map_ints(lambda v: max(v, 0), args[0]),
    OpKind.LEAKY_RELU: _q_leaky_relu,
    OpKind.GREATER_THAN: _q_greater_than,
    OpKind.DIV: _q_div,
}
for _op, _lookup_kind in TABLE_OPS.items():
    QUANT_FORWARD[_op] = _q_table(_lookup_kind)


for _table in (SHAPE_RULES, FLOAT_FORWARD, QUANT_FORWARD, ARITY):
    assert set(_table) == set(OpKind), set(OpKind) - set(_table)
