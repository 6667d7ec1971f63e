"""
Circuit gadgets. Each takes the region plus cell references and returns the
reference of its result, appending the rows that force it.

Every row is an instance of

    qL*a + qR*b + qM*a*b + qO*c + qC = 0

optionally combined with a lookup of (a, c) in one table. Integer
references are constants and are folded into coefficients.
"""

from ..errors import UnsatisfiedConstraintError
from ..graph.ops import rescale_int
from ..tables import LookupKind
from ..tensor import bit_range
from .region import Region
from .utils import Gate, Ref


def is_wire(ref: Ref) -> bool:
    return isinstance(ref, str)


def _fold(terms, constant: int):
    merged: dict[str, int] = {}
    for coeff, ref in terms:
        coeff = int(coeff)
        if is_wire(ref):
            merged[ref] = merged.get(ref, 0) + coeff
        else:
            constant += coeff * int(ref)
    return [(c, ref) for ref, c in merged.items() if c != 0], constant


def _bind(region: Region, out: str, compute):
    if not region.witness_mode:
        return
    expected = compute()
    if region.value(out) != expected:
        raise UnsatisfiedConstraintError(
            "wire {} holds {}, expected {}".format(out, region.value(out), expected),
            row=len(region.rows),
        )


def lincomb(region: Region, terms, constant: int = 0, out=None) -> Ref:
    """sum(coeff * ref) + constant, as a chain of rows that each absorb
    one more term. With ``out`` the result is forced into that wire."""
    terms, constant = _fold(terms, constant)
    if not terms:
        if out is None:
            return constant
        _bind(region, out, lambda: constant)
        region.add_row(out, None, None, Gate(L=1, C=-constant))
        return out
    if out is None and constant == 0 and len(terms) == 1 and terms[0][0] == 1:
        return terms[0][1]

    value = region.value
    acc_coeff, acc = terms[0]
    if len(terms) == 1:
        result = lambda: acc_coeff * value(acc) + constant
        if out is None:
            out = region.new_var(result)
        else:
            _bind(region, out, result)
        region.add_row(acc, None, out, Gate(L=acc_coeff, O=-1, C=constant))
        return out

    rest = terms[1:]
    for i, (coeff, ref) in enumerate(rest):
        last = i == len(rest) - 1
        k = constant if last else 0
        result = lambda: acc_coeff * value(acc) + coeff * value(ref) + k
        if last and out is not None:
            _bind(region, out, result)
            target = out
        else:
            target = region.new_var(result)
        region.add_row(acc, ref, target, Gate(L=acc_coeff, R=coeff, O=-1, C=k))
        acc, acc_coeff = target, 1
    return acc


def mul(region: Region, a: Ref, b: Ref, out=None) -> Ref:
    if not is_wire(b):
        return lincomb(region, [(int(b), a)], out=out)
    if not is_wire(a):
        return lincomb(region, [(int(a), b)], out=out)
    if out is None:
        out = region.new_var(lambda: region.value(a) * region.value(b))
    else:
        _bind(region, out, lambda: region.value(a) * region.value(b))
    region.add_row(a, b, out, Gate(M=1, O=-1))
    return out


def dot(region: Region, xs, ws, bias: Ref = 0) -> Ref:
    terms = []
    for x, w in zip(xs, ws):
        if not is_wire(w):
            terms.append((int(w), x))
        elif not is_wire(x):
            terms.append((int(x), w))
        else:
            terms.append((1, mul(region, x, w)))
    if is_wire(bias):
        return lincomb(region, terms + [(1, bias)])
    return lincomb(region, terms, int(bias))


def range_check(region: Region, x: Ref, bits: int):
    """0 <= x < 2**bits, via lookup_bits-wide limbs."""
    if not is_wire(x):
        if not 0 <= int(x) < 1 << bits:
            region.fail("constant {} outside [0, 2^{})".format(x, bits))
        return
    if region.witness_mode and not 0 <= region.value(x) < 1 << bits:
        region.fail("value {} outside [0, 2^{})".format(region.value(x), bits))
    if bits == 0:
        lincomb(region, [], 0, out=x)
        return
    k = region.run_args.lookup_bits
    if bits <= k:
        region.lookup_row(region.table(LookupKind.RANGE, bits), x)
        return
    limbs = []
    shift = 0
    while shift < bits:
        width = min(k, bits - shift)
        limb = region.new_var(lambda: (region.value(x) >> shift) & ((1 << width) - 1))
        region.lookup_row(region.table(LookupKind.RANGE, width), limb)
        limbs.append((1 << shift, limb))
        shift += width
    lincomb(region, limbs, out=x)


def signed_decompose(region: Region, x: Ref, bits: int) -> Ref:
    """Signed range check of x to ``bits``; returns the bit [x >= 0].

    x = h * 2^(m*k) + sum(l_j * 2^(j*k)) with every limb l_j in RANGE(k)
    and the high part h in SIGN(bits - m*k), whose output is the sign.
    """
    lo, hi = bit_range(bits)
    if not is_wire(x):
        if not lo <= int(x) <= hi:
            region.fail("constant {} does not fit {} signed bits".format(x, bits))
        return 1 if int(x) >= 0 else 0
    if region.witness_mode and not lo <= region.value(x) <= hi:
        region.fail("value {} does not fit {} signed bits".format(region.value(x), bits))

    k = region.run_args.lookup_bits
    m = max(0, -(-(bits - k) // k))
    sign_table = region.table(LookupKind.SIGN, bits - m * k)
    sign = region.new_var(lambda: 1 if region.value(x) >= 0 else 0)
    if m == 0:
        region.lookup_row(sign_table, x, sign)
        return sign

    range_table = region.table(LookupKind.RANGE, k)
    terms = []
    for j in range(m):
        limb = region.new_var(lambda: (region.value(x) >> (j * k)) & ((1 << k) - 1))
        region.lookup_row(range_table, limb)
        terms.append((1 << (j * k), limb))
    high = region.new_var(lambda: region.value(x) >> (m * k))
    region.lookup_row(sign_table, high, sign)
    terms.append((1 << (m * k), high))
    lincomb(region, terms, out=x)
    return sign


def signed_range_check(region: Region, x: Ref, bits: int):
    signed_decompose(region, x, bits)


def rescale(region: Region, x: Ref, shift: int) -> Ref:
    """y = floor((x + 2^(shift-1)) / 2^shift), forced by
    x + 2^(shift-1) = 2^shift * y + r with 0 <= r < 2^shift."""
    if shift == 0:
        return x
    if not is_wire(x):
        return rescale_int(int(x), shift)
    half = 1 << (shift - 1)
    y = region.new_var(lambda: rescale_int(region.value(x), shift))
    r = region.new_var(lambda: region.value(x) + half - (region.value(y) << shift))
    range_check(region, r, shift)
    signed_range_check(region, y, region.run_args.bits)
    lincomb(region, [(1 << shift, y), (1, r)], -half, out=x)
    return y


def int_div(region: Region, x: Ref, d: int) -> Ref:
    """y = floor((x + floor(d/2)) / d) for a positive integer d."""
    if d == 1:
        return x
    if not is_wire(x):
        return (int(x) + d // 2) // d
    y = region.new_var(lambda: (region.value(x) + d // 2) // d)
    r = region.new_var(lambda: region.value(x) + d // 2 - d * region.value(y))
    t = (d - 1).bit_length()
    range_check(region, r, t)
    if d != 1 << t:
        range_check(region, lincomb(region, [(-1, r)], d - 1), t)
    signed_range_check(region, y, region.run_args.bits)
    lincomb(region, [(d, y), (1, r)], -(d // 2), out=x)
    return y


def relu(region: Region, x: Ref) -> Ref:
    sign = signed_decompose(region, x, region.run_args.bits)
    return mul(region, sign, x)


def max2(region: Region, a: Ref, b: Ref) -> Ref:
    """max(a, b) = b + [a - b >= 0] * (a - b)."""
    diff = lincomb(region, [(1, a), (-1, b)])
    sign = signed_decompose(region, diff, region.run_args.bits + 1)
    return lincomb(region, [(1, b), (1, mul(region, sign, diff))])


def max_reduce(region: Region, refs) -> Ref:
    items = list(refs)
    while len(items) > 1:
        merged = [max2(region, items[i], items[i + 1]) for i in range(0, len(items) - 1, 2)]
        if len(items) % 2:
            merged.append(items[-1])
        items = merged
    return items[0]


def greater_than(region: Region, x: Ref, threshold_q: int) -> Ref:
    """2^scale if x > threshold_q else 0."""
    diff = lincomb(region, [(1, x)], -threshold_q - 1)
    sign = signed_decompose(region, diff, region.run_args.bits + 1)
    return lincomb(region, [(1 << region.run_args.scale, sign)])


def leaky_relu(region: Region, x: Ref, slope_q: int) -> Ref:
    """x for x >= 0, otherwise the rescaled slope * x.

    Only the negative part is multiplied by the slope, so a steep slope
    never overflows on the branch that is not taken.
    """
    sign = signed_decompose(region, x, region.run_args.bits)
    positive = mul(region, sign, x)
    negative = lincomb(region, [(1, x), (-1, positive)])
    scaled = rescale(region, lincomb(region, [(slope_q, negative)]), region.run_args.scale)
    return lincomb(region, [(1, positive), (1, scaled)])


def table_op(region: Region, x: Ref, kind: LookupKind) -> Ref:
    table = region.table(kind, region.run_args.bits, region.run_args.scale)

    def output(v):
        try:
            return table.lookup(v)
        except ValueError as e:
            region.fail(str(e))

    if not is_wire(x):
        return output(int(x))
    y = region.new_var(lambda: output(region.value(x)))
    region.lookup_row(table, x, y)
    return y
