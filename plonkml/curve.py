import py_ecc.optimized_bn128 as b
from py_ecc.fields.field_elements import FQ as Field
from functools import cache
from typing import NewType

G1Point = NewType('G1Point', tuple[b.FQ, b.FQ, b.FQ])
G2Point = NewType('G2Point', tuple[b.FQ2, b.FQ2, b.FQ2])

primitive_root = 5


class Scalar(Field):
    field_modulus = b.curve_order

    # Gets the first root of unity of a given group order
    @staticmethod
    def root_of_unity(group_order: int) -> "Scalar":
        return _root_of_unity(group_order)

    # Gets the full list of roots of unity of a given group order
    @staticmethod
    def roots_of_unity(group_order: int) -> list["Scalar"]:
        return _roots_of_unity(group_order)


@cache
def _root_of_unity(group_order: int) -> Scalar:
    if group_order <= 0 or (b.curve_order - 1) % group_order != 0:
        raise ValueError("no subgroup of order {}".format(group_order))
    return Scalar(primitive_root) ** ((b.curve_order - 1) // group_order)


@cache
def _roots_of_unity(group_order: int) -> list[Scalar]:
    o = [Scalar(1), _root_of_unity(group_order)]
    while len(o) < group_order:
        o.append(o[-1] * o[1])
    return o[:group_order]


def to_signed(n: int) -> int:
    """Maps a field element's integer to the symmetric range around zero."""
    n %= b.curve_order
    return n - b.curve_order if n > b.curve_order // 2 else n


def as_int(x) -> int:
    if hasattr(x, 'n'):
        return x.n
    return int(x)


def ec_mul(pt, coeff):
    return b.multiply(pt, as_int(coeff) % b.curve_order)


def _window_width(count: int) -> int:
    if count < 32:
        return 3
    return max(3, count.bit_length() - 2)


# Elliptic curve linear combination using the bucket (Pippenger) method.
# Coefficients above r/2 are folded onto the negated point, so the small
# negative values that fill witness columns cost as little as small
# positive ones.
def ec_lincomb(pairs) -> G1Point:
    half = b.curve_order // 2
    terms = []
    for pt, coeff in pairs:
        n = as_int(coeff) % b.curve_order
        if n == 0 or b.is_inf(pt):
            continue
        if n > half:
            pt, n = b.neg(pt), b.curve_order - n
        terms.append((pt, n))
    if not terms:
        return b.Z1
    if len(terms) < 4:
        o = b.Z1
        for pt, n in terms:
            o = b.add(o, b.multiply(pt, n))
        return o

    width = _window_width(len(terms))
    mask = (1 << width) - 1
    top = max(n.bit_length() for _, n in terms)
    o = b.Z1
    for shift in reversed(range(0, top, width)):
        if not b.is_inf(o):
            for _ in range(width):
                o = b.double(o)
        buckets = [None] * (mask + 1)
        for pt, n in terms:
            digit = (n >> shift) & mask
            if digit:
                bucket = buckets[digit]
                buckets[digit] = pt if bucket is None else b.add(bucket, pt)
        running = None
        window = b.Z1
        for digit in range(mask, 0, -1):
            if buckets[digit] is not None:
                running = buckets[digit] if running is None else b.add(running, buckets[digit])
            if running is not None:
                window = b.add(window, running)
        o = b.add(o, window)
    return o


class FixedBase:
    """Precomputed multiples of one point, for the many scalar
    multiplications of a setup."""

    def __init__(self, base, width: int = 8):
        self.width = width
        self.mask = (1 << width) - 1
        windows = -(-b.curve_order.bit_length() // width)
        self.table = []
        current = base
        for _ in range(windows):
            row = [b.Z1, current]
            for _ in range(2, self.mask + 1):
                row.append(b.add(row[-1], current))
            self.table.append(row)
            for _ in range(width):
                current = b.double(current)

    def multiply(self, coeff) -> G1Point:
        n = as_int(coeff) % b.curve_order
        o = b.Z1
        window = 0
        while n:
            digit = n & self.mask
            if digit:
                o = b.add(o, self.table[window][digit])
            n >>= self.width
            window += 1
        return o
