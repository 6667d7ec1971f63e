import py_ecc.optimized_bn128 as b
from Crypto.Hash import keccak
from .curve import Scalar, as_int


def keccak256(x: bytes) -> bytes:
    return keccak.new(digest_bits=256).update(x).digest()


def serialize_int(x) -> bytes:
    return (as_int(x) % b.curve_order).to_bytes(32, 'big')


# Points travel in affine form; the point at infinity is (0, 0)
def serialize_point(pt) -> bytes:
    if b.is_inf(pt):
        return bytes(64)
    x, y = b.normalize(pt)
    return x.n.to_bytes(32, 'big') + y.n.to_bytes(32, 'big')


def serialize_point_g2(pt) -> bytes:
    if b.is_inf(pt):
        return bytes(128)
    x, y = b.normalize(pt)
    return b''.join(as_int(c).to_bytes(32, 'big') for c in (*x.coeffs, *y.coeffs))


def deserialize_point(data: bytes):
    if len(data) != 64:
        raise ValueError("G1 point must be 64 bytes")
    x = int.from_bytes(data[:32], 'big')
    y = int.from_bytes(data[32:], 'big')
    if x == 0 and y == 0:
        return b.Z1
    if x >= b.field_modulus or y >= b.field_modulus:
        raise ValueError("coordinate outside the base field")
    pt = (b.FQ(x), b.FQ(y), b.FQ.one())
    if not b.is_on_curve(pt, b.b):
        raise ValueError("point is not on the curve")
    return pt


def deserialize_point_g2(data: bytes):
    if len(data) != 128:
        raise ValueError("G2 point must be 128 bytes")
    c = [int.from_bytes(data[i:i + 32], 'big') for i in range(0, 128, 32)]
    if not any(c):
        return b.Z2
    if any(v >= b.field_modulus for v in c):
        raise ValueError("coordinate outside the base field")
    pt = (b.FQ2(c[0:2]), b.FQ2(c[2:4]), b.FQ2.one())
    if not b.is_on_curve(pt, b.b2):
        raise ValueError("point is not on the twist")
    return pt


def deserialize_int(data: bytes) -> Scalar:
    n = int.from_bytes(data, 'big')
    if n >= b.curve_order:
        raise ValueError("scalar outside the field")
    return Scalar(n)


# Converts a hash to a Scalar element
def binhash_to_scalar(h: bytes) -> Scalar:
    return Scalar(int.from_bytes(h, 'big'))


def next_power_of_2(x: int) -> int:
    return 1 if x <= 1 else 1 << (x - 1).bit_length()
