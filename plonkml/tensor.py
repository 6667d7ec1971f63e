"""
Fixed-point tensors.

A real number x is stored at scale s as the integer floor(x * 2**s + 1/2).
Values are exact Python ints held in numpy object arrays, so products of
wide operands never overflow a machine word.
"""

import numpy as np

from .errors import QuantizationError


def int_array(values, shape=None) -> np.ndarray:
    """Object array of Python ints from any integer-valued array-like."""
    arr = np.asarray(values)
    if shape is None:
        shape = arr.shape
    flat = [int(v) for v in arr.reshape(-1)]
    out = np.empty(len(flat), dtype=object)
    out[:] = flat
    return out.reshape(shape)


def round_half_up(x) -> np.ndarray:
    return np.floor(np.asarray(x, dtype=np.float64) + 0.5)


def bit_range(bits: int) -> tuple[int, int]:
    return -(1 << (bits - 1)), (1 << (bits - 1)) - 1


class Tensor:
    """Immutable fixed-point tensor: shape, scale and integer values."""

    def __init__(self, values, scale: int):
        arr = int_array(values)
        arr.setflags(write=False)
        self._values = arr
        self.scale = scale

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def shape(self) -> tuple:
        return self._values.shape

    def __len__(self):
        return self._values.size

    def __repr__(self):
        return "Tensor(shape={}, scale={})".format(self.shape, self.scale)

    def __eq__(self, other):
        return (
            isinstance(other, Tensor)
            and self.scale == other.scale
            and self.shape == other.shape
            and self.to_list() == other.to_list()
        )

    def to_list(self) -> list[int]:
        return [int(v) for v in self._values.reshape(-1)]

    @classmethod
    def quantize(cls, array, scale: int, bits: int, name=None) -> "Tensor":
        data = np.asarray(array, dtype=np.float64)
        if not np.all(np.isfinite(data)):
            raise QuantizationError("non-finite value", tensor=name)
        q = round_half_up(data * float(1 << scale))
        lo, hi = bit_range(bits)
        if q.size and (q.min() < lo or q.max() > hi):
            worst = q.max() if q.max() > hi else q.min()
            raise QuantizationError(
                "value {} at scale {} needs more than {} bits".format(
                    worst / (1 << scale), scale, bits),
                tensor=name,
            )
        return cls(q.astype(np.int64) if bits <= 62 else int_array(q), scale)

    def dequantize(self) -> np.ndarray:
        return np.array(self.to_list(), dtype=np.float64).reshape(self.shape) / float(1 << self.scale)

    def check_range(self, bits: int) -> bool:
        lo, hi = bit_range(bits)
        return all(lo <= v <= hi for v in self.to_list())
