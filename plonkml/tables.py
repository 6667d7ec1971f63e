"""
Lookup tables for the non-arithmetic parts of a model.

A table lists every (input, output) pair of one function over a bounded
integer domain. Range checks, sign extraction and element-wise
non-linearities are all proven by showing a wire pair is one of the rows.

Entry lists are built once per (kind, bits, scale) and cached for the life
of the process; they are read-only. Which tables one circuit uses, and the
tag each gets, is the business of a ``TableManager`` session that lives for
exactly one compilation.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import cache
from types import MappingProxyType

import numpy as np

from .errors import CompileError, TableOverflowError
from .settings import RunArgs
from .tensor import bit_range, round_half_up

logger = logging.getLogger(__name__)


class LookupKind(Enum):
    RANGE = "range"
    SIGN = "sign"
    EXP = "exp"
    SIGMOID = "sigmoid"
    TANH = "tanh"
    SQRT = "sqrt"
    RECIP = "recip"

    @property
    def is_function(self) -> bool:
        return self not in (LookupKind.RANGE, LookupKind.SIGN)


def _apply(kind: LookupKind, x: np.ndarray) -> np.ndarray:
    with np.errstate(all="ignore"):
        if kind is LookupKind.EXP:
            return np.exp(x)
        if kind is LookupKind.SIGMOID:
            return 1.0 / (1.0 + np.exp(-x))
        if kind is LookupKind.TANH:
            return np.tanh(x)
        if kind is LookupKind.SQRT:
            return np.sqrt(np.maximum(x, 0.0))
        if kind is LookupKind.RECIP:
            return np.where(x == 0, np.inf, 1.0 / np.where(x == 0, 1.0, x))
    raise CompileError("{} is not an element-wise function".format(kind.value))


def domain(kind: LookupKind, bits: int) -> tuple[int, int]:
    """Half-open input domain [lo, hi) of a table."""
    if kind is LookupKind.RANGE:
        return 0, 1 << bits
    lo, hi = bit_range(bits)
    return lo, hi + 1


@cache
def table_entries(kind: LookupKind, bits: int, scale: int) -> tuple[tuple[int, int], ...]:
    lo, hi = domain(kind, bits)
    inputs = np.arange(lo, hi, dtype=np.int64)
    if kind is LookupKind.RANGE:
        outputs = np.zeros_like(inputs)
    elif kind is LookupKind.SIGN:
        outputs = (inputs >= 0).astype(np.int64)
    else:
        out_lo, out_hi = bit_range(bits)
        multiplier = float(1 << scale)
        y = _apply(kind, inputs.astype(np.float64) / multiplier) * multiplier
        y = np.nan_to_num(y, nan=0.0, posinf=out_hi, neginf=out_lo)
        outputs = np.clip(round_half_up(y), out_lo, out_hi).astype(np.int64)
    return tuple(zip(inputs.tolist(), outputs.tolist()))


@cache
def _table_map(kind: LookupKind, bits: int, scale: int):
    return MappingProxyType(dict(table_entries(kind, bits, scale)))


def lookup(kind: LookupKind, bits: int, scale: int, x: int) -> int:
    """Output of the (kind, bits, scale) table for input x; ValueError
    outside the table's domain."""
    if not kind.is_function:
        scale = 0
    try:
        return _table_map(kind, bits, scale)[int(x)]
    except KeyError:
        lo, hi = domain(kind, bits)
        raise ValueError(
            "{} outside the {}-bit {} table domain [{}, {})".format(
                x, bits, kind.value, lo, hi)
        ) from None


@dataclass(frozen=True)
class LookupTable:
    kind: LookupKind
    bits: int
    scale: int
    tag: int
    entries: tuple = field(repr=False, compare=False)

    @property
    def key(self) -> tuple:
        return (self.kind, self.bits, self.scale)

    @property
    def domain(self) -> tuple[int, int]:
        return domain(self.kind, self.bits)

    def __len__(self):
        return len(self.entries)

    def lookup(self, x: int) -> int:
        return lookup(self.kind, self.bits, self.scale, x)

    def contains(self, x: int, y: int) -> bool:
        try:
            return self.lookup(x) == y
        except ValueError:
            return False


class TableManager:
    """Tables of one compilation, deduplicated by (kind, bits, scale).

    Use as a context manager around lowering; once closed the session
    hands out no more tables and ``tables`` is final.
    """

    def __init__(self, run_args: RunArgs):
        self.max_cells = run_args.max_lookup_cells
        self._tables: dict[tuple, LookupTable] = {}
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self) -> list[LookupTable]:
        self._closed = True
        return self.tables

    def get(self, kind: LookupKind, bits: int, scale: int = 0) -> LookupTable:
        if self._closed:
            raise CompileError("table session already closed")
        if not kind.is_function:
            scale = 0
        key = (kind, bits, scale)
        table = self._tables.get(key)
        if table is not None:
            return table
        if bits < 1 or (1 << bits) > self.max_cells:
            raise TableOverflowError(
                "{} table over {} bits needs {} cells, budget is {}".format(
                    kind.value, bits, 1 << bits, self.max_cells)
            )
        table = LookupTable(
            kind=kind, bits=bits, scale=scale, tag=len(self._tables) + 1,
            entries=table_entries(kind, bits, scale),
        )
        self._tables[key] = table
        logger.debug("Built %s table (bits=%d, scale=%d) as tag %d",
                     kind.value, bits, scale, table.tag)
        return table

    @property
    def tables(self) -> list[LookupTable]:
        return sorted(self._tables.values(), key=lambda t: t.tag)

    @property
    def total_rows(self) -> int:
        return sum(len(t) for t in self._tables.values())
