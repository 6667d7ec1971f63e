from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from ..curve import Scalar

# A reference to a cell value: a wire name, or an integer constant that
# gadgets fold into gate coefficients instead of placing in a wire.
Ref = Union[str, int]


class Column(Enum):
    LEFT = 1
    RIGHT = 2
    OUTPUT = 3

    def __lt__(self, other):
        if self.__class__ is other.__class__:
            return self.value < other.value
        return NotImplemented

    @staticmethod
    def variants():
        return [Column.LEFT, Column.RIGHT, Column.OUTPUT]


@dataclass(frozen=True, order=True)
class Cell:
    column: Column
    row: int

    def __repr__(self) -> str:
        return "(" + str(self.row) + ", " + str(self.column.value) + ")"

    def __str__(self) -> str:
        return "(" + str(self.row) + ", " + str(self.column.value) + ")"

    # Outputs the label (an inner-field element) representing a given
    # (column, row) pair. Expects section = 1 for left, 2 right, 3 output
    def label(self, group_order: int) -> Scalar:
        assert self.row < group_order
        return Scalar.roots_of_unity(group_order)[self.row] * self.column.value


@dataclass(frozen=True)
class GateWires:
    """Variable names for Left, Right, and Output wires."""

    L: Optional[str]
    R: Optional[str]
    O: Optional[str]

    def as_list(self) -> list[Optional[str]]:
        return [self.L, self.R, self.O]


@dataclass(frozen=True)
class Gate:
    """Coefficients of qL*a + qR*b + qM*a*b + qO*c + qC = 0."""

    L: int = 0
    R: int = 0
    M: int = 0
    O: int = 0
    C: int = 0

    def as_list(self) -> list[int]:
        return [self.L, self.R, self.M, self.O, self.C]

    def evaluate(self, a: int, b: int, c: int) -> int:
        return self.L * a + self.R * b + self.M * a * b + self.O * c + self.C


@dataclass(frozen=True)
class Row:
    wires: GateWires
    gate: Gate
    # Tag of the lookup table (L, O) must belong to; 0 for none
    table: int = 0

    def to_list(self) -> list:
        return [*self.wires.as_list(), *self.gate.as_list(), self.table]

    @classmethod
    def from_list(cls, data: list) -> "Row":
        return cls(GateWires(*data[:3]), Gate(*(int(v) for v in data[3:8])), int(data[8]))
