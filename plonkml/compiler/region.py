from typing import Callable, Optional

from ..errors import CompileError, WitnessError
from ..settings import RunArgs
from ..tables import LookupKind, LookupTable, TableManager
from .utils import Gate, GateWires, Ref, Row


class Region:
    """Append-only row layout shared by every gadget.

    The same lowering code runs twice: once to lay out the circuit and once,
    with ``values`` set, to fill in the witness. Gadgets pass the value of a
    new wire as a thunk that only runs in the second mode.
    """

    def __init__(self, run_args: RunArgs, tables: TableManager,
                 values: Optional[dict] = None, inputs: Optional[dict] = None):
        self.run_args = run_args
        self.tables = tables
        self.values = values
        # Graph input index -> quantized int array, witness mode only
        self.inputs = inputs or {}
        self.rows: list[Row] = []
        self.public: list[str] = []
        self.counter = 0
        self.node: Optional[int] = None

    @property
    def witness_mode(self) -> bool:
        return self.values is not None

    def new_var(self, compute: Optional[Callable[[], int]] = None) -> str:
        name = "v{}".format(self.counter)
        self.counter += 1
        if self.values is not None:
            self.values[name] = int(compute())
        return name

    def value(self, ref: Ref) -> int:
        if not isinstance(ref, str):
            return int(ref)
        return self.values[ref]

    def fail(self, message: str):
        if self.witness_mode:
            raise WitnessError(message, node=self.node)
        raise CompileError("node {}: {}".format(self.node, message))

    def table(self, kind: LookupKind, bits: int, scale: int = 0) -> LookupTable:
        return self.tables.get(kind, bits, scale)

    def add_row(self, L: Optional[str], R: Optional[str], O: Optional[str],
                gate: Gate = Gate(), table: int = 0):
        self.rows.append(Row(GateWires(L, R, O), gate, table))

    def lookup_row(self, table: LookupTable, x: str, y: Optional[str] = None):
        self.add_row(x, None, y, table=table.tag)

    def make_public(self, ref: Ref) -> str:
        if not isinstance(ref, str):
            constant = int(ref)
            ref = self.new_var(lambda: constant)
            self.add_row(ref, None, None, Gate(L=1, C=-constant))
        self.public.append(ref)
        return ref

    def all_rows(self) -> list[Row]:
        """Public rows first: qL*a + PI = 0 with PI = -value."""
        return [Row(GateWires(name, None, None), Gate(L=1)) for name in self.public] + self.rows
