# Circuit construction: lowers a quantized graph into rows and derives the
# fixed columns (gate selectors, copy-constraint permutation, lookup
# selectors and table columns) the keys are built from.

import logging
from typing import Optional, Set

from ..curve import Scalar
from ..errors import CompileError
from ..graph.model import Graph
from ..poly import Basis, Polynomial
from ..settings import RunArgs
from ..tables import LookupTable, TableManager
from ..utils import next_power_of_2
from .lower import lower_graph
from .program import COLUMN_COUNT, Circuit
from .region import Region
from .utils import Cell, Column, GateWires, Row

logger = logging.getLogger(__name__)


def make_s_polynomials(group_order: int, wires: list[GateWires]) -> dict[Column, Polynomial]:
    if len(wires) > group_order:
        raise CompileError("Group order too small", budget="rows")

    # For each variable, extract the list of (column, row) positions
    # where that variable is used
    variable_uses: dict[Optional[str], Set[Cell]] = {None: set()}
    for row, gate_wires in enumerate(wires):
        for column, value in zip(Column.variants(), gate_wires.as_list()):
            if value not in variable_uses:
                variable_uses[value] = set()
            variable_uses[value].add(Cell(column, row))

    # Mark unused cells
    for row in range(len(wires), group_order):
        for column in Column.variants():
            variable_uses[None].add(Cell(column, row))

    # For each list of positions, rotate by one.
    #
    # For example, if some variable is used in positions
    # (LEFT, 4), (LEFT, 7) and (OUTPUT, 2), then we store:
    #
    # at S[LEFT][7] the field element representing (LEFT, 4)
    # at S[OUTPUT][2] the field element representing (LEFT, 7)
    # at S[LEFT][4] the field element representing (OUTPUT, 2)

    S_values = {
        Column.LEFT: [None] * group_order,
        Column.RIGHT: [None] * group_order,
        Column.OUTPUT: [None] * group_order,
    }

    for _, uses in variable_uses.items():
        sorted_uses = sorted(uses)
        for i, cell in enumerate(sorted_uses):
            next_i = (i + 1) % len(sorted_uses)
            next_column = sorted_uses[next_i].column
            next_row = sorted_uses[next_i].row
            S_values[next_column][next_row] = cell.label(group_order)

    return {column: Polynomial(Basis.LAGRANGE, values) for column, values in S_values.items()}


# Generate the gate polynomials: L, R, M, O, C,
# each a list of length `group_order`
def make_gate_polynomials(group_order: int, rows: list[Row]) -> tuple[Polynomial, ...]:
    L = [Scalar(0) for _ in range(group_order)]
    R = [Scalar(0) for _ in range(group_order)]
    M = [Scalar(0) for _ in range(group_order)]
    O = [Scalar(0) for _ in range(group_order)]
    C = [Scalar(0) for _ in range(group_order)]
    for i, row in enumerate(rows):
        gate = row.gate
        L[i] = Scalar(gate.L)
        R[i] = Scalar(gate.R)
        M[i] = Scalar(gate.M)
        O[i] = Scalar(gate.O)
        C[i] = Scalar(gate.C)
    return (
        Polynomial(Basis.LAGRANGE, L),
        Polynomial(Basis.LAGRANGE, R),
        Polynomial(Basis.LAGRANGE, M),
        Polynomial(Basis.LAGRANGE, O),
        Polynomial(Basis.LAGRANGE, C),
    )


# The lookup selector and the tag of the table each looked-up row belongs to
def make_lookup_selectors(group_order: int, rows: list[Row]) -> tuple[Polynomial, Polynomial]:
    QLK = [Scalar(0) for _ in range(group_order)]
    QTAG = [Scalar(0) for _ in range(group_order)]
    for i, row in enumerate(rows):
        if row.table:
            QLK[i] = Scalar(1)
            QTAG[i] = Scalar(row.table)
    return Polynomial(Basis.LAGRANGE, QLK), Polynomial(Basis.LAGRANGE, QTAG)


# All tables stacked into (tag, input, output) rows. Padding rows repeat
# the first entry, so they never widen the set of allowed tuples.
def table_rows(group_order: int, tables: list[LookupTable]) -> list[tuple[int, int, int]]:
    o = []
    for table in tables:
        o.extend((table.tag, x, y) for x, y in table.entries)
    if len(o) > group_order:
        raise CompileError("Group order too small for the lookup tables", budget="rows")
    padding = o[0] if o else (0, 0, 0)
    return o + [padding] * (group_order - len(o))


def make_table_polynomials(group_order: int, tables: list[LookupTable]) -> tuple[Polynomial, ...]:
    entries = table_rows(group_order, tables)
    return tuple(
        Polynomial(Basis.LAGRANGE, [Scalar(entry[i]) for entry in entries])
        for i in range(3)
    )


def compile_circuit(graph: Graph, run_args: RunArgs) -> Circuit:
    with TableManager(run_args) as manager:
        region = Region(run_args, manager)
        cells = lower_graph(graph, region)
    tables = manager.tables
    rows = region.all_rows()

    needed = max(len(rows), sum(len(t) for t in tables), 8)
    group_order = next_power_of_2(needed)
    if group_order > run_args.max_rows:
        raise CompileError(
            "circuit needs {} rows (domain {}), budget is {}".format(needed, group_order, run_args.max_rows),
            budget="rows",
        )
    if COLUMN_COUNT > run_args.max_columns:
        raise CompileError(
            "circuit needs {} columns, budget is {}".format(COLUMN_COUNT, run_args.max_columns),
            budget="columns",
        )

    circuit = Circuit(
        rows=rows,
        public_count=len(region.public),
        graph=graph,
        cells=cells,
        tables=tables,
        run_args=run_args,
        group_order=group_order,
        variables=region.counter,
    )
    circuit.check()
    logger.info("Compiled circuit: %d rows, %d tables, group order %d",
                len(rows), len(tables), group_order)
    return circuit
