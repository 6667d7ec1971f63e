import json
import re
from functools import cached_property

from ..errors import CompileError
from ..graph.model import Graph
from ..settings import RunArgs
from ..tables import LookupKind, LookupTable, table_entries
from ..utils import keccak256
from .utils import GateWires, Row

# Advice: the three wire columns. Fixed: qL, qR, qM, qO, qC, S1, S2, S3,
# the lookup selector and tag, and the three table columns. Instance: the
# public values.
ADVICE_COLUMNS = 3
FIXED_COLUMNS = 13
INSTANCE_COLUMNS = 1
COLUMN_COUNT = ADVICE_COLUMNS + FIXED_COLUMNS + INSTANCE_COLUMNS

_WIRE_NAME = re.compile(r"^v(\d+)$")


def _dumps(data: dict) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode()


class Circuit:
    """Compiled circuit: rows (public rows first), the tables the rows look
    up into, the quantized graph they implement and where that graph's
    inputs and outputs live."""

    def __init__(self, rows: list[Row], public_count: int, graph: Graph, cells: dict,
                 tables: list[LookupTable], run_args: RunArgs, group_order: int, variables: int):
        self.rows = rows
        self.public_count = public_count
        self.graph = graph
        self.cells = cells
        self.tables = tables
        self.run_args = run_args
        self.group_order = group_order
        self.variables = variables

    def __repr__(self):
        return "Circuit(rows={}, public={}, tables={}, group_order={})".format(
            len(self.rows), self.public_count, len(self.tables), self.group_order)

    def wires(self) -> list[GateWires]:
        return [row.wires for row in self.rows]

    def public_assignments(self) -> list[str]:
        return [row.wires.L for row in self.rows[:self.public_count]]

    def lookup_rows(self) -> list[int]:
        return [i for i, row in enumerate(self.rows) if row.table]

    def instance_layout(self) -> list[dict]:
        """Shapes and scales of the public tensors, in instance order."""
        o = []
        for role, visibility, indices in (
            ("input", self.run_args.input_visibility, self.graph.inputs),
            ("output", self.run_args.output_visibility, self.graph.outputs),
        ):
            if visibility != "public":
                continue
            for i in indices:
                node = self.graph[i]
                o.append({"role": role, "shape": list(node.shape), "scale": node.scale})
        return o

    def check(self):
        for i, table in enumerate(self.tables):
            if table.tag != i + 1:
                raise CompileError("table {} carries tag {}".format(i + 1, table.tag))
        for i, row in enumerate(self.rows):
            for name in row.wires.as_list():
                if name is None:
                    continue
                match = _WIRE_NAME.match(name)
                if match is None or int(match.group(1)) >= self.variables:
                    raise CompileError("row {} uses undeclared wire {!r}".format(i, name))
            if not 0 <= row.table <= len(self.tables):
                raise CompileError("row {} looks up unknown table {}".format(i, row.table))
        for i, row in enumerate(self.rows[:self.public_count]):
            if row.gate.as_list() != [1, 0, 0, 0, 0] or row.wires.R is not None or row.wires.O is not None or row.table:
                raise CompileError("row {} is not a public row".format(i))
        if len(self.rows) > self.group_order:
            raise CompileError("{} rows exceed group order {}".format(len(self.rows), self.group_order),
                               budget="rows")

    def to_dict(self) -> dict:
        return {
            "rows": [row.to_list() for row in self.rows],
            "public_count": self.public_count,
            "graph": self.graph.to_dict(),
            "cells": self.cells,
            "tables": [[t.kind.value, t.bits, t.scale] for t in self.tables],
            "run_args": self.run_args.to_dict(),
            "group_order": self.group_order,
            "variables": self.variables,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Circuit":
        tables = []
        for tag, (kind, bits, scale) in enumerate(data["tables"], start=1):
            kind = LookupKind(kind)
            tables.append(LookupTable(kind=kind, bits=bits, scale=scale, tag=tag,
                                      entries=table_entries(kind, bits, scale)))
        circuit = cls(
            rows=[Row.from_list(r) for r in data["rows"]],
            public_count=int(data["public_count"]),
            graph=Graph.from_dict(data["graph"]),
            cells=data["cells"],
            tables=tables,
            run_args=RunArgs.from_dict(data["run_args"]),
            group_order=int(data["group_order"]),
            variables=int(data["variables"]),
        )
        circuit.check()
        return circuit

    def canonical_json(self) -> bytes:
        return _dumps(self.to_dict())

    # Circuit-version tag shared by every artifact built from this circuit.
    # The worker count does not change any constraint, so it is left out.
    @cached_property
    def digest(self) -> bytes:
        data = self.to_dict()
        del data["run_args"]["num_workers"]
        return keccak256(b"plonkml-circuit" + _dumps(data))

    def to_bytes(self) -> bytes:
        from ..serialize import dump_circuit
        return dump_circuit(self)

    @classmethod
    def from_bytes(cls, data: bytes, expected_digest=None) -> "Circuit":
        from ..serialize import load_circuit
        return load_circuit(data, expected_digest)
