import numpy as np
import pytest

from plonkml import CompileError, RunArgs, TableOverflowError
from plonkml.graph import Graph, OpKind
from plonkml.tables import LookupKind, TableManager, domain, lookup, table_entries


def test_domains():
    assert domain(LookupKind.RANGE, 4) == (0, 16)
    assert domain(LookupKind.SIGN, 4) == (-8, 8)
    assert domain(LookupKind.SIGMOID, 8) == (-128, 128)
    assert len(table_entries(LookupKind.RANGE, 4, 0)) == 16
    assert len(table_entries(LookupKind.TANH, 6, 2)) == 64


def test_range_and_sign_entries():
    assert set(y for _, y in table_entries(LookupKind.RANGE, 3, 0)) == {0}
    signs = dict(table_entries(LookupKind.SIGN, 3, 0))
    assert signs[-4] == 0 and signs[-1] == 0 and signs[0] == 1 and signs[3] == 1


def test_function_entries_follow_the_float_function():
    scale = 4
    for x in (-40, -3, 0, 5, 37):
        expected = int(np.floor(1.0 / (1.0 + np.exp(-x / 16.0)) * 16 + 0.5))
        assert lookup(LookupKind.SIGMOID, 8, scale, x) == expected
    assert lookup(LookupKind.SQRT, 8, scale, -20) == 0
    assert lookup(LookupKind.SQRT, 8, scale, 64) == 32
    # 1/0 saturates at the largest representable value
    assert lookup(LookupKind.RECIP, 8, scale, 0) == 127
    # exp(7.9) does not fit 8 bits at scale 4 either
    assert lookup(LookupKind.EXP, 8, scale, 127) == 127


def test_lookup_outside_domain():
    with pytest.raises(ValueError):
        lookup(LookupKind.RANGE, 4, 0, 16)
    with pytest.raises(ValueError):
        lookup(LookupKind.SIGN, 4, 0, -9)


def test_manager_deduplicates_and_tags_in_order():
    with TableManager(RunArgs()) as manager:
        a = manager.get(LookupKind.RANGE, 8)
        b = manager.get(LookupKind.SIGMOID, 8, 4)
        # scale is irrelevant for range tables
        assert manager.get(LookupKind.RANGE, 8, 3) is a
        assert manager.get(LookupKind.SIGMOID, 8, 4) is b
        c = manager.get(LookupKind.SIGMOID, 8, 5)
    assert [t.tag for t in manager.tables] == [1, 2, 3]
    assert manager.tables == [a, b, c]
    assert manager.total_rows == 3 * 256
    assert a.contains(17, 0)
    assert not a.contains(17, 1)
    assert not a.contains(300, 0)


def test_manager_budget():
    manager = TableManager(RunArgs(max_lookup_cells=64))
    manager.get(LookupKind.RANGE, 6)
    with pytest.raises(TableOverflowError) as e:
        manager.get(LookupKind.RANGE, 7)
    assert e.value.budget == "lookup_cells"
    assert isinstance(e.value, CompileError)


def test_closed_manager_refuses_new_tables():
    with TableManager(RunArgs()) as manager:
        manager.get(LookupKind.RANGE, 4)
    with pytest.raises(CompileError):
        manager.get(LookupKind.SIGN, 4)


def test_identical_nonlinearities_share_one_table(build, small_args):
    graph = Graph()
    x = graph.input((3,))
    y = graph.input((3,))
    graph.output(graph.add(OpKind.SIGMOID, x))
    graph.output(graph.add(OpKind.SIGMOID, y))
    circuit = build(graph, small_args)
    sigmoid = [t for t in circuit.tables if t.kind is LookupKind.SIGMOID]
    assert len(sigmoid) == 1
    assert len(set(t.key for t in circuit.tables)) == len(circuit.tables)


def test_oversized_tables_fail_compilation(build):
    graph = Graph()
    graph.output(graph.input((2,)))
    args = RunArgs(scale=4, bits=16, lookup_bits=8, max_lookup_cells=128)
    with pytest.raises(TableOverflowError):
        build(graph, args)
