"""Tests for the active-file accounting session."""

import asyncio

import pytest
from fakes import FakeOracle, make_symbol, ref, write_file

from refcounter.classifier import ReferenceClassifier
from refcounter.models import SymbolKind
from refcounter.session import ActiveFileSession, SessionState
from refcounter.source import SourceReader


def never(path):
    return False


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def session(tmp_path, oracle):
    classifier = ReferenceClassifier(SourceReader(tmp_path))
    return ActiveFileSession(oracle, oracle, classifier, symbol_attempts=1, symbol_backoff=0)


def test_begin_clears_and_enters_collecting(session):
    session.symbols["stale"] = make_symbol("stale")

    token = session.begin("a.py")

    assert session.state is SessionState.COLLECTING
    assert session.file_id == "a.py"
    assert session.symbols == {}
    assert session.begin("a.py") == token + 1


@pytest.mark.asyncio
async def test_collect_classifies_references(tmp_path, oracle, session):
    write_file(tmp_path, "b.py", "from a import greet\ngreet()\n")
    greet = make_symbol("greet", file_id="a.py")
    oracle.add_file("a.py", greet)
    oracle.add_references(greet, ref("b.py", 0), ref("b.py", 1))

    assert await session.collect("a.py")

    assert session.state is SessionState.READY
    assert list(session.symbols) == [greet.key]
    assert session.imports[greet.key] == [ref("b.py", 0)]
    assert session.usages[greet.key] == [ref("b.py", 1)]
    assert oracle.reference_calls[0][2] is False


@pytest.mark.asyncio
async def test_counts_follow_include_imports(tmp_path, oracle, session):
    write_file(tmp_path, "b.py", "from a import greet\n")
    greet = make_symbol("greet", file_id="a.py")
    oracle.add_file("a.py", greet)
    oracle.add_references(greet, ref("b.py", 0))

    await session.collect("a.py")

    assert session.counts(never, include_imports=False) == {greet.key: 0}
    assert session.counts(never, include_imports=True) == {greet.key: 1}
    assert session.reference_count(greet.key, never, True) == 1
    assert session.reference_count("missing", never, True) is None


@pytest.mark.asyncio
async def test_collect_keeps_filter_order(oracle, session):
    method = make_symbol("render", file_id="a.py", line=2, kind=SymbolKind.METHOD, character=8)
    widget = make_symbol("Widget", file_id="a.py", line=0, kind=SymbolKind.CLASS, end_line=5,
                         children=[method])
    tail = make_symbol("main", file_id="a.py", line=8)
    oracle.add_file("a.py", widget, make_symbol("_private", file_id="a.py", line=6), tail)

    await session.collect("a.py")

    assert [s.name for s in session.symbols.values()] == ["Widget", "render", "main"]
    assert [call[1] for call in oracle.reference_calls] == [
        widget.selection_range.start, method.selection_range.start, tail.selection_range.start
    ]


@pytest.mark.asyncio
async def test_failing_reference_lookup_records_empty_list(oracle, session):
    good = make_symbol("good", file_id="a.py", line=0)
    bad = make_symbol("bad", file_id="a.py", line=5)
    oracle.add_file("a.py", good, bad)
    oracle.add_references(good, ref("b.py", 1))
    oracle.failing_symbols.add("bad")

    assert await session.collect("a.py")

    assert session.references[bad.key] == []
    assert session.references[good.key] == [ref("b.py", 1)]


@pytest.mark.asyncio
async def test_empty_symbol_answer_yields_empty_ready_session(oracle, session):
    assert await session.collect("empty.py")

    assert session.state is SessionState.READY
    assert session.symbols == {}


@pytest.mark.asyncio
async def test_superseded_pass_does_not_write(oracle, session):
    old = make_symbol("old", file_id="a.py")
    new = make_symbol("new", file_id="b.py")
    oracle.add_file("a.py", old)
    oracle.add_file("b.py", new)
    gate = asyncio.Event()
    oracle.symbol_gates["a.py"] = gate

    first = asyncio.create_task(session.collect("a.py"))
    await asyncio.sleep(0)

    assert await session.collect("b.py")
    gate.set()

    assert await first is False
    assert session.file_id == "b.py"
    assert list(session.symbols) == [new.key]


def test_reset_returns_to_idle(session):
    session.begin("a.py")

    session.reset()

    assert session.state is SessionState.IDLE
    assert session.file_id is None
