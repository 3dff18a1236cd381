"""Tests for the SQLite index snapshot store."""

import os

import pytest
from fakes import FakeOracle, make_symbol, write_file

from refcounter.classifier import ReferenceClassifier
from refcounter.index import WorkspaceIndex
from refcounter.models import SymbolKind
from refcounter.snapshot import IndexSnapshotStore
from refcounter.source import SourceReader


@pytest.fixture
def store(tmp_path):
    db = IndexSnapshotStore(tmp_path / ".refcounter-cache")
    yield db
    db.close()


@pytest.fixture
def index(tmp_path):
    oracle = FakeOracle()
    return WorkspaceIndex(oracle, oracle, ReferenceClassifier(SourceReader(tmp_path)))


def test_database_creation(tmp_path, store):
    assert (tmp_path / ".refcounter-cache" / "index.db").exists()

    tables = {row[0] for row in store.conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert {"files", "symbols"} <= tables


def test_wal_mode_and_foreign_keys(store):
    assert store.conn.execute("PRAGMA journal_mode").fetchone()[0].upper() == "WAL"
    assert store.conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1


def test_upsert_file_inserts_then_updates(store):
    row_id = store.upsert_file("src/app.py", 10.0, 5.0)

    assert store.get_file("src/app.py") == (row_id, 10.0, 5.0)
    assert store.upsert_file("src/app.py", 20.0, 6.0) == row_id
    assert store.get_file("src/app.py") == (row_id, 20.0, 6.0)
    assert store.get_file("missing.py") is None


def test_symbols_round_trip_without_children(store):
    method = make_symbol("render", file_id="a.py", line=2, kind=SymbolKind.METHOD, character=8)
    widget = make_symbol("Widget", file_id="a.py", kind=SymbolKind.CLASS, end_line=5,
                         detail="export class", children=[method])
    row_id = store.upsert_file("a.py", 1.0, None)

    store.replace_symbols(row_id, [widget, method])
    loaded = store.get_symbols(row_id)

    assert [s.key for s in loaded] == [widget.key, method.key]
    assert loaded[0].detail == "export class"
    assert loaded[0].children == []


def test_replace_symbols_overwrites(store):
    row_id = store.upsert_file("a.py", 1.0, None)
    store.replace_symbols(row_id, [make_symbol("old", file_id="a.py")])

    store.replace_symbols(row_id, [make_symbol("new", file_id="a.py")])

    assert [s.name for s in store.get_symbols(row_id)] == ["new"]


def test_delete_files_not_in_cascades(store):
    keep = store.upsert_file("keep.py", 1.0, None)
    gone = store.upsert_file("gone.py", 1.0, None)
    store.replace_symbols(gone, [make_symbol("f", file_id="gone.py")])

    store.delete_files_not_in(["keep.py"])

    assert store.get_file("gone.py") is None
    assert store.get_file("keep.py")[0] == keep
    assert store.conn.execute("SELECT COUNT(*) FROM symbols").fetchone()[0] == 0


def test_transaction_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.upsert_file("a.py", 1.0, None)
            raise RuntimeError("boom")

    assert store.get_file("a.py") is None


def test_corrupt_payload_raises_value_error(store):
    row_id = store.upsert_file("a.py", 1.0, None)
    store.conn.execute("INSERT INTO symbols (file_id, key, payload) VALUES (?, ?, ?)", (row_id, "k", "{}"))
    store.conn.commit()

    with pytest.raises(ValueError):
        store.get_symbols(row_id)


def test_save_and_restore_index(tmp_path, store, index):
    write_file(tmp_path, "a.py", "def alpha(): pass\n")
    write_file(tmp_path, "b.py", "def beta(): pass\n")
    alpha = make_symbol("alpha", file_id="a.py")
    index.restore_entry("a.py", [alpha], analyzed_at=42.0)
    index.restore_entry("b.py", [make_symbol("beta", file_id="b.py")], analyzed_at=42.0)

    assert store.save_index(index, tmp_path) == 2

    restored_index = WorkspaceIndex(index.symbol_oracle, index.reference_oracle, index.classifier)
    restored = store.restore_index(restored_index, tmp_path, ["a.py", "b.py", "c.py"])

    assert restored == {"a.py", "b.py"}
    assert restored_index.entry("a.py").symbols == {alpha.key: alpha}
    assert restored_index.entry("a.py").last_analyzed_at == 42.0


def test_restore_skips_modified_files(tmp_path, store, index):
    path = write_file(tmp_path, "a.py", "def alpha(): pass\n")
    index.restore_entry("a.py", [make_symbol("alpha", file_id="a.py")])
    store.save_index(index, tmp_path)

    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 10))
    fresh = WorkspaceIndex(index.symbol_oracle, index.reference_oracle, index.classifier)

    assert store.restore_index(fresh, tmp_path, ["a.py"]) == set()
    assert fresh.files() == []


def test_save_skips_missing_files_and_prunes_rows(tmp_path, store, index):
    write_file(tmp_path, "a.py", "")
    store.upsert_file("old.py", 1.0, None)
    index.restore_entry("a.py", [])
    index.restore_entry("ghost.py", [make_symbol("ghost", file_id="ghost.py")])

    assert store.save_index(index, tmp_path) == 1
    assert store.get_file("old.py") is None
    assert store.get_file("ghost.py") is None
