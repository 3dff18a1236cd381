"""SQLite snapshot of indexed symbols, reused across runs.

Asking the oracle for the symbols of every file is the slow part of a
workspace scan. The snapshot store keeps the filtered symbols per file
together with the file's modification time, so a later scan only has to
re-analyze files that changed. Effective counts are never stored: they
depend on every other file in the workspace.
"""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable
from contextlib import contextmanager
from pathlib import Path

from refcounter.index import WorkspaceIndex
from refcounter.models import SymbolDescriptor

logger = logging.getLogger(__name__)

CACHE_DIR_NAME = ".refcounter-cache"
DATABASE_NAME = "index.db"


def _file_mtime(root: Path, file_id: str) -> float | None:
    try:
        return (root / file_id).stat().st_mtime
    except OSError:
        return None


def _encode_symbol(symbol: SymbolDescriptor) -> str:
    data = symbol.to_dict()
    # Eligible children are indexed as symbols of their own
    data.pop("children", None)
    return json.dumps(data)


class IndexSnapshotStore:
    """SQLite database holding indexed symbols with file modification tracking.

    Tables:
    - files: one row per indexed file with its mtime and analysis time
    - symbols: the file's eligible symbols as JSON payloads

    Uses WAL mode and foreign keys with CASCADE delete, so removing a file
    row removes its symbols.
    """

    def __init__(self, cache_dir: Path):
        """Open (creating if needed) the snapshot database.

        Args:
            cache_dir: Directory holding the database (typically .refcounter-cache)

        Raises:
            sqlite3.Error: If the database cannot be opened or initialized.
        """
        self.cache_dir = cache_dir
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.cache_dir / DATABASE_NAME
        self.conn: sqlite3.Connection | None = None
        self._in_transaction = False
        self._lock = threading.RLock()
        self._open()

    def _open(self) -> None:
        try:
            self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=10.0)
            self.conn.execute("PRAGMA foreign_keys = ON")
            self.conn.execute("PRAGMA journal_mode = WAL")
            self.conn.execute("PRAGMA busy_timeout = 10000")
            self.create_tables()
        except sqlite3.Error as e:
            logger.error(f"Failed to open snapshot database at {self.db_path}: {e}")
            if self.conn:
                self.conn.close()
                self.conn = None
            raise

    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise RuntimeError("Database connection not initialized")
        return self.conn

    def create_tables(self) -> None:
        conn = self._connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS files (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                file_path TEXT NOT NULL UNIQUE,
                mtime REAL NOT NULL,
                analyzed_at REAL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS symbols (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                file_id INTEGER NOT NULL,
                key TEXT NOT NULL,
                payload TEXT NOT NULL,
                FOREIGN KEY (file_id) REFERENCES files(id) ON DELETE CASCADE
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_symbols_file_id ON symbols(file_id)")
        conn.commit()

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self) -> "IndexSnapshotStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @contextmanager
    def transaction(self):
        """Group several writes into one transaction.

        Nested transactions join the outermost one. On an exception the
        whole transaction is rolled back and the exception re-raised.

        Raises:
            RuntimeError: If the database connection is closed.
            sqlite3.Error: If the transaction fails.
        """
        conn = self._connection()
        with self._lock:
            was_in_transaction = self._in_transaction
            self._in_transaction = True
            try:
                yield
                if not was_in_transaction:
                    conn.commit()
            except Exception as e:
                logger.error(f"Snapshot transaction failed, rolling back: {e}")
                conn.rollback()
                raise
            finally:
                self._in_transaction = was_in_transaction

    def _commit(self) -> None:
        if not self._in_transaction:
            self._connection().commit()

    def get_file(self, file_path: str) -> tuple[int, float, float | None] | None:
        """Look up a file row.

        Returns:
            (id, mtime, analyzed_at) if the file is stored, None otherwise.
        """
        conn = self._connection()
        with self._lock:
            row = conn.execute(
                "SELECT id, mtime, analyzed_at FROM files WHERE file_path = ?",
                (file_path,),
            ).fetchone()
            return tuple(row) if row else None

    def upsert_file(self, file_path: str, mtime: float, analyzed_at: float | None) -> int:
        """Insert or update a file row and return its id."""
        conn = self._connection()
        with self._lock:
            try:
                existing = self.get_file(file_path)
                if existing is None:
                    cursor = conn.execute(
                        "INSERT INTO files (file_path, mtime, analyzed_at) VALUES (?, ?, ?)",
                        (file_path, mtime, analyzed_at),
                    )
                    row_id = cursor.lastrowid
                else:
                    row_id = existing[0]
                    conn.execute(
                        "UPDATE files SET mtime = ?, analyzed_at = ? WHERE id = ?",
                        (mtime, analyzed_at, row_id),
                    )
                self._commit()
                return row_id
            except sqlite3.Error as e:
                logger.error(f"Failed to store file {file_path}: {e}")
                if not self._in_transaction:
                    conn.rollback()
                raise

    def replace_symbols(self, row_id: int, symbols: Iterable[SymbolDescriptor]) -> None:
        """Replace the stored symbols of a file row."""
        conn = self._connection()
        with self._lock:
            try:
                conn.execute("DELETE FROM symbols WHERE file_id = ?", (row_id,))
                conn.executemany(
                    "INSERT INTO symbols (file_id, key, payload) VALUES (?, ?, ?)",
                    [(row_id, symbol.key, _encode_symbol(symbol)) for symbol in symbols],
                )
                self._commit()
            except sqlite3.Error as e:
                logger.error(f"Failed to store symbols for file row {row_id}: {e}")
                if not self._in_transaction:
                    conn.rollback()
                raise

    def get_symbols(self, row_id: int) -> list[SymbolDescriptor]:
        """Load the stored symbols of a file row, in insertion order.

        Raises:
            ValueError: If a stored payload cannot be decoded.
        """
        conn = self._connection()
        with self._lock:
            rows = conn.execute(
                "SELECT payload FROM symbols WHERE file_id = ? ORDER BY id",
                (row_id,),
            ).fetchall()

        try:
            return [SymbolDescriptor.from_dict(json.loads(payload)) for (payload,) in rows]
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Corrupt symbol payload for file row {row_id}: {e}") from e

    def delete_files_not_in(self, file_paths: Iterable[str]) -> None:
        """Delete file rows (and through CASCADE their symbols) not in the given set."""
        conn = self._connection()
        keep = set(file_paths)
        with self._lock:
            try:
                existing = {row[0] for row in conn.execute("SELECT file_path FROM files")}
                stale = list(existing - keep)
                # SQLite parameter limit
                chunk_size = 999
                for i in range(0, len(stale), chunk_size):
                    chunk = stale[i:i + chunk_size]
                    placeholders = ",".join("?" * len(chunk))
                    conn.execute(f"DELETE FROM files WHERE file_path IN ({placeholders})", chunk)
                self._commit()
            except sqlite3.Error as e:
                logger.error(f"Failed to delete stale snapshot files: {e}")
                if not self._in_transaction:
                    conn.rollback()
                raise

    def save_index(self, index: WorkspaceIndex, root: Path) -> int:
        """Write every completed index entry to the snapshot.

        Files that cannot be stat'ed and entries still being analyzed are
        skipped. Rows of files no longer in the index are deleted.

        Returns:
            Number of files written.
        """
        written = 0
        with self.transaction():
            for file_id in index.files():
                entry = index.entry(file_id)
                if entry is None or entry.is_processing:
                    continue
                mtime = _file_mtime(root, file_id)
                if mtime is None:
                    continue
                row_id = self.upsert_file(file_id, mtime, entry.last_analyzed_at)
                self.replace_symbols(row_id, entry.symbols.values())
                written += 1
            self.delete_files_not_in(index.files())

        logger.debug(f"Saved {written} files to index snapshot")
        return written

    def restore_index(self, index: WorkspaceIndex, root: Path, files: Iterable[str]) -> set[str]:
        """Fill the index from the snapshot for files that did not change.

        A file is restored only if its stored mtime equals its current one.

        Args:
            index: Index to fill.
            root: Repository root the file ids are relative to.
            files: Candidate files, typically the current workspace files.

        Returns:
            The file ids that were restored; the rest need a fresh analysis.
        """
        restored: set[str] = set()
        for file_id in files:
            stored = self.get_file(file_id)
            if stored is None:
                continue
            row_id, mtime, analyzed_at = stored
            if _file_mtime(root, file_id) != mtime:
                continue
            try:
                symbols = self.get_symbols(row_id)
            except ValueError as e:
                logger.warning(f"Ignoring snapshot for {file_id}: {e}")
                continue
            index.restore_entry(file_id, symbols, analyzed_at)
            restored.add(file_id)

        logger.debug(f"Restored {len(restored)} files from index snapshot")
        return restored
