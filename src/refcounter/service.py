"""Composition root tying the reference counting services together.

A host (editor integration, command line tool, tests) creates one
ReferenceCounter per workspace and forwards its events to it. Everything
the counter needs is created here and owned by the instance.
"""

import logging
import sqlite3
import time
from collections.abc import Callable
from pathlib import Path

from refcounter.classifier import ReferenceClassifier
from refcounter.config import RefCounterConfig
from refcounter.detector import sort_unused
from refcounter.file_cache import FileProcessingCache
from refcounter.index import WorkspaceIndex
from refcounter.models import UnusedSymbolInfo
from refcounter.oracle import ReferenceOracle, SymbolOracle
from refcounter.progress import ProgressReporter
from refcounter.scheduler import UpdateScheduler
from refcounter.session import ActiveFileSession
from refcounter.snapshot import CACHE_DIR_NAME, IndexSnapshotStore
from refcounter.source import SourceReader
from refcounter.workspace import find_source_files

logger = logging.getLogger(__name__)

UpdateListener = Callable[[str], None]


class ReferenceCounter:
    """Reference counting for one workspace.

    Owns the source reader, classifier, processing cache, workspace index,
    active-file session and update scheduler. Event methods ignore files
    with unsupported extensions and files matching the exclude patterns.
    """

    def __init__(
        self,
        root: Path,
        config: RefCounterConfig,
        symbol_oracle: SymbolOracle,
        reference_oracle: ReferenceOracle,
        clock: Callable[[], float] = time.time,
        use_snapshot: bool = False,
    ):
        """Create the counter and its services.

        Args:
            root: Repository root; file ids are POSIX paths relative to it.
            config: Counting settings.
            symbol_oracle: Source of definition symbols.
            reference_oracle: Source of reference locations.
            clock: Time source for analysis timestamps.
            use_snapshot: Reuse and update the SQLite symbol snapshot in
                .refcounter-cache during workspace scans.
        """
        self.root = root
        self.config = config
        self.use_snapshot = use_snapshot
        self.exclude = config.exclude_predicate()
        self.include_imports = config.include_imports

        self.source = SourceReader(root)
        self.classifier = ReferenceClassifier(self.source)
        self.file_cache = FileProcessingCache(clock)
        self.index = WorkspaceIndex(
            symbol_oracle,
            reference_oracle,
            self.classifier,
            file_cache=self.file_cache,
            exclude=self.exclude,
            include_imports=self.include_imports,
            symbol_attempts=config.symbol_retry_attempts,
            symbol_backoff=config.retry_backoff,
        )
        self.session = ActiveFileSession(
            symbol_oracle,
            reference_oracle,
            self.classifier,
            symbol_attempts=config.symbol_retry_attempts,
            symbol_backoff=config.retry_backoff,
        )
        self.scheduler = UpdateScheduler(self._run_pass, delay=config.debounce_delay)

        self._unused: list[UnusedSymbolInfo] = []
        self._listeners: list[UpdateListener] = []

    def accepts(self, file_id: str) -> bool:
        """Check whether events for a file are handled at all."""
        return self.config.is_file_supported(file_id) and not self.exclude(file_id)

    # Workspace scan

    async def scan_workspace(self, reporter: ProgressReporter | None = None) -> list[UnusedSymbolInfo]:
        """Index the workspace and find unused symbols.

        Enumerates supported files, drops index entries of files that are
        gone, (re)analyzes the rest and runs unused symbol detection. With
        use_snapshot, files unchanged since the last saved snapshot are
        restored instead of analyzed; snapshot failures fall back to a full
        analysis.

        Args:
            reporter: Optional progress reporter; cancelling it during
                indexing stops the file loop, and unused symbols are then
                reported for the files indexed so far.

        Returns:
            Unused symbols sorted by file, line and name.
        """
        files = find_source_files(self.root, self.config.file_extensions, self.exclude)
        self.index.retain(files)
        logger.info(f"Scanning {len(files)} files in {self.root}")

        pending = files
        if self.use_snapshot:
            restored = self._restore_snapshot(files)
            pending = [file_id for file_id in files if file_id not in restored]

        await self.index.rebuild(pending, reporter)
        cancelled = reporter is not None and reporter.is_cancelled()

        if self.use_snapshot and not cancelled:
            self._save_snapshot()

        # After a cancelled rebuild, detection still runs over the files indexed so far
        unused = await self.index.get_unused(None if cancelled else reporter)
        self._unused = sort_unused(unused)
        return list(self._unused)

    def _restore_snapshot(self, files: list[str]) -> set[str]:
        try:
            with IndexSnapshotStore(self.root / CACHE_DIR_NAME) as store:
                return store.restore_index(self.index, self.root, files)
        except (sqlite3.Error, RuntimeError, OSError) as e:
            logger.warning(f"Snapshot restore failed ({e}), analyzing all files")
            return set()

    def _save_snapshot(self) -> None:
        try:
            with IndexSnapshotStore(self.root / CACHE_DIR_NAME) as store:
                store.save_index(self.index, self.root)
        except (sqlite3.Error, RuntimeError, OSError) as e:
            logger.warning(f"Snapshot save failed ({e}), continuing without it")

    def get_unused_symbols(self) -> list[UnusedSymbolInfo]:
        """Unused symbols found by the last workspace scan."""
        return list(self._unused)

    async def get_effective_count(self, file_id: str, key: str) -> int | None:
        """Effective count of an indexed symbol, or None if it is not indexed."""
        try:
            return await self.index.effective_count(file_id, key)
        except KeyError:
            return None

    # Active-file accounting

    def on_updated(self, listener: UpdateListener) -> Callable[[], None]:
        """Register a listener called with the file id after each accounting pass.

        Returns:
            A function that unregisters the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _run_pass(self, file_id: str) -> None:
        if await self.session.collect(file_id):
            self._notify(file_id)

    def _notify(self, file_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(file_id)
            except Exception as e:
                logger.error(f"Update listener failed for {file_id}: {e}")

    def active_counts(self) -> dict[str, int]:
        """Effective counts of the active file's symbols, keyed by symbol key."""
        return self.session.counts(self.exclude, self.include_imports)

    # Host events

    def file_changed(self, editor_id: str, file_id: str, text: str | None = None) -> bool:
        """Handle an edit: record unsaved text and schedule a debounced pass.

        Must be called from a running event loop.

        Returns:
            True if a pass was scheduled.
        """
        if not self.accepts(file_id):
            return False
        if text is not None:
            self.source.set_overlay(file_id, text)
        self.scheduler.schedule(editor_id, file_id)
        return True

    async def file_activated(self, editor_id: str, file_id: str) -> None:
        """Handle a file becoming the active editor.

        Re-indexes the file if its last analysis is older than the reanalyze
        cooldown, then runs an accounting pass right away.
        """
        if not self.accepts(file_id):
            return
        await self.index.refresh_if_stale(file_id, self.config.reanalyze_cooldown_ms)
        await self.scheduler.schedule_immediate(editor_id, file_id)

    async def file_saved(self, editor_id: str, file_id: str) -> None:
        """Handle a save: re-index just this file and run an accounting pass now."""
        if not self.accepts(file_id):
            return
        self.source.clear_overlay(file_id)
        self.source.invalidate(file_id)
        await self.index.update_file(file_id)
        await self.scheduler.schedule_immediate(editor_id, file_id)

    def file_closed(self, file_id: str) -> None:
        self.source.clear_overlay(file_id)
        if self.session.file_id == file_id:
            self.session.reset()

    def file_deleted(self, file_id: str) -> None:
        """Forget everything known about a deleted file."""
        self.source.clear_overlay(file_id)
        self.source.invalidate(file_id)
        self.index.remove_file(file_id)
        self._unused = [item for item in self._unused if item.file_id != file_id]
        if self.session.file_id == file_id:
            self.session.reset()

    async def set_include_imports(
        self,
        value: bool,
        editor_id: str | None = None,
        file_id: str | None = None,
    ) -> None:
        """Switch import counting on or off.

        Memoized counts are dropped; indexed symbols are kept, so no rebuild
        happens. If an active editor is given, its file gets a pass right away.
        """
        self.include_imports = value
        self.config = self.config.with_overrides(include_imports=value)
        self.index.include_imports = value
        self.index.clear_caches()

        if editor_id is not None and file_id is not None and self.accepts(file_id):
            await self.scheduler.schedule_immediate(editor_id, file_id)

    def close(self) -> None:
        """Cancel pending passes and drop cached file contents."""
        self.scheduler.cancel_all()
        self.source.clear()
        self._listeners.clear()
