"""Workspace-wide symbol index with memoized effective reference counts.

The index keeps, per file, the eligible symbols reported by the oracle and
the effective counts computed for them so far. Counts are computed lazily
and memoized; clear_caches() forgets them without touching the symbols, which
is what a change of counting settings (include_imports) needs.

Concurrency model: all methods run on one event loop. Two analyses of the
same file never overlap because a request for a file that is already being
analyzed is skipped (not queued). Callers never get references to the
internal maps that outlive an await.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from refcounter.aggregator import count_references
from refcounter.classifier import ReferenceClassifier
from refcounter.detector import detect_unused
from refcounter.file_cache import FileProcessingCache
from refcounter.models import SymbolDescriptor, UnusedSymbolInfo
from refcounter.oracle import (
    DEFAULT_SYMBOL_ATTEMPTS,
    DEFAULT_SYMBOL_BACKOFF,
    ReferenceOracle,
    SymbolOracle,
    fetch_definition_symbols,
    fetch_references,
)
from refcounter.progress import ProgressReporter
from refcounter.symbol_filter import filter_symbols

logger = logging.getLogger(__name__)


def _never_excluded(path: str) -> bool:
    return False


@dataclass
class CacheEntry:
    """Indexed state of one file."""
    symbols: dict[str, SymbolDescriptor] = field(default_factory=dict)
    effective_counts: dict[str, int] = field(default_factory=dict)
    last_analyzed_at: float | None = None
    is_processing: bool = False


class WorkspaceIndex:
    """Eligible symbols of every workspace file plus memoized effective counts."""

    def __init__(
        self,
        symbol_oracle: SymbolOracle,
        reference_oracle: ReferenceOracle,
        classifier: ReferenceClassifier,
        file_cache: FileProcessingCache | None = None,
        exclude: Callable[[str], bool] | None = None,
        include_imports: bool = False,
        symbol_attempts: int = DEFAULT_SYMBOL_ATTEMPTS,
        symbol_backoff: float = DEFAULT_SYMBOL_BACKOFF,
    ):
        """Initialize an empty index.

        Args:
            symbol_oracle: Source of definition symbols.
            reference_oracle: Source of reference locations.
            classifier: Import/usage classifier used when counting.
            file_cache: Processing/freshness bookkeeping, shared with the
                owner if given.
            exclude: Predicate over paths; matching files are not indexed
                and matching references are not counted.
            include_imports: Count import-style references as usages.
            symbol_attempts: Attempts against an empty symbol oracle.
            symbol_backoff: Seconds between those attempts.
        """
        self.symbol_oracle = symbol_oracle
        self.reference_oracle = reference_oracle
        self.classifier = classifier
        self.file_cache = file_cache or FileProcessingCache()
        self.exclude = exclude or _never_excluded
        self.include_imports = include_imports
        self.symbol_attempts = symbol_attempts
        self.symbol_backoff = symbol_backoff
        self._entries: dict[str, CacheEntry] = {}
        # Bumped by clear_caches() so counts computed under old settings are not stored
        self._count_generation = 0

    def __len__(self) -> int:
        return sum(len(entry.symbols) for entry in self._entries.values())

    def files(self) -> list[str]:
        return list(self._entries)

    def entry(self, file_id: str) -> CacheEntry | None:
        return self._entries.get(file_id)

    def symbols(self) -> dict[str, SymbolDescriptor]:
        """Return a copy of all indexed symbols keyed by symbol key."""
        merged: dict[str, SymbolDescriptor] = {}
        for entry in self._entries.values():
            merged.update(entry.symbols)
        return merged

    def snapshot(self) -> list[SymbolDescriptor]:
        """Return all indexed symbols in file enumeration order."""
        return [
            symbol
            for entry in list(self._entries.values())
            for symbol in list(entry.symbols.values())
        ]

    async def _analyze(self, file_id: str) -> bool:
        """Replace a file's entry with a fresh analysis.

        Returns:
            False if the file was skipped because it is already in flight.
        """
        if self.file_cache.is_processing(file_id):
            logger.debug(f"Skipping {file_id}: analysis already in progress")
            return False

        previous = self._entries.get(file_id)
        with self.file_cache.processing(file_id):
            if previous is not None:
                previous.is_processing = True
            try:
                raw_symbols = await fetch_definition_symbols(
                    self.symbol_oracle, file_id, self.symbol_attempts, self.symbol_backoff
                )
            finally:
                if previous is not None:
                    previous.is_processing = False

            # Installed only once the oracle answered; a cancelled analysis keeps the old entry
            entry = CacheEntry()
            for symbol in filter_symbols(raw_symbols):
                entry.symbols.setdefault(symbol.key, symbol)
            # remove_file() while awaiting also clears the in-flight mark
            if self.file_cache.is_processing(file_id):
                self._entries[file_id] = entry

        entry.last_analyzed_at = self.file_cache.last_analyzed_at(file_id)
        logger.debug(f"Indexed {len(entry.symbols)} symbols in {file_id}")
        return True

    async def rebuild(
        self,
        files: Iterable[str],
        reporter: ProgressReporter | None = None,
    ) -> dict[str, SymbolDescriptor]:
        """(Re)analyze a set of files.

        Files are processed in the given order. Cancellation through the
        reporter is checked between files; files analyzed before that keep
        their fresh entries.

        Args:
            files: Workspace-relative paths. Excluded paths are skipped.
            reporter: Optional progress reporter and cancellation signal.

        Returns:
            All symbols in the index after the rebuild.
        """
        targets = [file_id for file_id in files if not self.exclude(file_id)]
        if reporter is not None:
            reporter.set_total_items(len(targets))

        for position, file_id in enumerate(targets):
            if reporter is not None and reporter.is_cancelled():
                logger.info(f"Index rebuild cancelled after {position} of {len(targets)} files")
                break

            try:
                await self._analyze(file_id)
            except Exception as e:
                logger.error(f"Error indexing {file_id}: {e}")

            if reporter is not None:
                reporter.report(f"Processed {PurePosixPath(file_id).name}")

        return self.symbols()

    def retain(self, files: Iterable[str]) -> list[str]:
        """Drop entries of files that are not in the given set.

        Returns:
            The file ids that were dropped.
        """
        keep = set(files)
        dropped = [file_id for file_id in self._entries if file_id not in keep]
        for file_id in dropped:
            self.remove_file(file_id)
        return dropped

    async def update_file(self, file_id: str) -> bool:
        """Re-analyze a single file, leaving every other entry untouched.

        Returns:
            True if the file was re-analyzed, False if it was skipped
            (excluded, or already being analyzed).
        """
        if self.exclude(file_id):
            self.remove_file(file_id)
            return False
        return await self._analyze(file_id)

    def remove_file(self, file_id: str) -> None:
        if self._entries.pop(file_id, None) is not None:
            logger.debug(f"Removed {file_id} from index")
        self.file_cache.remove(file_id)

    def restore_entry(
        self,
        file_id: str,
        symbols: Iterable[SymbolDescriptor],
        analyzed_at: float | None = None,
    ) -> None:
        """Install previously analyzed symbols for a file without asking the oracle."""
        entry = CacheEntry(last_analyzed_at=analyzed_at)
        for symbol in symbols:
            entry.symbols.setdefault(symbol.key, symbol)
        self._entries[file_id] = entry

    def cached_count(self, file_id: str, key: str) -> int | None:
        entry = self._entries.get(file_id)
        if entry is None:
            return None
        return entry.effective_counts.get(key)

    async def effective_count(self, file_id: str, key: str) -> int:
        """Return a symbol's effective count, computing and memoizing it if needed.

        Raises:
            KeyError: If the symbol is not indexed.
        """
        entry = self._entries.get(file_id)
        if entry is None or key not in entry.symbols:
            raise KeyError(f"Symbol not indexed: {key}")

        cached = entry.effective_counts.get(key)
        if cached is not None:
            return cached

        symbol = entry.symbols[key]
        generation = self._count_generation
        references = await fetch_references(self.reference_oracle, symbol, include_declaration=True)
        count = count_references(
            symbol, references, self.exclude, self.include_imports, self.classifier
        )

        # The entry may have been replaced or the settings changed while awaiting
        if self._entries.get(file_id) is entry and generation == self._count_generation:
            entry.effective_counts[key] = count
        return count

    async def get_unused(self, reporter: ProgressReporter | None = None) -> list[UnusedSymbolInfo]:
        """Return every indexed symbol whose effective count is zero."""
        return await detect_unused(self, reporter)

    def clear_caches(self) -> None:
        """Forget all memoized counts; indexed symbols stay."""
        self._count_generation += 1
        for entry in self._entries.values():
            entry.effective_counts.clear()

    def is_stale(self, file_id: str, cooldown_ms: float) -> bool:
        return self.file_cache.should_reanalyze(file_id, cooldown_ms)

    async def refresh_if_stale(self, file_id: str, cooldown_ms: float) -> bool:
        """Re-analyze a file only if its last analysis is older than the cooldown."""
        if not self.is_stale(file_id, cooldown_ms):
            return False
        return await self.update_file(file_id)
