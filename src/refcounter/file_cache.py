"""Processing and freshness bookkeeping per file.

Only bookkeeping lives here: which files are being analyzed right now and
when each was last analyzed. Symbol data and counts belong to the
workspace index.
"""

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager


class FileProcessingCache:
    """Tracks in-flight analyses and last-analysis timestamps.

    The in-flight set is an advisory guard used to skip duplicate concurrent
    analyses of one file; it is not a lock.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._processing: set[str] = set()
        self._last_analyzed: dict[str, float] = {}

    def is_processing(self, file_id: str) -> bool:
        return file_id in self._processing

    def mark_processing(self, file_id: str) -> None:
        self._processing.add(file_id)

    def mark_done(self, file_id: str, analyzed: bool = True) -> None:
        """Clear the in-flight mark, recording the analysis time if it completed."""
        self._processing.discard(file_id)
        if analyzed:
            self._last_analyzed[file_id] = self._clock()

    @contextmanager
    def processing(self, file_id: str) -> Iterator[None]:
        """Mark a file as in flight for the duration of the block.

        The analysis time is recorded only if the block completes; an
        exception or cancellation leaves the previous timestamp untouched.

        Usage:
            with file_cache.processing("src/app.py"):
                await analyze("src/app.py")
        """
        self.mark_processing(file_id)
        completed = False
        try:
            yield
            completed = True
        finally:
            self.mark_done(file_id, analyzed=completed)

    def last_analyzed_at(self, file_id: str) -> float | None:
        return self._last_analyzed.get(file_id)

    def should_reanalyze(self, file_id: str, cooldown_ms: float) -> bool:
        """Check whether a file is due for analysis.

        Args:
            file_id: File to check
            cooldown_ms: Minimum age in milliseconds of the last analysis

        Returns:
            True if the file was never analyzed or the cooldown has elapsed
        """
        last = self._last_analyzed.get(file_id)
        if last is None:
            return True
        return (self._clock() - last) * 1000 > cooldown_ms

    def remove(self, file_id: str) -> None:
        self._processing.discard(file_id)
        self._last_analyzed.pop(file_id, None)

    def clear(self) -> None:
        self._processing.clear()
        self._last_analyzed.clear()
