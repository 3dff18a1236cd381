"""Progress reporting and cooperative cancellation for workspace scans."""

import time
from collections.abc import Callable

ProgressCallback = Callable[[int, int, str], None]


class ProgressReporter:
    """Counts processed items, forwards throttled updates and carries a cancel flag.

    Long-running scans call report() once per unit of work and check
    is_cancelled() before starting the next unit. Cancellation is therefore
    coarse-grained: the unit in flight always finishes.
    """

    def __init__(
        self,
        total_items: int = 0,
        on_progress: ProgressCallback | None = None,
        throttle_ms: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the reporter.

        Args:
            total_items: Expected number of items; scans usually reset it.
            on_progress: Called with (processed, total, message).
            throttle_ms: Minimum interval between two forwarded updates. The
                update for the last item is always forwarded.
            clock: Time source in seconds.
        """
        self.total_items = total_items
        self.processed_items = 0
        self._on_progress = on_progress
        self._throttle = throttle_ms / 1000
        self._clock = clock
        self._last_report: float | None = None
        self._cancelled = False

    def set_total_items(self, total_items: int) -> None:
        """Start a new phase with a new item count."""
        self.total_items = total_items
        self.processed_items = 0
        self._last_report = None

    def report(self, message: str = "") -> None:
        self.processed_items += 1
        if self._on_progress is None:
            return

        now = self._clock()
        is_last = self.processed_items >= self.total_items
        if (
            not is_last
            and self._last_report is not None
            and now - self._last_report < self._throttle
        ):
            return

        self._last_report = now
        if not message:
            message = f"{self.processed_items}/{self.total_items} ({self.percentage}%)"
        self._on_progress(self.processed_items, self.total_items, message)

    @property
    def percentage(self) -> int:
        if self.total_items <= 0:
            return 100
        return round(self.processed_items / self.total_items * 100)

    def cancel(self) -> None:
        self._cancelled = True

    def is_cancelled(self) -> bool:
        return self._cancelled
