"""Workspace-wide unused symbol detection and reporting helpers."""

import logging
from collections import Counter
from collections.abc import Iterable
from typing import TYPE_CHECKING

from refcounter.models import UnusedSymbolInfo
from refcounter.progress import ProgressReporter

if TYPE_CHECKING:
    from refcounter.index import WorkspaceIndex

logger = logging.getLogger(__name__)


async def detect_unused(
    index: "WorkspaceIndex",
    reporter: ProgressReporter | None = None,
) -> list[UnusedSymbolInfo]:
    """Find every indexed symbol whose effective count is zero.

    Works on a snapshot of the index taken up front, so files re-analyzed
    while detection runs do not disturb the walk. Counts computed here are
    memoized in the index.

    Args:
        index: Index to scan.
        reporter: Optional progress reporter; cancellation is checked before
            each symbol and progress is reported after it.

    Returns:
        Unused symbols in index order. Partial if cancelled.
    """
    symbols = index.snapshot()
    if reporter is not None:
        reporter.set_total_items(len(symbols))

    unused: list[UnusedSymbolInfo] = []
    for position, symbol in enumerate(symbols):
        if reporter is not None and reporter.is_cancelled():
            logger.info(f"Unused symbol detection cancelled after {position} of {len(symbols)} symbols")
            break

        try:
            count = await index.effective_count(symbol.file_id, symbol.key)
        except KeyError:
            # File was re-analyzed or removed since the snapshot
            count = None

        if count is not None and count <= 0:
            unused.append(UnusedSymbolInfo(symbol=symbol, reference_count=count))

        if reporter is not None:
            reporter.report(f"Analyzing {symbol.name}")

    logger.info(f"Found {len(unused)} unused symbols out of {len(symbols)}")
    return unused


def sort_unused(items: Iterable[UnusedSymbolInfo]) -> list[UnusedSymbolInfo]:
    return sorted(items, key=lambda item: (item.file_id, item.line, item.name))


def group_unused_by_file(items: Iterable[UnusedSymbolInfo]) -> dict[str, list[UnusedSymbolInfo]]:
    """Group unused symbols by file, keeping the order they arrive in."""
    groups: dict[str, list[UnusedSymbolInfo]] = {}
    for item in items:
        groups.setdefault(item.file_id, []).append(item)
    return groups


def summarize(items: Iterable[UnusedSymbolInfo]) -> dict[str, int]:
    """Count unused symbols per kind, e.g. {"function": 3, "class": 1}."""
    return dict(Counter(item.kind.value for item in items))
