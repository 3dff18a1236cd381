"""Debounced scheduling of accounting passes, one pending pass per editor."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_DELAY = 0.5

PassCallback = Callable[[str], Awaitable[None]]


class UpdateScheduler:
    """Coalesces bursts of edits into one accounting pass per editor.

    Each editor has at most one pending task. Scheduling again cancels the
    pending task and starts a new delay, so only the last edit of a burst
    triggers a pass.
    """

    def __init__(self, callback: PassCallback, delay: float = DEFAULT_DEBOUNCE_DELAY):
        """Initialize the scheduler.

        Args:
            callback: Coroutine function run with the file id when a pass is due.
            delay: Debounce delay in seconds.
        """
        self.callback = callback
        self.delay = delay
        self._pending: dict[str, asyncio.Task] = {}

    def schedule(self, editor_id: str, file_id: str) -> asyncio.Task:
        """Schedule a pass for a file after the debounce delay.

        Must be called from within a running event loop.

        Returns:
            The task that will run the pass.
        """
        self.cancel(editor_id)
        task = asyncio.get_running_loop().create_task(self._run_later(editor_id, file_id))
        self._pending[editor_id] = task
        return task

    async def _run_later(self, editor_id: str, file_id: str) -> None:
        try:
            await asyncio.sleep(self.delay)
            await self.callback(file_id)
        finally:
            if self._pending.get(editor_id) is asyncio.current_task():
                del self._pending[editor_id]

    async def schedule_immediate(self, editor_id: str, file_id: str) -> None:
        """Cancel any pending pass for the editor and run one now."""
        self.cancel(editor_id)
        await self.callback(file_id)

    def cancel(self, editor_id: str) -> bool:
        """Cancel the editor's pending pass, if any.

        Returns:
            True if a pending pass was cancelled.
        """
        task = self._pending.pop(editor_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"Cancelled pending pass for editor {editor_id}")
        return True

    def cancel_all(self) -> None:
        for editor_id in list(self._pending):
            self.cancel(editor_id)

    def is_pending(self, editor_id: str) -> bool:
        task = self._pending.get(editor_id)
        return task is not None and not task.done()
