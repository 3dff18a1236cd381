"""Line access to workspace files for reference classification."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class SourceReader:
    """Reads lines of workspace files, caching each file by modification time.

    Unsaved editor buffers can be registered as overlays; an overlay wins
    over the file on disk until it is cleared.
    """

    def __init__(self, root: Path):
        """Initialize the reader.

        Args:
            root: Repository root that relative file ids are resolved against.
        """
        self.root = root
        self._lines: dict[str, tuple[float, list[str]]] = {}
        self._overlays: dict[str, list[str]] = {}

    def _resolve(self, file_id: str) -> Path:
        path = Path(file_id)
        return path if path.is_absolute() else self.root / path

    def set_overlay(self, file_id: str, text: str) -> None:
        self._overlays[file_id] = text.splitlines()

    def clear_overlay(self, file_id: str) -> None:
        self._overlays.pop(file_id, None)

    def invalidate(self, file_id: str) -> None:
        self._lines.pop(file_id, None)

    def clear(self) -> None:
        self._lines.clear()
        self._overlays.clear()

    def lines(self, file_id: str) -> list[str] | None:
        """Return all lines of a file, or None if it cannot be read."""
        overlay = self._overlays.get(file_id)
        if overlay is not None:
            return overlay

        path = self._resolve(file_id)
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return None

        cached = self._lines.get(file_id)
        if cached is not None and cached[0] == mtime:
            return cached[1]

        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Cannot read {file_id}: {e}")
            return None

        lines = text.splitlines()
        self._lines[file_id] = (mtime, lines)
        return lines

    def line_at(self, file_id: str, line: int) -> str | None:
        """Return the text of one zero-indexed line, or None if unavailable."""
        lines = self.lines(file_id)
        if lines is None or not 0 <= line < len(lines):
            return None
        return lines[line]
