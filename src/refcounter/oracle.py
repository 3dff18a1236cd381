"""Contracts for the external symbol/reference oracle and helpers around them.

The oracle is whatever answers "which definitions are in this file" and
"where is this symbol referenced" (typically a language server). The
engine only talks to it through the two abstract classes below.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from refcounter.models import Position, Range, ReferenceLocation, SymbolDescriptor

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL_ATTEMPTS = 3
DEFAULT_SYMBOL_BACKOFF = 0.3


class SymbolOracle(ABC):
    """Source of definition symbols for a file."""

    @abstractmethod
    async def get_definition_symbols(self, file_id: str) -> list[SymbolDescriptor]:
        """Return the definition symbols of a file, as a tree.

        Args:
            file_id: Workspace-relative path of the file

        Returns:
            Top-level symbols; class members appear as children. May be
            empty, including transiently while the oracle warms up.
        """
        pass


class ReferenceOracle(ABC):
    """Source of reference locations for a symbol."""

    @abstractmethod
    async def get_references(
        self,
        file_id: str,
        position: Position,
        include_declaration: bool,
    ) -> list[ReferenceLocation]:
        """Return every location referencing the symbol at a position.

        Args:
            file_id: File holding the symbol
            position: Start of the symbol's name
            include_declaration: Also return the declaration itself

        Returns:
            Reference locations across the workspace
        """
        pass


async def fetch_definition_symbols(
    oracle: SymbolOracle,
    file_id: str,
    attempts: int = DEFAULT_SYMBOL_ATTEMPTS,
    backoff: float = DEFAULT_SYMBOL_BACKOFF,
) -> list[SymbolDescriptor]:
    """Ask the oracle for a file's symbols, retrying empty or failed answers.

    Oracles backed by a language server often answer with nothing until the
    server has loaded the file, so an empty result is retried up to
    ``attempts`` times with a fixed ``backoff`` between tries. After the
    last attempt an empty result is accepted as the answer.

    Args:
        oracle: Symbol oracle to query.
        file_id: File to get symbols for.
        attempts: Total number of attempts, at least 1.
        backoff: Seconds to wait between attempts.

    Returns:
        The symbols from the first non-empty answer, or an empty list.
    """
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            symbols = await oracle.get_definition_symbols(file_id)
        except Exception as e:
            logger.warning(f"Symbol lookup failed for {file_id} (attempt {attempt}/{attempts}): {e}")
            symbols = None

        if symbols:
            return list(symbols)

        if attempt < attempts:
            await asyncio.sleep(backoff)

    logger.debug(f"No symbols found for {file_id} after {attempts} attempts")
    return []


async def fetch_references(
    oracle: ReferenceOracle,
    symbol: SymbolDescriptor,
    include_declaration: bool = False,
) -> list[ReferenceLocation]:
    """Ask the oracle for a symbol's references.

    A failing oracle call is logged and treated as "no references found"
    for this symbol only.
    """
    try:
        references = await oracle.get_references(
            symbol.file_id, symbol.selection_range.start, include_declaration
        )
    except Exception as e:
        logger.warning(f"Reference lookup failed for {symbol.key}: {e}")
        return []
    return list(references or [])


class SnapshotError(Exception):
    """Raised when an oracle snapshot cannot be loaded."""


class SnapshotOracle(SymbolOracle, ReferenceOracle):
    """Oracle answering from a JSON dump of earlier oracle output.

    Lets the engine run outside an editor, against results recorded from a
    language server. Expected structure:

    ```json
    {
      "files": {
        "src/app.py": {"symbols": [{"name": "greet", "kind": "function",
                                    "range": [0, 0, 2, 10],
                                    "selection": [0, 4, 0, 9]}]}
      },
      "references": [
        {"file": "src/app.py", "position": [0, 4],
         "locations": [{"file": "src/main.py", "range": [3, 0, 3, 5]}]}
      ]
    }
    ```
    """

    def __init__(self, data: dict[str, Any]):
        """Initialize from already-decoded snapshot data.

        Raises:
            SnapshotError: If the data does not have the expected structure.
        """
        try:
            files = data.get("files", {})
            self._symbols: dict[str, list[SymbolDescriptor]] = {
                file_id: [
                    SymbolDescriptor.from_dict(item, file_id)
                    for item in (entry or {}).get("symbols", [])
                ]
                for file_id, entry in files.items()
            }
            self._references: dict[tuple[str, Position], list[ReferenceLocation]] = {}
            for item in data.get("references", []):
                key = (item["file"], Position.from_list(item["position"]))
                locations = [ReferenceLocation.from_dict(loc) for loc in item.get("locations", [])]
                self._references.setdefault(key, []).extend(locations)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise SnapshotError(f"Malformed oracle snapshot: {e}") from e

    @classmethod
    def from_file(cls, path: Path) -> "SnapshotOracle":
        """Load a snapshot from a JSON file.

        Raises:
            SnapshotError: If the file is missing or not valid JSON.
        """
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise SnapshotError(f"Oracle snapshot not found: {path}") from e
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SnapshotError(f"Cannot read oracle snapshot {path}: {e}") from e

        if not isinstance(data, dict):
            raise SnapshotError(f"Oracle snapshot {path} must contain a JSON object")
        return cls(data)

    def files(self) -> list[str]:
        return sorted(self._symbols)

    async def get_definition_symbols(self, file_id: str) -> list[SymbolDescriptor]:
        return list(self._symbols.get(file_id, []))

    async def get_references(
        self,
        file_id: str,
        position: Position,
        include_declaration: bool,
    ) -> list[ReferenceLocation]:
        references = list(self._references.get((file_id, position), []))
        if include_declaration:
            references.insert(0, ReferenceLocation(file_id, Range(position, position)))
        return references
