"""Reference accounting for the file currently open in the editor.

A session holds the symbols of one active file together with their raw,
import and usage references, so per-symbol counts can be rendered next to
the code. Each pass replaces the previous one; a pass that is overtaken by
a newer one never writes its results.
"""

import logging
from collections.abc import Callable
from enum import Enum

from refcounter.aggregator import count_references
from refcounter.classifier import ReferenceClassifier
from refcounter.models import ReferenceLocation, SymbolDescriptor
from refcounter.oracle import (
    DEFAULT_SYMBOL_ATTEMPTS,
    DEFAULT_SYMBOL_BACKOFF,
    ReferenceOracle,
    SymbolOracle,
    fetch_definition_symbols,
    fetch_references,
)
from refcounter.symbol_filter import filter_symbols

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    READY = "ready"


class ActiveFileSession:
    """Per-symbol reference data for the active file."""

    def __init__(
        self,
        symbol_oracle: SymbolOracle,
        reference_oracle: ReferenceOracle,
        classifier: ReferenceClassifier,
        symbol_attempts: int = DEFAULT_SYMBOL_ATTEMPTS,
        symbol_backoff: float = DEFAULT_SYMBOL_BACKOFF,
    ):
        self.symbol_oracle = symbol_oracle
        self.reference_oracle = reference_oracle
        self.classifier = classifier
        self.symbol_attempts = symbol_attempts
        self.symbol_backoff = symbol_backoff

        self.file_id: str | None = None
        self.state = SessionState.IDLE
        self.symbols: dict[str, SymbolDescriptor] = {}
        self.references: dict[str, list[ReferenceLocation]] = {}
        self.imports: dict[str, list[ReferenceLocation]] = {}
        self.usages: dict[str, list[ReferenceLocation]] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def begin(self, file_id: str) -> int:
        """Start a new pass for a file, discarding any previous results.

        Calling begin() while a pass is collecting is allowed; the older pass
        is superseded.

        Returns:
            Token identifying this pass.
        """
        self.file_id = file_id
        self.symbols.clear()
        self.references.clear()
        self.imports.clear()
        self.usages.clear()
        self.state = SessionState.COLLECTING
        self._generation += 1
        return self._generation

    def finish(self) -> None:
        self.state = SessionState.READY

    def reset(self) -> None:
        """Forget the active file entirely."""
        self.begin("")
        self.file_id = None
        self.state = SessionState.IDLE

    async def collect(self, file_id: str) -> bool:
        """Run a full accounting pass for a file.

        Symbols are fetched with retry and filtered; then, in filter order,
        each symbol's references are fetched (declaration excluded) and
        split into imports and usages.

        Args:
            file_id: File to account.

        Returns:
            True if this pass completed and its results are stored, False if
            a newer pass started while this one was waiting on the oracle.
        """
        token = self.begin(file_id)

        raw_symbols = await fetch_definition_symbols(
            self.symbol_oracle, file_id, self.symbol_attempts, self.symbol_backoff
        )
        if token != self._generation:
            return False

        collected: list[tuple[SymbolDescriptor, list[ReferenceLocation]]] = []
        for symbol in filter_symbols(raw_symbols):
            references = await fetch_references(
                self.reference_oracle, symbol, include_declaration=False
            )
            if token != self._generation:
                logger.debug(f"Accounting pass for {file_id} superseded")
                return False
            collected.append((symbol, references))

        for symbol, references in collected:
            key = symbol.key
            classified = self.classifier.categorize(references)
            self.symbols[key] = symbol
            self.references[key] = references
            self.imports[key] = classified.imports
            self.usages[key] = classified.usages

        self.finish()
        logger.debug(f"Accounted {len(self.symbols)} symbols in {file_id}")
        return True

    def reference_count(
        self,
        key: str,
        exclude: Callable[[str], bool],
        include_imports: bool,
    ) -> int | None:
        """Effective count of one symbol of the active file, or None if unknown."""
        symbol = self.symbols.get(key)
        if symbol is None:
            return None
        return count_references(
            symbol, self.references.get(key, []), exclude, include_imports, self.classifier
        )

    def counts(self, exclude: Callable[[str], bool], include_imports: bool) -> dict[str, int]:
        """Effective counts of all symbols of the active file, keyed by symbol key."""
        return {key: self.reference_count(key, exclude, include_imports) for key in self.symbols}
