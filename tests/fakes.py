"""In-memory oracle and builders shared by the test modules."""

import asyncio
from pathlib import Path

from refcounter.models import Position, Range, ReferenceLocation, SymbolDescriptor, SymbolKind
from refcounter.oracle import ReferenceOracle, SymbolOracle


def make_symbol(
    name: str,
    file_id: str = "src/app.py",
    line: int = 0,
    kind: SymbolKind = SymbolKind.FUNCTION,
    end_line: int | None = None,
    character: int = 4,
    detail: str = "",
    children: list[SymbolDescriptor] | None = None,
) -> SymbolDescriptor:
    """Build a symbol whose name starts at line/character and whose body ends at end_line."""
    end = end_line if end_line is not None else line + 2
    return SymbolDescriptor(
        name=name,
        kind=kind,
        range=Range(Position(line, 0), Position(end, 80)),
        selection_range=Range.at(line, character, len(name)),
        file_id=file_id,
        detail=detail,
        children=children or [],
    )


def ref(file_id: str, line: int, character: int = 0, length: int = 3) -> ReferenceLocation:
    return ReferenceLocation(file_id, Range.at(line, character, length))


def write_file(root: Path, file_id: str, text: str) -> Path:
    path = root / file_id
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class FakeOracle(SymbolOracle, ReferenceOracle):
    """Scriptable oracle recording every call it receives."""

    def __init__(self):
        self.symbols: dict[str, list[SymbolDescriptor]] = {}
        self.references: dict[tuple[str, Position], list[ReferenceLocation]] = {}
        self.symbol_calls: list[str] = []
        self.reference_calls: list[tuple[str, Position, bool]] = []
        self.failing_files: set[str] = set()
        self.failing_symbols: set[str] = set()
        self.empty_answers: dict[str, int] = {}
        self.symbol_gates: dict[str, asyncio.Event] = {}

    def add_file(self, file_id: str, *symbols: SymbolDescriptor) -> None:
        self.symbols[file_id] = list(symbols)

    def add_references(self, symbol: SymbolDescriptor, *locations: ReferenceLocation) -> None:
        key = (symbol.file_id, symbol.selection_range.start)
        self.references.setdefault(key, []).extend(locations)

    async def get_definition_symbols(self, file_id: str) -> list[SymbolDescriptor]:
        self.symbol_calls.append(file_id)
        gate = self.symbol_gates.get(file_id)
        if gate is not None:
            await gate.wait()
        if file_id in self.failing_files:
            raise RuntimeError("language server not ready")
        remaining = self.empty_answers.get(file_id, 0)
        if remaining > 0:
            self.empty_answers[file_id] = remaining - 1
            return []
        return list(self.symbols.get(file_id, []))

    async def get_references(
        self,
        file_id: str,
        position: Position,
        include_declaration: bool,
    ) -> list[ReferenceLocation]:
        self.reference_calls.append((file_id, position, include_declaration))
        await asyncio.sleep(0)
        for name in self.failing_symbols:
            if any(
                s.name == name and s.selection_range.start == position
                for s in self.symbols.get(file_id, [])
            ):
                raise RuntimeError(f"reference lookup failed for {name}")
        references = list(self.references.get((file_id, position), []))
        if include_declaration:
            references.insert(0, ReferenceLocation(file_id, Range(position, position)))
        return references
