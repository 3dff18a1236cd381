from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True, order=True)
class Position:
    """A zero-indexed position in a source file."""
    line: int
    character: int

    def to_list(self) -> list[int]:
        return [self.line, self.character]

    @classmethod
    def from_list(cls, values: list[int]) -> "Position":
        line, character = values
        return cls(line=int(line), character=int(character))


@dataclass(frozen=True)
class Range:
    """A span between two positions, both ends inclusive."""
    start: Position
    end: Position

    def contains_position(self, position: Position) -> bool:
        return self.start <= position <= self.end

    def contains(self, other: "Range") -> bool:
        """Check whether another range lies entirely inside this one."""
        return self.contains_position(other.start) and self.contains_position(other.end)

    def to_list(self) -> list[int]:
        return [self.start.line, self.start.character, self.end.line, self.end.character]

    @classmethod
    def from_list(cls, values: list[int]) -> "Range":
        start_line, start_char, end_line, end_char = values
        return cls(
            start=Position(int(start_line), int(start_char)),
            end=Position(int(end_line), int(end_char)),
        )

    @classmethod
    def at(cls, line: int, character: int, length: int = 0) -> "Range":
        """Build a single-line range starting at line/character."""
        return cls(Position(line, character), Position(line, character + length))


class SymbolKind(str, Enum):
    """Kinds of symbols an oracle may report.

    Only FUNCTION, METHOD and CLASS take part in reference accounting; the
    rest exist so oracle output can be represented without loss.
    """
    FUNCTION = "function"
    METHOD = "method"
    CLASS = "class"
    VARIABLE = "variable"
    CONSTANT = "constant"
    PROPERTY = "property"
    FIELD = "field"
    MODULE = "module"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str) -> "SymbolKind":
        try:
            return cls(value.lower())
        except ValueError:
            return cls.OTHER


class ReferenceClass(str, Enum):
    """Whether a reference is an import-style mention or a real usage."""
    IMPORT = "import"
    USAGE = "usage"


def symbol_key(file_id: str, name: str, position: Position) -> str:
    """Build the identity key of a symbol definition.

    Format: {file_id}:{name}:{line}:{character}
    Example: src/app.py:greet:3:4
    """
    return f"{file_id}:{name}:{position.line}:{position.character}"


@dataclass
class SymbolDescriptor:
    """A definition reported by the symbol oracle."""
    name: str
    kind: SymbolKind
    range: Range                    # Full definition extent
    selection_range: Range          # The name itself
    file_id: str                    # Workspace-relative POSIX path
    detail: str = ""                # Oracle detail text (e.g. "export function")
    children: list["SymbolDescriptor"] = field(default_factory=list)

    @property
    def key(self) -> str:
        return symbol_key(self.file_id, self.name, self.selection_range.start)

    @property
    def position(self) -> Position:
        return self.selection_range.start

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind.value,
            "range": self.range.to_list(),
            "selection": self.selection_range.to_list(),
            "file": self.file_id,
        }
        if self.detail:
            data["detail"] = self.detail
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], file_id: str | None = None) -> "SymbolDescriptor":
        """Build a descriptor from its JSON form.

        Args:
            data: Mapping with name, kind, range and optional selection,
                detail and children keys.
            file_id: Owning file. Overrides any "file" key in data; children
                inherit it.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If a range is malformed.
        """
        owner = file_id if file_id is not None else data["file"]
        definition = Range.from_list(data["range"])
        selection = Range.from_list(data["selection"]) if "selection" in data else definition
        return cls(
            name=data["name"],
            kind=SymbolKind.parse(data.get("kind", "other")),
            range=definition,
            selection_range=selection,
            file_id=owner,
            detail=data.get("detail", "") or "",
            children=[cls.from_dict(child, owner) for child in data.get("children", [])],
        )


@dataclass(frozen=True)
class ReferenceLocation:
    """A place in the workspace that refers back to a symbol."""
    file_id: str
    range: Range

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file_id, "range": self.range.to_list()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReferenceLocation":
        return cls(file_id=data["file"], range=Range.from_list(data["range"]))


@dataclass
class ClassifiedReferences:
    """References split into import-style mentions and real usages."""
    imports: list[ReferenceLocation] = field(default_factory=list)
    usages: list[ReferenceLocation] = field(default_factory=list)


@dataclass
class UnusedSymbolInfo:
    """A symbol whose effective reference count is zero."""
    symbol: SymbolDescriptor
    reference_count: int = 0

    @property
    def file_id(self) -> str:
        return self.symbol.file_id

    @property
    def name(self) -> str:
        return self.symbol.name

    @property
    def kind(self) -> SymbolKind:
        return self.symbol.kind

    @property
    def line(self) -> int:
        return self.symbol.selection_range.start.line

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "path": self.file_id,
            "line": self.line,
            "character": self.symbol.selection_range.start.character,
            "references": self.reference_count,
        }
