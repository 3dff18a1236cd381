"""Tests for the data model."""

import pytest

from refcounter.models import (
    Position,
    Range,
    ReferenceLocation,
    SymbolDescriptor,
    SymbolKind,
    UnusedSymbolInfo,
    symbol_key,
)


class TestRange:
    def test_contains_is_inclusive_at_both_ends(self):
        outer = Range(Position(1, 0), Position(5, 10))

        assert outer.contains(Range(Position(1, 0), Position(1, 3)))
        assert outer.contains(Range(Position(5, 7), Position(5, 10)))
        assert outer.contains(outer)

    def test_contains_rejects_partial_overlap(self):
        outer = Range(Position(1, 0), Position(5, 10))

        assert not outer.contains(Range(Position(0, 5), Position(1, 2)))
        assert not outer.contains(Range(Position(5, 8), Position(5, 11)))
        assert not outer.contains(Range(Position(6, 0), Position(6, 1)))

    def test_position_ordering_uses_line_then_character(self):
        assert Position(1, 50) < Position(2, 0)
        assert Position(2, 1) > Position(2, 0)

    def test_at_builds_single_line_range(self):
        r = Range.at(3, 4, 5)

        assert r.start == Position(3, 4)
        assert r.end == Position(3, 9)

    def test_from_list_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            Range.from_list([1, 2, 3])


class TestSymbolKind:
    def test_parse_is_case_insensitive(self):
        assert SymbolKind.parse("Method") is SymbolKind.METHOD

    def test_parse_unknown_falls_back_to_other(self):
        assert SymbolKind.parse("enumMember") is SymbolKind.OTHER


class TestSymbolDescriptor:
    def test_key_uses_selection_start(self):
        symbol = SymbolDescriptor(
            name="greet",
            kind=SymbolKind.FUNCTION,
            range=Range(Position(3, 0), Position(6, 0)),
            selection_range=Range.at(3, 4, 5),
            file_id="src/app.py",
        )

        assert symbol.key == "src/app.py:greet:3:4"
        assert symbol.key == symbol_key("src/app.py", "greet", Position(3, 4))

    def test_from_dict_defaults_selection_to_range(self):
        symbol = SymbolDescriptor.from_dict(
            {"name": "Widget", "kind": "class", "range": [0, 0, 9, 0]},
            "src/widget.py",
        )

        assert symbol.selection_range == symbol.range
        assert symbol.file_id == "src/widget.py"

    def test_from_dict_children_inherit_file(self):
        symbol = SymbolDescriptor.from_dict({
            "name": "Widget",
            "kind": "class",
            "range": [0, 0, 9, 0],
            "file": "src/widget.py",
            "children": [{"name": "render", "kind": "method", "range": [2, 4, 4, 0]}],
        })

        assert symbol.children[0].file_id == "src/widget.py"
        assert symbol.children[0].kind is SymbolKind.METHOD

    def test_from_dict_requires_file(self):
        with pytest.raises(KeyError):
            SymbolDescriptor.from_dict({"name": "f", "kind": "function", "range": [0, 0, 1, 0]})

    def test_to_dict_omits_empty_optional_fields(self):
        symbol = SymbolDescriptor.from_dict(
            {"name": "f", "kind": "function", "range": [0, 0, 1, 0], "selection": [0, 4, 0, 5]},
            "a.py",
        )

        data = symbol.to_dict()

        assert data == {
            "name": "f",
            "kind": "function",
            "range": [0, 0, 1, 0],
            "selection": [0, 4, 0, 5],
            "file": "a.py",
        }


def test_reference_location_from_dict():
    location = ReferenceLocation.from_dict({"file": "src/main.py", "range": [3, 0, 3, 5]})

    assert location.file_id == "src/main.py"
    assert location.range == Range.at(3, 0, 5)


def test_unused_symbol_info_to_dict():
    symbol = SymbolDescriptor(
        name="helper",
        kind=SymbolKind.FUNCTION,
        range=Range(Position(10, 0), Position(12, 0)),
        selection_range=Range.at(10, 4, 6),
        file_id="src/util.py",
    )

    info = UnusedSymbolInfo(symbol=symbol)

    assert info.to_dict() == {
        "name": "helper",
        "kind": "function",
        "path": "src/util.py",
        "line": 10,
        "character": 4,
        "references": 0,
    }
