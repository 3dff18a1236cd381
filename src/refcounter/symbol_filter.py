"""Selection of the oracle symbols that take part in reference accounting."""

from collections.abc import Iterable

from refcounter.models import SymbolDescriptor, SymbolKind

SUPPORTED_SYMBOL_KINDS = frozenset({SymbolKind.FUNCTION, SymbolKind.METHOD, SymbolKind.CLASS})


def is_supported_kind(kind: SymbolKind) -> bool:
    return kind in SUPPORTED_SYMBOL_KINDS


def _is_private(symbol: SymbolDescriptor) -> bool:
    return symbol.name.startswith("_")


def _start_key(symbol: SymbolDescriptor) -> tuple[int, int]:
    start = symbol.selection_range.start
    return (start.line, start.character)


def filter_symbols(raw_symbols: Iterable[SymbolDescriptor]) -> list[SymbolDescriptor]:
    """Pick the symbols eligible for reference accounting.

    Top-level functions, methods and classes are kept unless their name
    starts with an underscore. Each kept class contributes its direct method
    children right after itself; deeper nesting is not followed. Symbols
    sharing a selection start with an earlier one are dropped, which guards
    against oracles reporting a class and one of its methods at the same
    location.

    Args:
        raw_symbols: Symbols in the order the oracle returned them.

    Returns:
        Eligible symbols in processing order.
    """
    selected: list[SymbolDescriptor] = []
    seen: set[tuple[int, int]] = set()

    for symbol in raw_symbols:
        if not is_supported_kind(symbol.kind) or _is_private(symbol):
            continue

        start = _start_key(symbol)
        if start in seen:
            continue
        selected.append(symbol)
        seen.add(start)

        if symbol.kind is not SymbolKind.CLASS:
            continue

        for child in symbol.children:
            if child.kind is not SymbolKind.METHOD or _is_private(child):
                continue
            child_start = _start_key(child)
            if child_start in seen:
                continue
            selected.append(child)
            seen.add(child_start)

    return selected
