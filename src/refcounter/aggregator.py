"""Effective reference counting for a single symbol.

Raw reference lists from an oracle are noisy: they contain the declaration
itself, recursive calls from inside the symbol's own body, import lines,
and hits in excluded directories. This module turns such a list into one
integer, the effective count, that decides whether a symbol is used.
"""

import logging
from collections.abc import Callable, Iterable

from refcounter.classifier import ReferenceClassifier
from refcounter.models import ReferenceClass, ReferenceLocation, SymbolDescriptor

logger = logging.getLogger(__name__)

EXPORT_MARKER = "export"
API_PATH_SEGMENTS = ("/api/", "/pages/api/")


def drop_declaration(
    symbol: SymbolDescriptor,
    references: Iterable[ReferenceLocation],
) -> list[ReferenceLocation]:
    """Remove the reference that is the symbol's own declaration.

    Args:
        symbol: The symbol whose references are filtered.
        references: References as returned by the oracle.

    Returns:
        References other than the one starting at the symbol's selection
        start in the symbol's own file.
    """
    declaration = symbol.selection_range.start
    return [
        ref for ref in references
        if not (ref.file_id == symbol.file_id and ref.range.start == declaration)
    ]


def group_by_file(references: Iterable[ReferenceLocation]) -> dict[str, list[ReferenceLocation]]:
    """Group references by file, preserving first-seen file order."""
    groups: dict[str, list[ReferenceLocation]] = {}
    for ref in references:
        groups.setdefault(ref.file_id, []).append(ref)
    return groups


def count_self_file_references(
    symbol: SymbolDescriptor,
    references: list[ReferenceLocation],
) -> int:
    """Count the contribution of the file that defines the symbol.

    References inside the symbol's own definition range are self-references
    (for example recursive calls). If every reference in the file is a
    self-reference the file contributes exactly 1, so a function used only
    from its own body still counts as used. Otherwise only the references
    outside the definition are counted.

    Args:
        symbol: The symbol being counted.
        references: Non-empty list of references in the symbol's own file.

    Returns:
        The file's contribution to the effective count.
    """
    self_contained = sum(1 for ref in references if symbol.range.contains(ref.range))
    if self_contained == len(references):
        return 1
    return len(references) - self_contained


def is_exported(symbol: SymbolDescriptor) -> bool:
    """Guess whether a symbol is exported for use outside the workspace.

    True if the oracle's detail text mentions an export, or the defining
    file sits under an API-style directory. The guess is fuzzy on purpose
    and misses other export styles.
    """
    if EXPORT_MARKER in (symbol.detail or ""):
        return True
    path = "/" + symbol.file_id.replace("\\", "/").lstrip("/")
    return any(segment in path for segment in API_PATH_SEGMENTS)


def count_references(
    symbol: SymbolDescriptor,
    references: Iterable[ReferenceLocation],
    exclude: Callable[[str], bool],
    include_imports: bool,
    classifier: ReferenceClassifier,
) -> int:
    """Compute the effective reference count of a symbol.

    Steps:
    1. Drop the declaration itself.
    2. Drop references in excluded files.
    3. Unless include_imports is set, drop import-style references.
    4. Group the rest by file.
    5. The symbol's own file contributes per count_self_file_references.
    6. Every other file contributes its full reference count.
    7. Sum the contributions.
    8. An exported symbol with at least one reference left after step 1
       never counts as 0; it is raised to 1.

    Args:
        symbol: The symbol being counted.
        references: All references reported for it, declaration included or not.
        exclude: Predicate over file paths; matching references are ignored.
        include_imports: Count import-style references as usages.
        classifier: Classifier used to tell imports from usages.

    Returns:
        Effective reference count, never negative.
    """
    touchpoints = drop_declaration(symbol, references)
    candidates = [ref for ref in touchpoints if not exclude(ref.file_id)]

    if not include_imports:
        candidates = [
            ref for ref in candidates
            if classifier.classify(ref) is ReferenceClass.USAGE
        ]

    total = 0
    for file_id, file_refs in group_by_file(candidates).items():
        if file_id == symbol.file_id:
            total += count_self_file_references(symbol, file_refs)
        else:
            total += len(file_refs)

    if total == 0 and touchpoints and is_exported(symbol):
        logger.debug(f"{symbol.key} is exported and referenced; counting it as used")
        return 1

    return total
