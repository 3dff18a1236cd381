"""Line-based classification of references into imports and usages.

The heuristic looks only at the text of the line a reference starts on. It
does not parse anything, so a line that merely looks like an import (for
example a variable named ``using`` at the start of a line) is classified as
one. That limitation is accepted.
"""

import logging
import re
from collections.abc import Iterable

from refcounter.models import ClassifiedReferences, ReferenceClass, ReferenceLocation
from refcounter.source import SourceReader

logger = logging.getLogger(__name__)

_BRACED_IMPORT = re.compile(r"import\s*\{[^}]*\}\s*from")


def classify_line(text: str) -> ReferenceClass:
    """Classify a single line of source text.

    Rules, first match wins, applied to the stripped line:
    starts with "import ", contains " from ", contains "require(",
    matches "import { ... } from", starts with "from ", starts with "using ".
    Anything else is a usage.
    """
    line = text.strip()

    if line.startswith("import "):
        return ReferenceClass.IMPORT
    if " from " in line:
        return ReferenceClass.IMPORT
    if "require(" in line:
        return ReferenceClass.IMPORT
    if _BRACED_IMPORT.search(line):
        return ReferenceClass.IMPORT
    if line.startswith("from "):
        return ReferenceClass.IMPORT
    if line.startswith("using "):
        return ReferenceClass.IMPORT

    return ReferenceClass.USAGE


class ReferenceClassifier:
    """Classifies reference locations by reading the line they point at."""

    def __init__(self, source: SourceReader):
        self.source = source

    def classify(self, ref: ReferenceLocation) -> ReferenceClass:
        """Classify one reference.

        An unreadable file or an out-of-range line yields USAGE so that a
        real usage is never dropped because of an I/O problem.
        """
        text = self.source.line_at(ref.file_id, ref.range.start.line)
        if text is None:
            logger.debug(
                f"No text for {ref.file_id}:{ref.range.start.line}, counting reference as usage"
            )
            return ReferenceClass.USAGE
        return classify_line(text)

    def categorize(self, references: Iterable[ReferenceLocation]) -> ClassifiedReferences:
        """Split references into imports and usages, keeping their order."""
        result = ClassifiedReferences()
        for ref in references:
            if self.classify(ref) is ReferenceClass.IMPORT:
                result.imports.append(ref)
            else:
                result.usages.append(ref)
        return result
