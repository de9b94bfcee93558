"""Roster name normalization.

Entity names extracted from documents differ from the roster only in case
and spacing far more often than in spelling, so lookups compare names after:
1. Trimming
2. Lowercasing
3. Collapsing internal whitespace

Examples:
    "  Valentina " -> "valentina"
    "Duke  of\tEarl" -> "duke of earl"
"""

import re

_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """Normalize an entity name or alias for lookup."""
    if not name:
        return ""
    return _WHITESPACE.sub(" ", name.strip().lower())
