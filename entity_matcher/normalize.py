"""Name Matching Utilities.

Helpers for comparing an extracted entity name with roster names:
normalization (shared with the roster), word splitting and a bounded edit
distance whose limit grows with the length of the extracted name.

Examples:
    levenshtein("valentna", "valentina") -> 1
    max_edit_distance("cosmo") -> 2
"""

from typing import List

from roster_registry.normalize import normalize_name


def split_words(normalized: str) -> List[str]:
    return [w for w in normalized.split(" ") if w]


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def max_edit_distance(normalized: str) -> int:
    """Typo budget for a name: 1 up to 4 chars, 2 up to 8, else 3."""
    length = len(normalized)
    if length <= 4:
        return 1
    if length <= 8:
        return 2
    return 3


def is_partial_match(cleaned: str, roster_normalized: str) -> bool:
    """Extracted name is contained in the roster name, or contains its first word."""
    words = split_words(roster_normalized)
    first_word = words[0] if words else ""
    return cleaned in roster_normalized or (bool(first_word) and first_word in cleaned)


__all__ = [
    "normalize_name",
    "split_words",
    "levenshtein",
    "max_edit_distance",
    "is_partial_match",
]
