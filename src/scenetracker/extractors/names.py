"""Matching names the model writes back against the names we track."""

from __future__ import annotations

import re
from typing import Iterable, Optional

_TITLES = (
    "dr.", "dr", "mr.", "mr", "mrs.", "mrs", "ms.", "ms", "miss",
    "sir", "lady", "lord", "professor", "prof.", "prof",
)


def normalize_name(name: str) -> str:
    normalized = name.lower().strip()
    for title in _TITLES:
        if normalized.startswith(title + " "):
            normalized = normalized[len(title) + 1:].strip()
            break
    return re.sub(r"\s+", " ", normalized)


def match_name(name: str, known: Iterable[str]) -> Optional[str]:
    """Return the tracked name *name* refers to, or None.

    Tries an exact match, then a normalized match, then a match on the
    first word ("Elena" for "Elena Vasquez") when that is unambiguous.
    """
    candidates = list(known)
    if name in candidates:
        return name
    target = normalize_name(name)
    if not target:
        return None
    for candidate in candidates:
        if normalize_name(candidate) == target:
            return candidate
    first_word = [
        c for c in candidates
        if normalize_name(c).split(" ")[0] == target.split(" ")[0]
    ]
    if len(first_word) == 1:
        return first_word[0]
    return None
