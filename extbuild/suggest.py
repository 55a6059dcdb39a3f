"""Did-you-mean suggestions based on Levenshtein distance."""

from __future__ import annotations

from collections.abc import Iterable

DEFAULT_MAX_DISTANCE = 3


def lev_distance(a: str, b: str) -> int:
    """Return the edit distance between *a* and *b*."""
    if not a:
        return len(b)
    if not b:
        return len(a)

    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost))
        prev = cur
    return prev[-1]


def closest(
    choice: str,
    candidates: Iterable[str],
    max_distance: int = DEFAULT_MAX_DISTANCE,
) -> str | None:
    """Return the candidate nearest to *choice*, or None if none is close.

    Ties go to the alphabetically first candidate.
    """
    best: tuple[int, str] | None = None
    for candidate in candidates:
        dist = lev_distance(choice, candidate)
        if dist > max_distance:
            continue
        if best is None or (dist, candidate) < best:
            best = (dist, candidate)
    return best[1] if best else None


def format_hint(name: str | None) -> str:
    """Format a "Did you mean" hint for appending to an error message."""
    if name is None:
        return ""
    return f"\n\n\tDid you mean `{name}`?\n"
