from __future__ import annotations

import re
from functools import cmp_to_key

_VERSION_RE = re.compile(r"[0-9]+(?:\.[0-9]+)*")


def parse_version(text: str) -> tuple[int, ...] | None:
    """
    Parse a dotted version string such as "10.0.1" into (10, 0, 1).

    Returns None for anything that is not strictly dot-separated ASCII digits
    ("latest", "1.invalid", "1-tagged", "1..2", "").
    """
    if not isinstance(text, str) or not _VERSION_RE.fullmatch(text):
        return None
    return tuple(int(part) for part in text.split("."))


def compare_versions(a: str, b: str) -> int:
    """
    Order two version-like strings (negative, zero or positive like cmp()).

    Rules:
    - an unparseable string is lower than any parseable one;
    - between two unparseable strings the first argument is always lower,
      so compare(x, y) and compare(y, x) are both negative. This asymmetry is
      kept on purpose for compatibility with the SDK directory resolution it
      was built for;
    - parseable strings compare component by component, and a strict prefix
      is lower ("1.2" < "1.2.3").
    """
    a_parts = parse_version(a)
    if a_parts is None:
        return -1
    b_parts = parse_version(b)
    if b_parts is None:
        return 1

    for a_num, b_num in zip(a_parts, b_parts):
        if a_num != b_num:
            return 1 if a_num > b_num else -1

    if len(a_parts) == len(b_parts):
        return 0
    return 1 if len(a_parts) > len(b_parts) else -1


# Sort key for sorted()/max(); invalid names sort first.
version_key = cmp_to_key(compare_versions)


__all__ = ["parse_version", "compare_versions", "version_key"]
