# imgproxy/core/glob.py
"""
Restricted glob matching for path allow-lists.

Supported tokens:
    **/   zero or more leading directories
    **    anything, including ``/``
    *     anything except ``/``
    ?     exactly one character

Matching is anchored to the whole path.
"""
from __future__ import annotations

import re
from functools import lru_cache

# Order matters: longer tokens must be replaced before their prefixes
_SUBSTITUTIONS: tuple[tuple[str, str], ...] = (
    (re.escape("**/"), "(?:.*/)?"),
    (re.escape("**"), ".*"),
    (re.escape("*"), "[^/]*"),
    (re.escape("?"), "."),
)


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a glob pattern into an anchored regex (cached)."""
    regex = re.escape(pattern)
    for token, replacement in _SUBSTITUTIONS:
        regex = regex.replace(token, replacement)
    return re.compile(rf"\A{regex}\Z", re.DOTALL)


def glob_matches(path: str, pattern: str) -> bool:
    return compile_glob(pattern).match(path) is not None
