# imgproxy/core/options.py
"""
URL option segment codec.

The option segment is a comma-separated list of ``key=value`` pairs, e.g.
``w=800,h=600,fit=cover,q=80,f=webp,v=3``.  Short keys are aliases for the
canonical option names used everywhere past this module.
"""
from __future__ import annotations

import re
from typing import Mapping

# Short alias → canonical option name
OPTION_ALIASES: dict[str, str] = {
    "w": "width",
    "h": "height",
    "q": "quality",
    "f": "format",
    "v": "version",
}

# Canonical order used when building URLs, paired with the emitted key
CANONICAL_ORDER: tuple[tuple[str, str], ...] = (
    ("width", "w"),
    ("height", "h"),
    ("fit", "fit"),
    ("quality", "q"),
    ("format", "f"),
    ("version", "v"),
)

# Shape enforced on the route segment (see transport layer).
# Pairs must be comma-separated so each character has exactly one match path.
_PAIR = r"[a-zA-Z]+=[a-zA-Z0-9]+"
OPTIONS_SEGMENT_RE = re.compile(rf"\A{_PAIR}(?:,{_PAIR})*,?\Z")

# Longer segments are rejected before matching
MAX_SEGMENT_LENGTH = 256

ParsedOptions = dict[str, "str | None"]


def canonical_name(key: str) -> str:
    return OPTION_ALIASES.get(key, key)


def parse_options(segment: str) -> ParsedOptions:
    """
    Parse an option segment into ``{canonical_name: raw_value}``.

    Never raises: empty pieces are skipped and a piece without ``=`` maps
    to ``None``.  Later duplicates (after alias resolution) win.  Unknown
    keys are kept as-is and ignored downstream.
    """
    options: ParsedOptions = {}
    for piece in segment.split(","):
        if not piece:
            continue
        key, sep, value = piece.partition("=")
        if not key:
            continue
        options[canonical_name(key)] = value if sep else None
    return options


def serialize_options(options: Mapping[str, object]) -> str:
    """
    Build an option segment in canonical order using the short keys.

    Accepts canonical or alias keys; ``None`` values and unknown keys are
    dropped so generated URLs are deterministic.
    """
    normalized = {canonical_name(k): v for k, v in options.items() if v is not None}
    parts = [
        f"{short}={normalized[name]}"
        for name, short in CANONICAL_ORDER
        if name in normalized
    ]
    return ",".join(parts)


def is_valid_segment(segment: str) -> bool:
    if len(segment) > MAX_SEGMENT_LENGTH:
        return False
    return bool(OPTIONS_SEGMENT_RE.match(segment))
