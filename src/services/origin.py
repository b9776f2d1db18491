"""
Origin allow-list matching for CORS checks.

Allow-list entries are either exact origins ("http://localhost:3000") or
patterns where "*" stands for any non-empty run of characters
("https://*.vercel.app"). Patterns are anchored at both ends.
"""

import re
from functools import lru_cache
from typing import Iterable, Optional, Pattern


@lru_cache(maxsize=64)
def _compile_pattern(entry: str) -> Pattern:
    literal_parts = [re.escape(part) for part in entry.split('*')]
    return re.compile('.+'.join(literal_parts))


def matches_origin(origin: str, entry: str) -> bool:
    """Check a single origin against one allow-list entry."""
    if '*' not in entry:
        return origin == entry
    return _compile_pattern(entry).fullmatch(origin) is not None


def is_allowed_origin(origin: Optional[str], allowed_origins: Iterable[str]) -> bool:
    """
    Check whether a request origin is on the allow-list.

    Args:
        origin: Value of the Origin header (None if absent)
        allowed_origins: Exact origins or wildcard patterns

    Returns:
        True if any entry matches; missing or empty origins never match

    Example:
        >>> is_allowed_origin("https://app.vercel.app", ["https://*.vercel.app"])
        True
        >>> is_allowed_origin("https://vercel.app", ["https://*.vercel.app"])
        False
    """
    if not origin:
        return False
    return any(matches_origin(origin, entry) for entry in allowed_origins if entry)
