"""
Recursive HTML entity encoding of untrusted submission data.

Every string value and every mapping key is encoded before the data is
used anywhere else. The pipeline applies `sanitize` exactly once per
request; applying it twice encodes the ampersands of the first pass.
"""

from collections.abc import Mapping
from typing import Any, List

_HTML_ENTITIES = str.maketrans({
    '&': '&amp;',
    '<': '&lt;',
    '>': '&gt;',
    '"': '&quot;',
    "'": '&#x27;',
    '/': '&#x2F;',
})


def escape_html(text: str) -> str:
    """
    Encode the characters & < > " ' / as HTML entities.

    Example:
        >>> escape_html('<b>"Tom" & Jerry</b>')
        '&lt;b&gt;&quot;Tom&quot; &amp; Jerry&lt;&#x2F;b&gt;'
    """
    return text.translate(_HTML_ENTITIES)


def _is_container(value: Any) -> bool:
    return isinstance(value, (list, tuple, Mapping))


def _sanitize_leaf(value: Any) -> Any:
    return escape_html(value) if isinstance(value, str) else value


class _Node:
    """A container being rebuilt: its remaining children and the copy built so far."""

    def __init__(self, source: Any, slot: Any = None):
        self.slot = slot
        if isinstance(source, Mapping):
            self.children = iter(source.items())
            # Always a new plain dict, so keys cannot reach attributes of the input type
            self.result = {}
        else:
            self.children = iter(enumerate(source))
            self.result = []
        self.as_tuple = isinstance(source, tuple)

    def add(self, slot: Any, value: Any) -> None:
        if isinstance(self.result, dict):
            key = escape_html(slot) if isinstance(slot, str) else slot
            self.result[key] = value
        else:
            self.result.append(value)

    def finish(self) -> Any:
        return tuple(self.result) if self.as_tuple else self.result


def sanitize(value: Any) -> Any:
    """
    Return a copy of `value` with every string leaf and key HTML-encoded.

    Strings are encoded, lists and tuples are mapped element-wise, mappings
    are rebuilt as plain dicts with encoded keys and sanitized values.
    Numbers, booleans, None and anything else are returned unchanged.

    The walk uses an explicit stack rather than recursion, so nesting depth
    is bounded only by memory. Never raises.
    """
    if not _is_container(value):
        return _sanitize_leaf(value)

    stack: List[_Node] = [_Node(value)]
    while True:
        node = stack[-1]
        child = next(node.children, None)

        if child is None:
            stack.pop()
            finished = node.finish()
            if not stack:
                return finished
            stack[-1].add(node.slot, finished)
            continue

        slot, item = child
        if _is_container(item):
            stack.append(_Node(item, slot))
        else:
            node.add(slot, _sanitize_leaf(item))
