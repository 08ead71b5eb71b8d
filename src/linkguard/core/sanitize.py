"""
Input sanitization for JSON request bodies.

HTML-escapes every string leaf of a decoded JSON document before it
reaches validation. Keys and non-string leaves are left untouched.
"""

from typing import Dict, List, Union

import structlog

logger = structlog.get_logger(__name__)

JSONValue = Union[None, bool, int, float, str, List["JSONValue"], Dict[str, "JSONValue"]]

_ESCAPES = (
    ("&", "&amp;"),  # must run first
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#x27;"),
)


def escape_html(value: str) -> str:
    """Entity-encode the five HTML-significant characters."""
    for char, entity in _ESCAPES:
        value = value.replace(char, entity)
    return value


def sanitize_json(value: JSONValue) -> JSONValue:
    """
    Return a sanitized copy of a JSON value.

    Objects and arrays are traversed recursively; only ``str`` leaves are
    rewritten. ``bool`` is checked before numbers since it subclasses ``int``.
    """
    if value is None or isinstance(value, bool):
        return value

    if isinstance(value, (int, float)):
        return value

    if isinstance(value, str):
        return escape_html(value)

    if isinstance(value, list):
        return [sanitize_json(item) for item in value]

    if isinstance(value, dict):
        return {key: sanitize_json(item) for key, item in value.items()}

    raise TypeError(f"Not a JSON value: {type(value).__name__}")
