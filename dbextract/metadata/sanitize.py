"""Identifier sanitization for table and column names."""

from __future__ import annotations

import re

__all__ = ["sanitize_name"]

_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_]+")
_WHITESPACE = re.compile(r"\s+")


def _clean(name: str) -> str:
    return _INVALID_CHARS.sub("_", name).strip("_")


def sanitize_name(name: str) -> str:
    """Turn a database identifier into a safe ``[A-Za-z0-9_]`` name.

    Names with no usable characters are wrapped in ``empty...name`` so the
    result is never empty.

    Example:
        >>> sanitize_name("Order Items (2024)")
        'Order_Items_2024'
        >>> sanitize_name("***")
        'empty_name'
    """
    sanitized = _clean(name)
    if not sanitized:
        sanitized = _clean("empty" + _WHITESPACE.sub("_", name) + "name")
    return sanitized
