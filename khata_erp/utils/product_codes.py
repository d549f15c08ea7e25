"""Product code helpers shared by the price list and the line-item writers."""

from __future__ import annotations

import re

_WS = re.compile(r"\s+")
_TRAILING_DOTS = re.compile(r"\.+$")


def slugify(text: str | None) -> str:
    """lowercase, trim, whitespace runs -> '-'"""
    if not text:
        return ""
    return _WS.sub("-", text.lower().strip())


def normalize_product_code(code: str | None) -> str:
    """
    Canonical form used for comparisons, so "Sami 1 No." and "sami-1-no"
    are the same product.
    """
    if not code:
        return ""
    return _TRAILING_DOTS.sub("", slugify(code))


def generate_product_code(name: str | None, size: str | None = None) -> str:
    """`<name-slug>-<size-slug>`, or just the name slug when there is no size."""
    if not name:
        return ""
    name_slug = slugify(name)
    size_slug = slugify(size) if size else ""
    return f"{name_slug}-{size_slug}" if size_slug else name_slug


def size_sort_key(size: str | None) -> float:
    """Leading number in a size label ("10 Kg" -> 10.0); sizeless products sort last."""
    if not size:
        return float("inf")
    m = re.search(r"(\d+\.?\d*)", size)
    return float(m.group(1)) if m else float("inf")
