"""Slug helpers for human-named records (categories, posts)."""

from __future__ import annotations

import re

_NON_WORD = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-+")


def slugify(text: str) -> str:
    """
    Lowercase ``text`` and turn it into a dash-separated URL slug.

    >>> slugify("  Special Needs & SEND Support ")
    'special-needs-send-support'
    """
    slug = _NON_WORD.sub("", text.lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _DASHES.sub("-", slug)
    return slug.strip("-")


__all__ = ["slugify"]
