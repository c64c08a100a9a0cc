"""URL-safe identity slugs for people, places and titles."""
from __future__ import annotations

import re
import unicodedata

_DISALLOWED_RE = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_HYPHENS_RE = re.compile(r"-+")


def slugify(text: str) -> str:
    """Fold ``text`` into a lowercase ASCII slug.

    Vietnamese ``đ`` survives NFD decomposition as its own letter, so it is
    mapped to ``d`` explicitly. Strings that fold to the same slug are the same
    identity across sources.
    """

    if not text:
        return ""
    value = text.lower()
    value = unicodedata.normalize("NFD", value)
    value = "".join(char for char in value if not unicodedata.combining(char))
    value = value.replace("đ", "d").replace("Đ", "D")
    value = _DISALLOWED_RE.sub("", value)
    value = _WHITESPACE_RE.sub("-", value.strip())
    value = _HYPHENS_RE.sub("-", value)
    return value.strip("-").strip()
