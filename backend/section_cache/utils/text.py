"""Text processing helpers."""

from __future__ import annotations

import re

NEWLINE_RE = re.compile(r"\r?\n")


def flatten_newlines(text: str) -> str:
    """Replace each line break with a single space."""
    return NEWLINE_RE.sub(" ", text)


def truncate(text: str, length: int) -> str:
    """Shorten ``text`` to ``length`` characters, marking the cut with an ellipsis."""
    if len(text) <= length:
        return text
    return f"{text[:length]}..."


__all__ = ["flatten_newlines", "truncate"]
