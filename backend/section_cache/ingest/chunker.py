"""Token-budget chunking utilities."""

from __future__ import annotations

DEFAULT_TOKEN_CUTOFF = 800
CHARS_PER_TOKEN = 4
# The character approximation can undercount, so only 80% of the cutoff is used.
SAFETY_MARGIN = 0.8


def estimate_tokens(text: str) -> float:
    """Approximate token count (1 token ~= 4 characters).

    Exact tokenizers are slow on large text; swap this function out to use
    one without touching the chunking algorithm.
    """
    return len(text) / CHARS_PER_TOKEN


def adjusted_cutoff(token_cutoff: int = DEFAULT_TOKEN_CUTOFF) -> float:
    return token_cutoff * SAFETY_MARGIN


def split_within_token_cutoff(section: str, token_cutoff: int = DEFAULT_TOKEN_CUTOFF) -> list[str]:
    """Split ``section`` on line boundaries into chunks under the adjusted cutoff.

    Lines are never split, so a single line longer than the budget becomes a
    chunk of its own.
    """
    budget = adjusted_cutoff(token_cutoff)
    if estimate_tokens(section) < budget:
        return [section]

    newline_tokens = estimate_tokens("\n")
    chunks: list[str] = []
    current: list[str] = []
    current_tokens = 0.0
    for line in section.split("\n"):
        line_tokens = estimate_tokens(line)
        separator = newline_tokens if current else 0.0
        if current_tokens + separator + line_tokens < budget:
            current.append(line)
            current_tokens += separator + line_tokens
            continue
        _emit(chunks, current)
        current = [line]
        current_tokens = line_tokens
    _emit(chunks, current)
    return chunks


def _emit(chunks: list[str], lines: list[str]) -> None:
    chunk = "\n".join(lines)
    if chunk.strip():
        chunks.append(chunk)


__all__ = [
    "DEFAULT_TOKEN_CUTOFF",
    "CHARS_PER_TOKEN",
    "SAFETY_MARGIN",
    "estimate_tokens",
    "adjusted_cutoff",
    "split_within_token_cutoff",
]
