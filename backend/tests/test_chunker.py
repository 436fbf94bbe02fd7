"""Tests for token-budget chunking."""

from section_cache.ingest.chunker import adjusted_cutoff, estimate_tokens, split_within_token_cutoff


def test_estimate_tokens_uses_four_characters_per_token() -> None:
    assert estimate_tokens("abcd" * 10) == 10
    assert adjusted_cutoff(800) == 640


def test_small_section_is_returned_unchanged() -> None:
    section = "# Title\n\nShort body."
    assert split_within_token_cutoff(section, token_cutoff=800) == [section]


def test_oversized_section_splits_on_lines() -> None:
    lines = [f"{index:02d}" + "x" * 98 for index in range(10)]
    section = "\n".join(lines)
    chunks = split_within_token_cutoff(section, token_cutoff=100)

    assert len(chunks) == 4
    assert all(estimate_tokens(chunk) < adjusted_cutoff(100) for chunk in chunks)
    assert "\n".join(chunks) == section
    assert chunks[1].startswith("03")


def test_single_long_line_is_never_split() -> None:
    line = "y" * 1000
    assert split_within_token_cutoff(line, token_cutoff=100) == [line]


def test_blank_chunks_are_dropped() -> None:
    section = "a" * 300 + "\n\n\n" + "b" * 300
    chunks = split_within_token_cutoff(section, token_cutoff=100)
    assert chunks
    assert all(chunk.strip() for chunk in chunks)
