"""Tests for include/exclude glob matching."""

from section_cache.utils.globs import expand_patterns, matches_any, should_include_path, split_outside_braces


def test_expand_patterns() -> None:
    assert expand_patterns("**/*.{md,mdx}, docs/*") == ["**/*.md", "**/*.mdx", "docs/*"]


def test_double_star_matches_root_files() -> None:
    assert matches_any("README.md", ["**/*.md"])
    assert matches_any("a/b/c.md", ["**/*.md"])
    assert not matches_any("a/b/c.txt", ["**/*.md"])


def test_include_then_exclude() -> None:
    assert should_include_path("docs/a.md", [], [])
    assert should_include_path("docs/a.md", ["docs/**"], ["drafts/**"])
    assert not should_include_path("drafts/a.md", ["**/*.md"], ["drafts/**"])
    assert not should_include_path("blog/a.md", ["docs/**"], [])


def test_split_outside_braces() -> None:
    assert split_outside_braces("a/*,**/*.{md,mdx}") == ["a/*", "**/*.{md,mdx}"]
