"""Include/exclude path matching."""

from __future__ import annotations

import fnmatch
from typing import Iterable


def expand_patterns(pattern: str) -> list[str]:
    """Split a comma separated glob and expand a single ``{a,b}`` group."""
    patterns = []
    for part in split_outside_braces(pattern):
        part = part.strip()
        if not part:
            continue
        if "{" in part and "}" in part:
            prefix = part[: part.index("{")]
            suffix = part[part.index("}") + 1 :]
            options = part[part.index("{") + 1 : part.index("}")].split(",")
            for option in options:
                patterns.append(f"{prefix}{option.strip()}{suffix}")
        else:
            patterns.append(part)
    return patterns or [pattern]


def matches_any(path: str, globs: Iterable[str]) -> bool:
    """Return True when ``path`` matches one of ``globs``.

    ``fnmatch`` lets ``*`` cross directory separators, so ``**/`` is also
    tried as an optional prefix to match files at the root.
    """
    normalized = path.lstrip("/")
    for glob in globs:
        for pattern in expand_patterns(glob):
            pattern = pattern.lstrip("/")
            if fnmatch.fnmatchcase(normalized, pattern):
                return True
            if pattern.startswith("**/") and fnmatch.fnmatchcase(normalized, pattern[3:]):
                return True
    return False


def should_include_path(path: str, include_globs: Iterable[str], exclude_globs: Iterable[str]) -> bool:
    """Apply the include list (when non-empty) and then the exclude list."""
    include_globs = list(include_globs)
    if include_globs and not matches_any(path, include_globs):
        return False
    return not matches_any(path, exclude_globs)


def split_outside_braces(pattern: str) -> list[str]:
    """Split on commas that are not inside a ``{a,b}`` group."""
    parts: list[str] = []
    depth = 0
    current = ""
    for char in pattern:
        if char == "{":
            depth += 1
        elif char == "}":
            depth = max(0, depth - 1)
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        current += char
    parts.append(current)
    return parts


__all__ = ["expand_patterns", "matches_any", "should_include_path", "split_outside_braces"]
