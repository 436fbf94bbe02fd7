"""Convert MDX, Markdoc and HTML content into canonical Markdown."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Callable, Literal, Mapping

import yaml
from markdown_it import MarkdownIt
from markdown_it.token import Token
from markdown_it.tree import SyntaxTreeNode
from markdownify import ATX, markdownify

from section_cache.core.errors import MdxSyntaxError, ParseError
from section_cache.core.logging import get_logger
from section_cache.ingest import markdoc
from section_cache.ingest.mdx import MDX_BLOCK_TYPES, MDX_INLINE_TYPES, create_mdx_parser

logger = get_logger(__name__)

Dialect = Literal["mdx", "markdoc", "html"]

_FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\n(?P<yaml>.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)
_CODE_CLASS_RE = re.compile(r"^language-(?P<lang>[\w+#.-]+)$")
_CONTINUATION_RE = r"\n[ \t>]*"

_EXTENSION_DIALECTS: Mapping[str, Dialect] = {
    ".mdoc": "markdoc",
    ".markdoc": "markdoc",
    ".html": "html",
    ".htm": "html",
}

# Some repositories store Markdoc under a generic ``.md`` extension. MDX is
# tried first and Markdoc second; the guess is logged whenever it is used.
FALLBACK_DIALECTS: Mapping[Dialect, tuple[Dialect, ...]] = {
    "mdx": ("markdoc",),
}

_CANONICAL = MarkdownIt("commonmark").enable("table").enable("strikethrough")
_MDX = create_mdx_parser()


@dataclass(slots=True)
class MarkupTree:
    """Canonical Markdown text together with its block syntax tree."""

    text: str
    root: SyntaxTreeNode
    dialect: Dialect

    @property
    def lines(self) -> list[str]:
        return self.text.split("\n")


@dataclass(slots=True)
class ParseAttempt:
    dialect: Dialect
    tree: MarkupTree | None = None
    error: ParseError | None = None


def content_type_for_path(path: str) -> Dialect:
    """Infer a file's dialect from its extension; unknown extensions are MDX."""
    return _EXTENSION_DIALECTS.get(PurePosixPath(path).suffix.lower(), "mdx")


def extract_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split a leading YAML front matter block from the body.

    Invalid or non-mapping front matter yields an empty ``meta`` and leaves
    the content untouched.
    """
    content = _normalize_newlines(content)
    match = _FRONT_MATTER_RE.match(content)
    if not match:
        return {}, content
    try:
        meta = yaml.safe_load(match.group("yaml")) or {}
    except yaml.YAMLError:
        logger.debug("Ignoring invalid front matter")
        return {}, content
    if not isinstance(meta, dict):
        return {}, content
    return meta, content[match.end() :]


def try_parse(content: str, dialect: Dialect) -> ParseAttempt:
    """Parse ``content`` as ``dialect``, reporting failure instead of raising."""
    converter = _CONVERTERS[dialect]
    try:
        text = converter(content)
    except ParseError as exc:
        return ParseAttempt(dialect=dialect, error=exc)
    return ParseAttempt(dialect=dialect, tree=_canonical_tree(text, dialect))


def normalize(content: str, dialect: Dialect) -> MarkupTree:
    """Normalize ``content`` to a canonical Markdown tree.

    Tries the declared dialect, then its fallbacks. Raises ``ParseError``
    naming every failed attempt when none succeeds.
    """
    attempts = [try_parse(content, dialect)]
    for fallback in FALLBACK_DIALECTS.get(dialect, ()):
        if attempts[-1].tree is not None:
            break
        logger.info(
            "Content is not valid %s, retrying as %s",
            attempts[-1].dialect,
            fallback,
            extra={"ctx_error": str(attempts[-1].error)},
        )
        attempts.append(try_parse(content, fallback))
    if attempts[-1].tree is not None:
        return attempts[-1].tree
    detail = "; ".join(f"{attempt.dialect}: {attempt.error}" for attempt in attempts)
    raise ParseError(f"Unable to parse content ({detail})")


# Dialect converters -----------------------------------------------------------


def mdx_to_markdown(content: str) -> str:
    """Drop ESM, JSX and expressions from MDX, keeping the surrounding text verbatim."""
    content = _normalize_newlines(content)
    tokens = _MDX.parse(content)
    lines = content.split("\n")
    replacements: dict[int, tuple[int, list[str]]] = {}
    for token in tokens:
        if token.map is None:
            continue
        start, end = token.map
        if token.type in MDX_BLOCK_TYPES:
            replacements[start] = (end, [])
        elif token.type == "inline" and _has_mdx_children(token):
            block = "\n".join(lines[start:end])
            replacements[start] = (end, _remove_inline(block, token.children or []).split("\n"))
    output: list[str] = []
    index = 0
    while index < len(lines):
        if index in replacements:
            end, replacement = replacements[index]
            output.extend(replacement)
            index = max(end, index + 1)
            continue
        output.append(lines[index])
        index += 1
    return "\n".join(output)


def markdoc_to_markdown(content: str) -> str:
    return html_to_markdown(markdoc.render_html(_normalize_newlines(content)))


def html_to_markdown(content: str) -> str:
    return markdownify(
        content,
        heading_style=ATX,
        code_language_callback=_code_language,
    ).strip()


_CONVERTERS: Mapping[Dialect, Callable[[str], str]] = {
    "mdx": mdx_to_markdown,
    "markdoc": markdoc_to_markdown,
    "html": html_to_markdown,
}


# Helpers -------------------------------------------------------------------


def _canonical_tree(text: str, dialect: Dialect) -> MarkupTree:
    return MarkupTree(text=text, root=SyntaxTreeNode(_CANONICAL.parse(text)), dialect=dialect)


def _has_mdx_children(token: Token) -> bool:
    return any(child.type in MDX_INLINE_TYPES for child in token.children or [])


def _remove_inline(block: str, children: list[Token]) -> str:
    cursor = 0
    for child in children:
        if child.type not in MDX_INLINE_TYPES:
            continue
        match = _inline_pattern(child.content).search(block, cursor)
        if match is None:
            raise MdxSyntaxError(f"Unable to locate {child.content!r} in the source")
        block = block[: match.start()] + block[match.end() :]
        cursor = match.start()
    return block


def _inline_pattern(content: str) -> re.Pattern[str]:
    # Inline source loses the indentation and container markers of
    # continuation lines (list items, blockquotes).
    return re.compile(_CONTINUATION_RE.join(re.escape(line) for line in content.split("\n")))


def _code_language(el: Any) -> str | None:
    language = el.get("data-language")
    if language:
        return language
    code = el.find("code")
    if code is None:
        return None
    for css_class in code.get("class") or []:
        match = _CODE_CLASS_RE.match(css_class)
        if match:
            return match.group("lang")
    return None


def _normalize_newlines(content: str) -> str:
    return content.replace("\r\n", "\n").replace("\r", "\n")


__all__ = [
    "Dialect",
    "MarkupTree",
    "ParseAttempt",
    "FALLBACK_DIALECTS",
    "content_type_for_path",
    "extract_frontmatter",
    "try_parse",
    "normalize",
    "mdx_to_markdown",
    "markdoc_to_markdown",
    "html_to_markdown",
]
