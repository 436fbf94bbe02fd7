"""MDX grammar rules for markdown-it-py.

MDX extends Markdown with ESM (``import``/``export``), JSX elements and
``{expression}`` blocks. The rules below recognise those constructs so they
can be dropped from the token stream, and reject input that an MDX compiler
would reject (unbalanced braces, unclosed elements, a bare ``<`` before a
digit or whitespace). Nothing is evaluated.
"""

from __future__ import annotations

import re

from markdown_it import MarkdownIt
from markdown_it.rules_block import StateBlock
from markdown_it.rules_inline import StateInline

from section_cache.core.errors import MdxSyntaxError

MDX_BLOCK_TYPES = frozenset({"mdx_esm", "mdx_jsx_flow", "mdx_flow_expression"})
MDX_INLINE_TYPES = frozenset({"mdx_jsx_text", "mdx_text_expression"})

_ESM_RE = re.compile(r"(import|export)\b")
_NAME_RE = re.compile(r"[A-Za-z_$][\w$.:-]*")
_TAG_START_RE = re.compile(r"<(/?)([A-Za-z_$][\w$.:-]*)?")


def mdx_plugin(md: MarkdownIt) -> None:
    """Register the MDX block and inline rules on ``md``."""
    md.block.ruler.before("table", "mdx_esm", _esm_block)
    md.block.ruler.before(
        "html_block",
        "mdx_jsx_flow",
        _jsx_flow_block,
        {"alt": ["paragraph", "reference", "blockquote"]},
    )
    md.block.ruler.before(
        "html_block",
        "mdx_flow_expression",
        _expression_flow_block,
        {"alt": ["paragraph", "reference", "blockquote"]},
    )
    md.inline.ruler.before("html_inline", "mdx_jsx_text", _jsx_text_inline)
    md.inline.ruler.before("html_inline", "mdx_text_expression", _expression_inline)


def create_mdx_parser() -> MarkdownIt:
    # MDX has no indented code and treats every tag as JSX.
    md = MarkdownIt("commonmark", {"html": False}).enable("table").enable("strikethrough")
    md.disable("code")
    md.use(mdx_plugin)
    return md


# Scanners ------------------------------------------------------------------


def scan_expression(src: str, pos: int, end: int) -> int:
    """Return the offset just past the ``}`` that balances ``src[pos]``."""
    depth = 0
    index = pos
    while index < end:
        char = src[index]
        if char in "\"'`":
            index = _skip_string(src, index, end)
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                body = src[pos + 1 : index].strip()
                if body.startswith("%"):
                    raise MdxSyntaxError(f"Could not parse expression `{src[pos:index + 1]}`")
                return index + 1
        index += 1
    raise MdxSyntaxError(f"Unexpected end of file in expression starting at offset {pos}")


def scan_tag(src: str, pos: int, end: int) -> tuple[str, bool, bool, int]:
    """Scan the JSX tag at ``src[pos]``.

    Returns ``(name, is_closing, is_self_closing, end_offset)``. Fragments
    have an empty name.
    """
    index = pos + 1
    closing = False
    if index < end and src[index] == "/":
        closing = True
        index += 1
    name = ""
    match = _NAME_RE.match(src, index, end)
    if match:
        name = match.group()
        index = match.end()
    elif index < end and src[index] != ">":
        raise MdxSyntaxError(f"Unexpected character {src[index]!r} before name at offset {index}")
    while index < end:
        char = src[index]
        if char in "\"'":
            index = _skip_string(src, index, end)
            continue
        if char == "{":
            index = scan_expression(src, index, end)
            continue
        if src.startswith("/>", index):
            return name, closing, True, index + 2
        if char == ">":
            return name, closing, False, index + 1
        index += 1
    raise MdxSyntaxError(f"Unexpected end of file in tag <{name}>")


def find_element_end(src: str, pos: int, end: int) -> int:
    """Return the offset just past the closing tag of the element opened at ``pos``."""
    name, closing, self_closing, cursor = scan_tag(src, pos, end)
    if closing:
        raise MdxSyntaxError(f"Unexpected closing tag </{name}>")
    if self_closing:
        return cursor
    depth = 1
    while cursor < end:
        match = _TAG_START_RE.search(src, cursor, end)
        if match is None:
            break
        tag_name = match.group(2) or ""
        if tag_name != name:
            cursor = match.end() if match.end() > match.start() + 1 else match.start() + 1
            continue
        _, is_closing, is_self_closing, tag_end = scan_tag(src, match.start(), end)
        if is_closing:
            depth -= 1
        elif not is_self_closing:
            depth += 1
        cursor = tag_end
        if depth == 0:
            return cursor
    raise MdxSyntaxError(f"Expected a closing tag for <{name}>")


def _skip_string(src: str, pos: int, end: int) -> int:
    quote = src[pos]
    index = pos + 1
    while index < end:
        if src[index] == "\\":
            index += 2
            continue
        if src[index] == quote:
            return index + 1
        index += 1
    raise MdxSyntaxError(f"Unterminated string starting at offset {pos}")


def _check_lt(src: str, pos: int, end: int) -> None:
    following = src[pos + 1] if pos + 1 < end else ""
    if following == "" or following.isspace() or following.isdigit():
        raise MdxSyntaxError(
            f"Unexpected character {following!r} before name at offset {pos}; "
            "escape `<` as `\\<` in MDX"
        )


# Block rules ---------------------------------------------------------------


def _line_of(state: StateBlock, offset: int, start_line: int, end_line: int) -> int | None:
    for line in range(start_line, end_line):
        if offset <= state.eMarks[line]:
            return line
    return None


def _claim_lines(
    state: StateBlock,
    token_type: str,
    start_line: int,
    end_line: int,
    end_offset: int,
    silent: bool,
) -> bool:
    last_line = _line_of(state, end_offset, start_line, end_line)
    if last_line is None:
        return False
    if state.src[end_offset : state.eMarks[last_line]].strip():
        # Trailing text: this is an inline construct inside a paragraph.
        return False
    if silent:
        return True
    token = state.push(token_type, "", 0)
    token.map = [start_line, last_line + 1]
    token.content = state.src[state.bMarks[start_line] + state.tShift[start_line] : end_offset]
    state.line = last_line + 1
    return True


def _esm_block(state: StateBlock, startLine: int, endLine: int, silent: bool) -> bool:
    if state.sCount[startLine] != 0 or state.blkIndent != 0:
        return False
    pos = state.bMarks[startLine] + state.tShift[startLine]
    if not _ESM_RE.match(state.src, pos, state.eMarks[startLine]):
        return False
    if silent:
        return True
    next_line = startLine + 1
    while next_line < endLine and not state.isEmpty(next_line):
        next_line += 1
    token = state.push("mdx_esm", "", 0)
    token.map = [startLine, next_line]
    token.content = state.getLines(startLine, next_line, 0, False)
    state.line = next_line
    return True


def _jsx_flow_block(state: StateBlock, startLine: int, endLine: int, silent: bool) -> bool:
    if state.sCount[startLine] - state.blkIndent >= 4:
        return False
    pos = state.bMarks[startLine] + state.tShift[startLine]
    if pos >= state.eMarks[startLine] or state.src[pos] != "<":
        return False
    following = state.src[pos + 1] if pos + 1 < len(state.src) else ""
    if following == "!":
        return False
    _check_lt(state.src, pos, state.eMarks[startLine])
    limit = state.eMarks[endLine - 1]
    end_offset = find_element_end(state.src, pos, limit)
    return _claim_lines(state, "mdx_jsx_flow", startLine, endLine, end_offset, silent)


def _expression_flow_block(state: StateBlock, startLine: int, endLine: int, silent: bool) -> bool:
    if state.sCount[startLine] - state.blkIndent >= 4:
        return False
    pos = state.bMarks[startLine] + state.tShift[startLine]
    if pos >= state.eMarks[startLine] or state.src[pos] != "{":
        return False
    end_offset = scan_expression(state.src, pos, state.eMarks[endLine - 1])
    return _claim_lines(state, "mdx_flow_expression", startLine, endLine, end_offset, silent)


# Inline rules --------------------------------------------------------------


def _jsx_text_inline(state: StateInline, silent: bool) -> bool:
    pos = state.pos
    if state.src[pos] != "<":
        return False
    following = state.src[pos + 1] if pos + 1 < state.posMax else ""
    if following == "!":
        return False
    _check_lt(state.src, pos, state.posMax)
    end_offset = find_element_end(state.src, pos, state.posMax)
    if not silent:
        token = state.push("mdx_jsx_text", "", 0)
        token.content = state.src[pos:end_offset]
    state.pos = end_offset
    return True


def _expression_inline(state: StateInline, silent: bool) -> bool:
    pos = state.pos
    if state.src[pos] != "{":
        return False
    end_offset = scan_expression(state.src, pos, state.posMax)
    if not silent:
        token = state.push("mdx_text_expression", "", 0)
        token.content = state.src[pos:end_offset]
    state.pos = end_offset
    return True


__all__ = [
    "MDX_BLOCK_TYPES",
    "MDX_INLINE_TYPES",
    "create_mdx_parser",
    "mdx_plugin",
    "find_element_end",
    "scan_expression",
    "scan_tag",
]
