"""Markdoc tag parsing and rendering.

Only the tag layer is handled here (``{% tag %}``, ``{% /tag %}``,
``{% tag /%}``, variables and annotations); the Markdown between tags is
left to markdown-it-py. ``img`` and ``image`` tags render to ``<img>``
elements, every other tag renders its children.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Union

from markdown_it import MarkdownIt

from section_cache.core.errors import MarkdocSyntaxError

_TAG_RE = re.compile(r"\{%\s*(?P<body>.*?)\s*%\}", re.DOTALL)
_NAME_RE = re.compile(r"[A-Za-z][\w-]*")
_ATTRIBUTE_RE = re.compile(
    r"""(?P<key>[A-Za-z_][\w-]*)=(?P<value>"(?:[^"\\]|\\.)*"|'[^']*'|\{[^}]*\}|\[[^\]]*\]|\S+)"""
)

IMAGE_TAGS = frozenset({"img", "image"})
_SELF_CLOSING_NAMES = frozenset({"else"})

_HTML_RENDERER = MarkdownIt("commonmark", {"html": True}).enable("table").enable("strikethrough")


@dataclass(slots=True)
class TextNode:
    text: str


@dataclass(slots=True)
class TagNode:
    name: str
    attributes: dict[str, str] = field(default_factory=dict)
    children: list["Node"] = field(default_factory=list)


Node = Union[TextNode, TagNode]


def parse(content: str) -> list[Node]:
    """Parse Markdoc content into a tree of text and tag nodes."""
    root = TagNode(name="document")
    stack: list[TagNode] = [root]
    cursor = 0
    for match in _TAG_RE.finditer(content):
        if match.start() > cursor:
            stack[-1].children.append(TextNode(content[cursor : match.start()]))
        cursor = match.end()
        body = match.group("body")
        if not body or body.startswith(("$", ".", "#")):
            # Variables and annotations carry no portable text.
            continue
        if body.startswith("/"):
            name = body[1:].strip()
            if len(stack) == 1 or stack[-1].name != name:
                expected = stack[-1].name if len(stack) > 1 else None
                raise MarkdocSyntaxError(
                    f"Unexpected closing tag {{% /{name} %}}"
                    + (f", expected {{% /{expected} %}}" if expected else "")
                )
            stack.pop()
            continue
        self_closing = body.endswith("/")
        if self_closing:
            body = body[:-1].rstrip()
        name_match = _NAME_RE.match(body)
        if name_match is None:
            raise MarkdocSyntaxError(f"Invalid tag {match.group()!r}")
        name = name_match.group()
        tag = TagNode(name=name, attributes=_parse_attributes(body[name_match.end() :]))
        stack[-1].children.append(tag)
        if not self_closing and name not in _SELF_CLOSING_NAMES:
            stack.append(tag)
    if cursor < len(content):
        stack[-1].children.append(TextNode(content[cursor:]))
    if len(stack) > 1:
        raise MarkdocSyntaxError(f"Node '{stack[-1].name}' is missing closing tag")
    return root.children


def render_markdown(nodes: list[Node]) -> str:
    """Render tags away, leaving Markdown with inline ``<img>`` HTML."""
    parts: list[str] = []
    for node in nodes:
        if isinstance(node, TextNode):
            parts.append(node.text)
        elif node.name in IMAGE_TAGS:
            src = node.attributes.get("src")
            if src:
                parts.append(f'<img src="{html.escape(src, quote=True)}">')
        else:
            parts.append(render_markdown(node.children))
    return "".join(parts)


def render_html(content: str) -> str:
    """Parse Markdoc content and render it to HTML."""
    return _HTML_RENDERER.render(render_markdown(parse(content)))


def _parse_attributes(raw: str) -> dict[str, str]:
    attributes: dict[str, str] = {}
    for match in _ATTRIBUTE_RE.finditer(raw):
        value = match.group("value")
        if value[:1] in {'"', "'"}:
            value = value[1:-1]
            if match.group("value").startswith('"'):
                value = value.replace('\\"', '"')
        attributes[match.group("key")] = value
    return attributes


__all__ = ["TextNode", "TagNode", "Node", "parse", "render_markdown", "render_html"]
