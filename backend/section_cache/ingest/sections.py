"""Heading-based section splitting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from markdown_it.tree import SyntaxTreeNode

from section_cache.ingest.chunker import DEFAULT_TOKEN_CUTOFF, split_within_token_cutoff
from section_cache.ingest.normalizer import (
    MarkupTree,
    content_type_for_path,
    extract_frontmatter,
    normalize,
)
from section_cache.ingest.types import FileData


@dataclass(slots=True)
class ProcessedFile:
    meta: dict[str, Any]
    sections: list[str]


def split_sections(tree: MarkupTree) -> list[str]:
    """Split a document at its top-level headings, in document order.

    Content before the first heading forms a leading section. Each section
    is the verbatim slice of canonical lines it covers.
    """
    lines = tree.lines
    starts: list[int] = []
    for node in _top_level_nodes(tree.root):
        if not starts:
            starts.append(0)
        elif node.type == "heading":
            starts.append(node.map[0])
    sections: list[str] = []
    for position, start in enumerate(starts):
        end = starts[position + 1] if position + 1 < len(starts) else len(lines)
        section = "\n".join(lines[start:end]).strip("\n").rstrip()
        if section.strip():
            sections.append(section)
    return sections


def process_file(file: FileData, token_cutoff: int = DEFAULT_TOKEN_CUTOFF) -> ProcessedFile:
    """Normalize, split and chunk one file's content.

    Raises ``ParseError`` when the content cannot be parsed in its declared
    dialect nor in the fallback dialect.
    """
    meta, body = extract_frontmatter(file.content)
    tree = normalize(body, content_type_for_path(file.path))
    chunks: list[str] = []
    for section in split_sections(tree):
        chunks.extend(split_within_token_cutoff(section, token_cutoff))
    return ProcessedFile(meta=meta, sections=chunks)


def _top_level_nodes(root: SyntaxTreeNode) -> list[SyntaxTreeNode]:
    return [node for node in root.children if node.map is not None]


__all__ = ["ProcessedFile", "split_sections", "process_file"]
