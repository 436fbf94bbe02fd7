"""Source connectors: enumerate a source's files and fetch their content."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlparse

from section_cache.ingest.types import FileMeta, SourceRecord
from section_cache.utils.hashing import sha256_file

SUPPORTED_SUFFIXES = (".md", ".mdx", ".markdown", ".mdoc", ".markdoc", ".html", ".htm", ".txt")


class SourceConnector(Protocol):
    def enumerate(self, source: SourceRecord) -> list[FileMeta]: ...

    def fetch(self, source: SourceRecord, path: str) -> str: ...


class FilesystemConnector:
    """Reads documents from a local folder or a single local file.

    Paths are POSIX paths relative to the source folder. The checksum
    handed out by ``enumerate`` is the SHA-256 of the file bytes.
    """

    def __init__(self, suffixes: tuple[str, ...] = SUPPORTED_SUFFIXES) -> None:
        self.suffixes = suffixes

    def enumerate(self, source: SourceRecord) -> list[FileMeta]:
        base = source_path(source)
        if source.kind == "file" or base.is_file():
            if not base.is_file():
                raise FileNotFoundError(f"Source file not found: {base}")
            return [FileMeta(path=base.name, name=base.name, checksum=sha256_file(base))]
        if not base.is_dir():
            raise FileNotFoundError(f"Source folder not found: {base}")
        files = sorted(
            path for path in base.rglob("*") if path.is_file() and path.suffix.lower() in self.suffixes
        )
        return [
            FileMeta(
                path=path.relative_to(base).as_posix(),
                name=path.name,
                checksum=sha256_file(path),
            )
            for path in files
        ]

    def fetch(self, source: SourceRecord, path: str) -> str:
        base = source_path(source)
        target = base if base.is_file() else base / path
        return target.read_bytes().decode("utf-8", errors="ignore")


def source_path(source: SourceRecord) -> Path:
    parsed = urlparse(source.uri)
    if parsed.scheme and parsed.scheme != "file":
        raise ValueError(f"Unsupported URI scheme: {source.uri}")
    raw = unquote(parsed.path) if parsed.scheme == "file" else source.uri
    return Path(raw).expanduser()


__all__ = ["SUPPORTED_SUFFIXES", "SourceConnector", "FilesystemConnector", "source_path"]
