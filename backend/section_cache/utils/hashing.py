"""Hashing utilities."""

from __future__ import annotations

import hashlib
from pathlib import Path


def sha256_bytes(data: bytes) -> str:
    """Return hex digest for bytes input."""
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    """Return hex digest for file contents, read in blocks."""
    h = hashlib.sha256()
    with path.open("rb") as fh:
        for block in iter(lambda: fh.read(8192), b""):
            h.update(block)
    return h.hexdigest()


def create_checksum(content: str) -> str:
    """Return the change-detection checksum of a document's text content."""
    return sha256_bytes(content.encode("utf-8"))


__all__ = ["sha256_bytes", "sha256_file", "create_checksum"]
