"""ID helpers."""

from __future__ import annotations

import uuid


def new_id(prefix: str | None = None) -> str:
    """Generate a random UUID4 hex id, namespaced as ``<prefix>_<hex>``."""
    base = uuid.uuid4().hex
    return f"{prefix}_{base}" if prefix else base


def run_id() -> str:
    """Short id used to correlate the log lines of one training run."""
    return new_id("run")[:16]
