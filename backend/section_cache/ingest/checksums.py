"""Checksum-based change detection."""

from __future__ import annotations

from section_cache.ingest.store import SectionStore


class ChecksumRegistry:
    """Last fully embedded checksum per path, for one source.

    Loaded once at the start of a run; every ``record`` is written through
    to the store immediately so a cancelled or crashed run keeps the
    progress it already committed.
    """

    def __init__(self, store: SectionStore, source_id: str) -> None:
        self.store = store
        self.source_id = source_id
        self._checksums = store.load_checksums(source_id)

    def get(self, path: str) -> str | None:
        return self._checksums.get(path)

    def is_unchanged(self, path: str, checksum: str) -> bool:
        return self.get(path) == checksum

    def record(self, path: str, checksum: str) -> None:
        self.store.set_checksum(self.source_id, path, checksum)
        self._checksums[path] = checksum

    def __len__(self) -> int:
        return len(self._checksums)


__all__ = ["ChecksumRegistry"]
