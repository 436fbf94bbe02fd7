"""Tests for section persistence and the checksum registry."""

import orjson
import pytest

from section_cache.core.errors import PersistenceError
from section_cache.ingest.checksums import ChecksumRegistry
from section_cache.ingest.embeddings import from_bytes
from section_cache.ingest.store import SQLiteUsageRecorder
from section_cache.ingest.types import EmbeddedSection


def _sections(count: int, prefix: str = "section") -> list[EmbeddedSection]:
    return [
        EmbeddedSection(ordinal=index, content=f"{prefix} {index}", embedding=[float(index), 1.0], token_count=2)
        for index in range(count)
    ]


def test_replace_inserts_file_and_sections(store) -> None:
    result = store.replace_file_sections("src", "docs/a.md", {"title": "A"}, "sum-1", _sections(3))

    assert result.inserted == 3
    assert not result.errors
    row = store.find_file("src", "docs/a.md")
    assert row["id"] == result.file_id
    assert row["checksum"] == "sum-1"
    assert orjson.loads(row["meta_json"]) == {"title": "A"}
    sections = store.list_sections(result.file_id)
    assert [section["content"] for section in sections] == ["section 0", "section 1", "section 2"]
    assert from_bytes(sections[2]["embedding"]) == [2.0, 1.0]
    assert sections[2]["dim"] == 2


def test_replace_swaps_old_sections_for_new(store) -> None:
    first = store.replace_file_sections("src", "a.md", {}, "sum-1", _sections(3, "old"))
    second = store.replace_file_sections("src", "a.md", {}, "sum-2", _sections(1, "new"))

    assert second.file_id == first.file_id
    assert [row["content"] for row in store.list_sections(first.file_id)] == ["new 0"]
    assert store.find_file("src", "a.md")["checksum"] == "sum-2"


def test_failed_bulk_insert_falls_back_to_single_rows(store, database) -> None:
    database.executescript(
        """
        CREATE TRIGGER reject_second_section BEFORE INSERT ON file_sections
        WHEN NEW.ordinal = 1
        BEGIN
          SELECT RAISE(ABORT, 'bad section');
        END;
        """
    )
    result = store.replace_file_sections("src", "a.md", {}, "sum", _sections(3))

    assert result.inserted == 2
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Error storing embeddings for section 1:")
    assert [row["ordinal"] for row in store.list_sections(result.file_id)] == [0, 2]


def test_file_row_failure_rolls_back_everything(store, database) -> None:
    store.replace_file_sections("src", "a.md", {}, "sum-1", _sections(2))
    database.executescript(
        """
        CREATE TRIGGER reject_file_update BEFORE UPDATE ON files
        BEGIN
          SELECT RAISE(ABORT, 'read only');
        END;
        """
    )
    with pytest.raises(PersistenceError):
        store.replace_file_sections("src", "a.md", {}, "sum-2", _sections(1, "new"))

    row = store.find_file("src", "a.md")
    assert row["checksum"] == "sum-1"
    assert len(store.list_sections(row["id"])) == 2


def test_checksum_registry_writes_through(store) -> None:
    registry = ChecksumRegistry(store, "src")
    assert registry.get("a.md") is None
    registry.record("a.md", "sum-1")
    registry.record("a.md", "sum-2")

    assert registry.is_unchanged("a.md", "sum-2")
    assert store.load_checksums("src") == {"a.md": "sum-2"}
    assert len(ChecksumRegistry(store, "src")) == 1
    assert ChecksumRegistry(store, "other").get("a.md") is None


def test_sources_round_trip(store) -> None:
    created = store.create_source(kind="folder", uri="file:///docs", label="Docs", include_glob="**/*.md")
    other = store.create_source(kind="file", uri="file:///readme.md")

    assert {source.id for source in store.list_sources()} == {created.id, other.id}
    [only] = store.list_sources([created.id])
    assert only.label == "Docs"
    assert only.include_glob == "**/*.md"


def test_usage_recorder_totals(database) -> None:
    recorder = SQLiteUsageRecorder(database)
    recorder.record("proj", "model-a", 10)
    recorder.record("proj", "model-a", 5)
    recorder.record("proj", "model-b", 1)

    assert recorder.total("proj") == 16
    assert recorder.total("proj", "model-a") == 15
    assert recorder.total("missing") == 0
