"""Persistence of files, sections, checksums and token usage."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Any, Sequence

import orjson

from section_cache.core.errors import PersistenceError
from section_cache.core.logging import get_logger
from section_cache.db.sqlite import SQLiteDatabase
from section_cache.ingest.embeddings import as_bytes
from section_cache.ingest.types import EmbeddedSection, SourceRecord
from section_cache.utils.ids import new_id
from section_cache.utils.time import now_ms

logger = get_logger(__name__)

_INSERT_SECTION_SQL = """
INSERT INTO file_sections (id, file_id, ordinal, content, embedding, dim, token_count, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""


@dataclass(slots=True)
class CommitResult:
    file_id: str
    inserted: int
    errors: list[str] = field(default_factory=list)


class SectionStore:
    """Table-shaped persistence used by the training pipeline."""

    def __init__(self, database: SQLiteDatabase, project_id: str = "default") -> None:
        self.db = database
        self.project_id = project_id

    # Files and sections ------------------------------------------------

    def find_file(self, source_id: str, path: str) -> sqlite3.Row | None:
        return self.db.execute(
            "SELECT id, path, meta_json, checksum FROM files WHERE source_id = ? AND path = ?",
            [source_id, path],
        ).fetchone()

    def replace_file_sections(
        self,
        source_id: str,
        path: str,
        meta: dict[str, Any],
        checksum: str,
        sections: Sequence[EmbeddedSection],
    ) -> CommitResult:
        """Replace a file's sections in one transaction.

        The previous sections are deleted and the file row updated (or
        created) before the new sections are inserted. A failing bulk insert
        falls back to one row at a time; rows that still fail are reported
        in ``errors`` and do not undo the rest. Raises ``PersistenceError``
        when the file row itself cannot be written.
        """
        now = now_ms()
        try:
            with self.db.transaction() as cursor:
                file_id = self._upsert_file(cursor, source_id, path, meta, checksum, now)
                inserted, errors = self._insert_sections(cursor, file_id, sections, now)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Unable to store file {path}: {exc}") from exc
        return CommitResult(file_id=file_id, inserted=inserted, errors=errors)

    def list_sections(self, file_id: str) -> list[sqlite3.Row]:
        return self.db.query(
            "SELECT id, ordinal, content, embedding, dim, token_count FROM file_sections "
            "WHERE file_id = ? ORDER BY ordinal",
            [file_id],
        )

    def _upsert_file(
        self,
        cursor: sqlite3.Cursor,
        source_id: str,
        path: str,
        meta: dict[str, Any],
        checksum: str,
        now: int,
    ) -> str:
        meta_json = orjson.dumps(meta, default=str).decode("utf-8")
        row = cursor.execute(
            "SELECT id FROM files WHERE source_id = ? AND path = ?",
            [source_id, path],
        ).fetchone()
        if row is not None:
            file_id = row["id"]
            cursor.execute("DELETE FROM file_sections WHERE file_id = ?", [file_id])
            cursor.execute(
                "UPDATE files SET meta_json = ?, checksum = ?, updated_at = ? WHERE id = ?",
                [meta_json, checksum, now, file_id],
            )
            return file_id
        file_id = new_id("file")
        cursor.execute(
            """
            INSERT INTO files (id, source_id, project_id, path, meta_json, checksum, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [file_id, source_id, self.project_id, path, meta_json, checksum, now, now],
        )
        return file_id

    def _insert_sections(
        self,
        cursor: sqlite3.Cursor,
        file_id: str,
        sections: Sequence[EmbeddedSection],
        now: int,
    ) -> tuple[int, list[str]]:
        rows = [
            (
                new_id("sec"),
                file_id,
                section.ordinal,
                section.content,
                as_bytes(section.embedding),
                len(section.embedding),
                section.token_count,
                now,
            )
            for section in sections
        ]
        if not rows:
            return 0, []
        try:
            with self.db.savepoint(cursor, "bulk_sections"):
                cursor.executemany(_INSERT_SECTION_SQL, rows)
            return len(rows), []
        except sqlite3.Error as exc:
            logger.warning("Bulk insert of %s sections failed, inserting one at a time: %s", len(rows), exc)

        inserted = 0
        errors: list[str] = []
        for row in rows:
            try:
                with self.db.savepoint(cursor, "section_row"):
                    cursor.execute(_INSERT_SECTION_SQL, row)
                inserted += 1
            except sqlite3.Error as exc:
                errors.append(f"Error storing embeddings for section {row[2]}: {exc}")
        return inserted, errors

    # Checksum registry -------------------------------------------------

    def load_checksums(self, source_id: str) -> dict[str, str]:
        rows = self.db.query("SELECT path, checksum FROM checksums WHERE source_id = ?", [source_id])
        return {row["path"]: row["checksum"] for row in rows}

    def set_checksum(self, source_id: str, path: str, checksum: str) -> None:
        try:
            with self.db.transaction() as cursor:
                cursor.execute(
                    """
                    INSERT INTO checksums (source_id, path, checksum, updated_at) VALUES (?, ?, ?, ?)
                    ON CONFLICT (source_id, path) DO UPDATE SET
                      checksum = excluded.checksum, updated_at = excluded.updated_at
                    """,
                    [source_id, path, checksum, now_ms()],
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Unable to record checksum for {path}: {exc}") from exc

    # Sources -----------------------------------------------------------

    def create_source(
        self,
        kind: str,
        uri: str,
        label: str | None = None,
        include_glob: str | None = None,
        exclude_glob: str | None = None,
    ) -> SourceRecord:
        source_id = new_id("src")
        now = now_ms()
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO sources (id, kind, uri, label, include_glob, exclude_glob, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [source_id, kind, uri, label, include_glob, exclude_glob, now, now],
            )
        return SourceRecord(
            id=source_id,
            kind=kind,
            uri=uri,
            label=label,
            include_glob=include_glob,
            exclude_glob=exclude_glob,
        )

    def list_sources(self, source_ids: Sequence[str] | None = None) -> list[SourceRecord]:
        if source_ids:
            placeholders = ",".join("?" for _ in source_ids)
            rows = self.db.query(
                f"SELECT id, kind, uri, label, include_glob, exclude_glob FROM sources WHERE id IN ({placeholders})",
                list(source_ids),
            )
        else:
            rows = self.db.query("SELECT id, kind, uri, label, include_glob, exclude_glob FROM sources", [])
        return [
            SourceRecord(
                id=row["id"],
                kind=row["kind"],
                uri=row["uri"],
                label=row["label"],
                include_glob=row["include_glob"],
                exclude_glob=row["exclude_glob"],
            )
            for row in rows
        ]


class SQLiteUsageRecorder:
    """Token usage ledger keyed by project and model."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self.db = database

    def record(self, project_id: str, model: str, tokens: int) -> None:
        with self.db.transaction() as cursor:
            cursor.execute(
                "INSERT INTO token_usage (project_id, model, tokens, recorded_at) VALUES (?, ?, ?, ?)",
                [project_id, model, tokens, now_ms()],
            )

    def total(self, project_id: str, model: str | None = None) -> int:
        sql = "SELECT COALESCE(SUM(tokens), 0) AS total FROM token_usage WHERE project_id = ?"
        params: list[Any] = [project_id]
        if model is not None:
            sql += " AND model = ?"
            params.append(model)
        row = self.db.execute(sql, params).fetchone()
        return int(row["total"])


__all__ = ["CommitResult", "SectionStore", "SQLiteUsageRecorder"]
