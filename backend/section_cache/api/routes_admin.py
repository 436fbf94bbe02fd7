"""Administrative routes for Section Cache."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from fastapi import APIRouter, Depends

from section_cache.api.dependencies import get_database, get_store
from section_cache.core.metrics import metrics_response
from section_cache.db.sqlite import SQLiteDatabase
from section_cache.ingest.store import SectionStore
from section_cache.models.dto import SourceCreateRequest, SourceResponse
from section_cache.utils.time import from_ms

router = APIRouter()

_SOURCE_COLUMNS = "id, kind, uri, label, include_glob, exclude_glob, created_at, updated_at"


@router.get("/sources", response_model=list[SourceResponse], summary="List registered sources")
async def list_sources(db: SQLiteDatabase = Depends(get_database)) -> list[SourceResponse]:
    rows = db.query(f"SELECT {_SOURCE_COLUMNS} FROM sources ORDER BY created_at", [])
    return [_row_to_source(row) for row in rows]


@router.post("/sources", response_model=SourceResponse, summary="Register a new source")
async def create_source(
    request: SourceCreateRequest,
    db: SQLiteDatabase = Depends(get_database),
    store: SectionStore = Depends(get_store),
) -> SourceResponse:
    uri = request.uri
    if request.kind in {"folder", "file"} and not uri.startswith("file://"):
        uri = Path(uri).expanduser().resolve().as_uri()
    source = store.create_source(
        kind=request.kind,
        uri=uri,
        label=request.label,
        include_glob=request.include_glob,
        exclude_glob=request.exclude_glob,
    )
    row = db.execute(f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE id = ?", [source.id]).fetchone()
    return _row_to_source(row)


@router.get("/metrics", summary="Prometheus metrics")
def metrics():
    return metrics_response()


def _row_to_source(row: sqlite3.Row) -> SourceResponse:
    return SourceResponse(
        id=row["id"],
        kind=row["kind"],
        uri=row["uri"],
        label=row["label"],
        include_glob=row["include_glob"],
        exclude_glob=row["exclude_glob"],
        created_at=from_ms(row["created_at"]),
        updated_at=from_ms(row["updated_at"]),
    )
