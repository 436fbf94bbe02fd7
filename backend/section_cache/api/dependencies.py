"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from section_cache.core.config import Settings, get_settings
from section_cache.db.sqlite import SQLiteDatabase
from section_cache.ingest.connectors import FilesystemConnector
from section_cache.ingest.embeddings import SectionEmbedder
from section_cache.ingest.pipeline import TrainingPipeline
from section_cache.ingest.runner import BackgroundRunner
from section_cache.ingest.store import SectionStore, SQLiteUsageRecorder

_DB: SQLiteDatabase | None = None
_RUNNER: BackgroundRunner | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        db = SQLiteDatabase(settings.db_path, check_same_thread=False)
        db.ensure_schema()
        _DB = db
    return _DB


def get_store() -> SectionStore:
    return SectionStore(get_database(), project_id=get_app_settings().project_id)


def get_runner() -> BackgroundRunner:
    global _RUNNER
    if _RUNNER is None:
        settings = get_app_settings()
        get_database()
        # Runs execute on their own thread and connection.
        run_db = SQLiteDatabase(settings.db_path, check_same_thread=False)
        pipeline = TrainingPipeline(
            store=SectionStore(run_db, project_id=settings.project_id),
            embedder=SectionEmbedder.from_settings(settings),
            settings=settings,
            usage_recorder=SQLiteUsageRecorder(run_db),
        )
        _RUNNER = BackgroundRunner(pipeline, FilesystemConnector())
    return _RUNNER


__all__ = [
    "get_app_settings",
    "get_database",
    "get_store",
    "get_runner",
]
