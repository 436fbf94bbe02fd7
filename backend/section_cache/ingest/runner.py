"""Run the training pipeline on a background thread."""

from __future__ import annotations

import threading
from typing import Any, Sequence

from section_cache.core.errors import RunInProgressError
from section_cache.core.logging import get_logger
from section_cache.ingest.connectors import SourceConnector
from section_cache.ingest.pipeline import TrainingPipeline
from section_cache.ingest.types import RunResult, SourceRecord, state_message, state_to_dict

logger = get_logger(__name__)


class BackgroundRunner:
    """Single-flight wrapper that lets an HTTP caller start, poll and cancel runs."""

    def __init__(self, pipeline: TrainingPipeline, connector: SourceConnector) -> None:
        self.pipeline = pipeline
        self.connector = connector
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._last_result: RunResult | None = None
        self._failure: str | None = None
        self._processed = 0

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self, sources: Sequence[SourceRecord], force_refresh: bool | None = None) -> None:
        with self._lock:
            if (self._thread is not None and self._thread.is_alive()) or self.pipeline.is_running:
                raise RunInProgressError("A training run is already in progress")
            self._last_result = None
            self._failure = None
            self._processed = 0
            thread = threading.Thread(
                target=self._run,
                args=(list(sources), force_refresh),
                name="training-run",
                daemon=True,
            )
            self._thread = thread
            thread.start()

    def cancel(self) -> None:
        self.pipeline.cancel()

    def join(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def snapshot(self) -> dict[str, Any]:
        state = self.pipeline.state
        result = self._last_result
        return {
            **state_to_dict(state),
            "message": state_message(state, num_files=self._processed if result is not None else None),
            "running": self.running,
            "processed_files": self._processed,
            "errors": result.errors if result is not None else self.pipeline.errors,
            "stats": result.stats.to_dict() if result is not None else None,
            "cancelled": result.cancelled if result is not None else False,
            "failure": self._failure,
        }

    def _run(self, sources: list[SourceRecord], force_refresh: bool | None) -> None:
        try:
            self._last_result = self.pipeline.run_sources(
                sources,
                self.connector,
                on_file_processed=self._on_file_processed,
                force_refresh=force_refresh,
            )
        except Exception as exc:
            logger.exception("Training run failed: %s", exc)
            self._failure = str(exc)

    def _on_file_processed(self) -> None:
        self._processed += 1


__all__ = ["BackgroundRunner"]
