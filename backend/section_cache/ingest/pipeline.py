"""Training run orchestration."""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Sequence

from section_cache.core.config import Settings
from section_cache.core.errors import RunInProgressError
from section_cache.core.logging import get_logger
from section_cache.core.metrics import FILES_TOTAL, RUN_DURATION
from section_cache.ingest.checksums import ChecksumRegistry
from section_cache.ingest.connectors import SourceConnector
from section_cache.ingest.embeddings import SectionEmbedder, UsageRecorder
from section_cache.ingest.sections import process_file
from section_cache.ingest.store import SectionStore
from section_cache.ingest.types import (
    CancelRequested,
    FetchingData,
    FileData,
    FileMeta,
    FileOutcome,
    Idle,
    Loading,
    RunResult,
    RunState,
    RunStats,
    SourceRecord,
)
from section_cache.utils.globs import should_include_path
from section_cache.utils.hashing import create_checksum
from section_cache.utils.ids import run_id

logger = get_logger(__name__)

GetFileMeta = Callable[[int], FileMeta]
GetFileContent = Callable[[int], str]


class CancellationToken:
    """Cooperative cancellation flag, polled between files."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class TrainingPipeline:
    """Drive files through change detection, splitting, embedding and persistence.

    Files are processed one at a time. A file's checksum is recorded right
    after its sections are committed, so cancelling (or crashing) never
    loses finished work and never leaves a file half written.
    """

    def __init__(
        self,
        store: SectionStore,
        embedder: SectionEmbedder,
        settings: Settings,
        usage_recorder: UsageRecorder | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.settings = settings
        self.usage_recorder = usage_recorder
        self._lock = threading.Lock()
        self._state: RunState = Idle()
        self._errors: list[str] = []
        self._token: CancellationToken | None = None

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state

    @property
    def errors(self) -> list[str]:
        with self._lock:
            return list(self._errors)

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._token is not None

    def cancel(self) -> None:
        """Ask the active run to stop at the next file boundary."""
        with self._lock:
            if self._token is None:
                return
            self._token.cancel()
            self._state = CancelRequested()
        logger.info("Cancellation requested")

    def run(
        self,
        source_id: str,
        num_files: int,
        get_meta: GetFileMeta,
        get_content: GetFileContent,
        on_file_processed: Callable[[], None] | None = None,
        force_refresh: bool | None = None,
        include_globs: Sequence[str] | None = None,
        exclude_globs: Sequence[str] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RunResult:
        """Process ``num_files`` files of one source.

        ``get_meta`` must be cheap; ``get_content`` is only called for files
        that pass the glob filter and whose checksum changed (or when
        ``force_refresh`` is set). Raises ``RunInProgressError`` when another
        run is active on this pipeline.
        """
        token = cancel_token or CancellationToken()
        with self._flight(token):
            return self._run_files(
                source_id,
                num_files,
                get_meta,
                get_content,
                token,
                on_file_processed=on_file_processed,
                force_refresh=force_refresh,
                include_globs=include_globs,
                exclude_globs=exclude_globs,
            )

    def run_sources(
        self,
        sources: Sequence[SourceRecord],
        connector: SourceConnector,
        on_file_processed: Callable[[], None] | None = None,
        on_error: Callable[[str], None] | None = None,
        force_refresh: bool | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RunResult:
        """Enumerate and process every source in turn.

        A source whose files cannot be enumerated is reported through
        ``on_error`` and skipped before any of its files is touched.
        """
        token = cancel_token or CancellationToken()
        errors: list[str] = []
        stats = RunStats()
        cancelled = False
        with self._flight(token):
            for source in sources:
                if token.cancelled:
                    cancelled = True
                    break
                self._set_state(FetchingData(), token)
                try:
                    files = connector.enumerate(source)
                except Exception as exc:
                    message = f"Error processing {source.label or source.uri}: {exc}"
                    logger.exception("Unable to enumerate source %s", source.id)
                    self._add_error(errors, message)
                    if on_error is not None:
                        on_error(message)
                    continue
                logger.info("Training %s files for source %s", len(files), source.id)
                result = self._run_files(
                    source.id,
                    len(files),
                    lambda index, files=files: files[index],
                    lambda index, files=files, source=source: connector.fetch(source, files[index].path),
                    token,
                    on_file_processed=on_file_processed,
                    force_refresh=force_refresh,
                    include_globs=[*self.settings.include_globs, *_split_globs(source.include_glob)],
                    exclude_globs=[*self.settings.exclude_globs, *_split_globs(source.exclude_glob)],
                )
                errors.extend(result.errors)
                _merge_stats(stats, result.stats)
                if result.cancelled:
                    cancelled = True
                    break
        return RunResult(state=Idle(), errors=errors, stats=stats, cancelled=cancelled)

    # Internal helpers -------------------------------------------------

    @contextmanager
    def _flight(self, token: CancellationToken) -> Iterator[None]:
        with self._lock:
            if self._token is not None:
                raise RunInProgressError("A training run is already in progress")
            self._token = token
            self._errors = []
        started = time.perf_counter()
        try:
            yield
        finally:
            RUN_DURATION.observe(time.perf_counter() - started)
            with self._lock:
                self._token = None
                self._state = Idle()

    def _run_files(
        self,
        source_id: str,
        num_files: int,
        get_meta: GetFileMeta,
        get_content: GetFileContent,
        token: CancellationToken,
        on_file_processed: Callable[[], None] | None = None,
        force_refresh: bool | None = None,
        include_globs: Sequence[str] | None = None,
        exclude_globs: Sequence[str] | None = None,
    ) -> RunResult:
        force = self.settings.force_refresh if force_refresh is None else force_refresh
        include = list(self.settings.include_globs if include_globs is None else include_globs)
        exclude = list(self.settings.exclude_globs if exclude_globs is None else exclude_globs)
        registry = ChecksumRegistry(self.store, source_id)
        current_run = run_id()
        stats = RunStats()
        errors: list[str] = []
        cancelled = False
        log_extra = {"ctx_run": current_run, "ctx_source": source_id}
        logger.info("Starting run over %s files (%s known checksums)", num_files, len(registry), extra=log_extra)

        for index in range(num_files):
            if token.cancelled:
                logger.info("Run cancelled before file %s of %s", index + 1, num_files, extra=log_extra)
                cancelled = True
                break

            try:
                meta = get_meta(index)
            except Exception as exc:
                logger.exception("Unable to read metadata of file %s", index + 1, extra=log_extra)
                self._add_error(errors, f"Error processing file {index + 1}: {exc}")
                stats.failed += 1
                continue

            self._set_state(Loading(progress=index + 1, total=num_files, filename=meta.name), token)
            file_extra = {**log_extra, "ctx_path": meta.path}

            if not should_include_path(meta.path, include, exclude):
                logger.info("Skipping excluded %s", meta.path, extra=file_extra)
                FILES_TOTAL.labels(outcome="excluded").inc()
                stats.skipped += 1
                continue

            if not force and registry.is_unchanged(meta.path, meta.checksum):
                logger.info("Skipping unchanged %s", meta.path, extra=file_extra)
                FILES_TOTAL.labels(outcome="unchanged").inc()
                stats.skipped += 1
                continue

            logger.info("Processing %s", meta.path, extra=file_extra)
            try:
                outcome = self._process_file(source_id, meta, get_content(index))
            except Exception as exc:
                logger.exception("Error processing %s", meta.path, extra=file_extra)
                FILES_TOTAL.labels(outcome="failed").inc()
                self._add_error(errors, f"Error processing {meta.name}: {exc}")
                stats.failed += 1
                continue

            stats.tokens += outcome.token_count
            stats.sections += outcome.sections
            for message in outcome.errors:
                self._add_error(errors, f"Error processing {meta.name}: {message}")

            if outcome.complete:
                try:
                    registry.record(meta.path, meta.checksum)
                except Exception as exc:
                    logger.exception("Unable to record checksum of %s", meta.path, extra=file_extra)
                    self._add_error(errors, f"Error processing {meta.name}: {exc}")
                    stats.failed += 1
                else:
                    FILES_TOTAL.labels(outcome="processed").inc()
                    stats.processed += 1
                    if on_file_processed is not None:
                        on_file_processed()
            else:
                # Leave the registry untouched so the next run retries this file.
                FILES_TOTAL.labels(outcome="partial").inc()
                stats.failed += 1

        self._record_usage(stats.tokens, log_extra)
        logger.info("Run finished: %s", stats.to_dict(), extra=log_extra)
        return RunResult(state=Idle(), errors=errors, stats=stats, cancelled=cancelled)

    def _process_file(self, source_id: str, meta: FileMeta, content: str) -> FileOutcome:
        file = FileData(path=meta.path, name=meta.name, checksum=meta.checksum, content=content)
        processed = process_file(file, self.settings.context_tokens_cutoff)
        embeddings = self.embedder.embed_sections(processed.sections)
        commit = self.store.replace_file_sections(
            source_id,
            file.path,
            processed.meta,
            create_checksum(content),
            embeddings.sections,
        )
        return FileOutcome(
            file_id=commit.file_id,
            sections=commit.inserted,
            token_count=embeddings.token_count,
            errors=[*embeddings.errors, *commit.errors],
        )

    def _record_usage(self, tokens: int, log_extra: dict[str, str]) -> None:
        if not tokens or self.usage_recorder is None:
            return
        try:
            self.usage_recorder.record(self.settings.project_id, self.embedder.model, tokens)
        except Exception:
            logger.exception("Unable to record token usage", extra=log_extra)

    def _set_state(self, state: RunState, token: CancellationToken) -> None:
        with self._lock:
            if token.cancelled:
                return
            self._state = state

    def _add_error(self, errors: list[str], message: str) -> None:
        errors.append(message)
        with self._lock:
            self._errors.append(message)


def _split_globs(value: str | None) -> list[str]:
    # Comma separated lists are expanded when matching.
    return [value] if value else []


def _merge_stats(target: RunStats, other: RunStats) -> None:
    target.processed += other.processed
    target.skipped += other.skipped
    target.failed += other.failed
    target.sections += other.sections
    target.tokens += other.tokens


__all__ = ["CancellationToken", "TrainingPipeline"]
