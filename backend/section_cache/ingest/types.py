"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

from section_cache.utils.text import truncate


@dataclass(slots=True)
class FileMeta:
    """Cheap per-file metadata a connector can produce without fetching content."""

    path: str
    name: str
    checksum: str


@dataclass(slots=True)
class FileData:
    """A file whose content has been fetched."""

    path: str
    name: str
    checksum: str
    content: str


@dataclass(slots=True)
class SourceRecord:
    id: str
    kind: str
    uri: str
    label: str | None
    include_glob: str | None
    exclude_glob: str | None


@dataclass(slots=True)
class EmbeddedSection:
    """A chunk with its vector, ready to be stored."""

    ordinal: int
    content: str
    embedding: list[float]
    token_count: int


@dataclass(slots=True)
class FileOutcome:
    """What happened to one file that went through embedding and persistence."""

    file_id: str | None
    sections: int
    token_count: int
    errors: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.file_id is not None and not self.errors


# Run state -------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Idle:
    state: Literal["idle"] = "idle"


@dataclass(frozen=True, slots=True)
class FetchingData:
    state: Literal["fetching_data"] = "fetching_data"


@dataclass(frozen=True, slots=True)
class Loading:
    progress: int
    total: int
    filename: str | None = None
    state: Literal["loading"] = "loading"


@dataclass(frozen=True, slots=True)
class CancelRequested:
    state: Literal["cancel_requested"] = "cancel_requested"


RunState = Union[Idle, FetchingData, Loading, CancelRequested]


def state_message(state: RunState, num_files: int | None = None) -> str:
    """Human readable progress line for a run state."""
    if isinstance(state, Loading):
        suffix = f" ({truncate(state.filename, 20)})" if state.filename else "."
        return f"Processing file {state.progress} of {state.total}{suffix}"
    if isinstance(state, CancelRequested):
        return "Stopping processing..."
    if isinstance(state, FetchingData):
        return "Fetching files..."
    if isinstance(state, Idle):
        if num_files is not None:
            noun = "file" if num_files == 1 else "files"
            return f"{num_files} {noun} added."
        return ""
    raise TypeError(f"Unknown run state: {state!r}")


def state_to_dict(state: RunState) -> dict[str, Any]:
    payload: dict[str, Any] = {"state": state.state}
    if isinstance(state, Loading):
        payload.update(progress=state.progress, total=state.total, filename=state.filename)
    return payload


@dataclass(slots=True)
class RunStats:
    """Aggregated run statistics."""

    processed: int = 0
    skipped: int = 0
    failed: int = 0
    sections: int = 0
    tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "sections": self.sections,
            "tokens": self.tokens,
        }


@dataclass(slots=True)
class RunResult:
    """Outcome of one call to ``TrainingPipeline.run``."""

    state: RunState
    errors: list[str]
    stats: RunStats
    cancelled: bool = False


__all__ = [
    "FileMeta",
    "FileData",
    "SourceRecord",
    "EmbeddedSection",
    "FileOutcome",
    "Idle",
    "FetchingData",
    "Loading",
    "CancelRequested",
    "RunState",
    "state_message",
    "state_to_dict",
    "RunStats",
    "RunResult",
]
