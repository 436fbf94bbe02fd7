"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class SourceCreateRequest(BaseModel):
    label: str | None = None
    kind: Literal["folder", "file", "other"] = "folder"
    uri: str
    include_glob: str | None = None
    exclude_glob: str | None = None


class SourceResponse(SourceCreateRequest):
    id: str
    created_at: datetime
    updated_at: datetime


class RunRequest(BaseModel):
    sources: list[str] | None = Field(default=None, description="Source IDs to train; all sources when omitted")
    force_refresh: bool | None = Field(default=None, description="Re-embed files whose checksum is unchanged")


class RunStateResponse(BaseModel):
    state: Literal["idle", "fetching_data", "loading", "cancel_requested"]
    progress: int | None = None
    total: int | None = None
    filename: str | None = None
    message: str = ""
    running: bool = False
    processed_files: int = 0
    errors: list[str] = Field(default_factory=list)
    stats: dict[str, int] | None = None
    cancelled: bool = False
    failure: str | None = None


__all__ = [
    "SourceCreateRequest",
    "SourceResponse",
    "RunRequest",
    "RunStateResponse",
]
