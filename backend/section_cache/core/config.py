"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from section_cache.utils.globs import split_outside_braces

ENV_PREFIX = "SECC_"
DEFAULT_CONFIG_PATH = Path("~/.config/section-cache/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("embeddings", "provider"): "embedding_provider",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "start_delay"): "embedding_start_delay",
    ("embeddings", "max_attempts"): "embedding_max_attempts",
    ("embeddings", "concurrency"): "embedding_concurrency",
    ("openai", "api_key"): "openai_api_key",
    ("openai", "base_url"): "openai_base_url",
    ("chunking", "token_cutoff"): "context_tokens_cutoff",
    ("chunking", "min_content_length"): "min_content_length",
    ("training", "include"): "include_globs",
    ("training", "exclude"): "exclude_globs",
    ("training", "force_refresh"): "force_refresh",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".section-cache" / "sc.db")
    project_id: str = "default"
    embedding_provider: Literal["hashed", "openai"] = "hashed"
    embedding_model: str = "text-embedding-ada-002"
    embedding_dim: int = Field(default=384, ge=1)
    embedding_start_delay: float = Field(default=10.0, ge=0)
    embedding_max_attempts: int = Field(default=10, ge=1)
    embedding_concurrency: int = Field(default=4, ge=1)
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    context_tokens_cutoff: int = Field(default=800, gt=0)
    min_content_length: int = Field(default=20, ge=0)
    include_globs: list[str] = Field(default_factory=list)
    exclude_globs: list[str] = Field(default_factory=list)
    force_refresh: bool = False

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @field_validator("include_globs", "exclude_globs", mode="before")
    @classmethod
    def _split_globs(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in split_outside_braces(value) if part.strip()]
        return list(value)

    @model_validator(mode="after")
    def _require_api_key(self) -> "Settings":
        if self.embedding_provider == "openai" and not self.openai_api_key:
            raise ValueError("openai_api_key (or OPENAI_API_KEY) is required for the openai embedding provider")
        return self

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        if not data.get("openai_api_key") and os.environ.get("OPENAI_API_KEY"):
            data["openai_api_key"] = os.environ["OPENAI_API_KEY"]
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with SECC_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
