"""Tests for configuration loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from section_cache.core.config import Settings
from section_cache.utils.globs import should_include_path


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = Settings.from_yaml(tmp_path / "missing.yaml")
    assert settings.db_path == tmp_path / "sc.db"
    assert settings.context_tokens_cutoff == 800
    assert settings.embedding_provider == "hashed"
    assert settings.include_globs == []


def test_yaml_and_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "embeddings:\n"
        "  model: my-model\n"
        "  max_attempts: 3\n"
        "chunking:\n"
        "  token_cutoff: 400\n"
        "training:\n"
        "  exclude: ['drafts/**']\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("SECC_CONTEXT_TOKENS_CUTOFF", "500")
    monkeypatch.setenv("SECC_INCLUDE_GLOBS", "**/*.md, **/*.mdx")

    settings = Settings.from_yaml(config)

    assert settings.embedding_model == "my-model"
    assert settings.embedding_max_attempts == 3
    assert settings.context_tokens_cutoff == 500
    assert settings.exclude_globs == ["drafts/**"]
    assert settings.include_globs == ["**/*.md", "**/*.mdx"]


def test_config_path_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config = tmp_path / "custom.yaml"
    config.write_text(
        "project_id: docs\nembeddings:\n  provider: openai\nopenai:\n  api_key: sk-test\n", encoding="utf-8"
    )
    monkeypatch.setenv("SECC_CONFIG", str(config))

    settings = Settings.from_yaml()

    assert settings.project_id == "docs"
    assert settings.embedding_provider == "openai"
    assert settings.openai_api_key == "sk-test"


def test_openai_provider_requires_a_key(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("SECC_EMBEDDING_PROVIDER", "openai")
    with pytest.raises(ValidationError):
        Settings.from_yaml(tmp_path / "missing.yaml")

    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    assert Settings.from_yaml(tmp_path / "missing.yaml").openai_api_key == "sk-env"


def test_brace_globs_survive_comma_splitting(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("training:\n  exclude: 'drafts/**, **/*.{png,jpg}'\n", encoding="utf-8")
    monkeypatch.setenv("SECC_INCLUDE_GLOBS", "**/*.{md,mdx}")

    settings = Settings.from_yaml(config)

    assert settings.include_globs == ["**/*.{md,mdx}"]
    assert settings.exclude_globs == ["drafts/**", "**/*.{png,jpg}"]
    assert should_include_path("docs/a.md", settings.include_globs, settings.exclude_globs)
    assert not should_include_path("docs/a.txt", settings.include_globs, settings.exclude_globs)
