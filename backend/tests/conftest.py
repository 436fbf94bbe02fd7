"""Test fixtures for Section Cache."""

from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from section_cache.core.errors import ProviderError, TransientProviderError  # noqa: E402
from section_cache.ingest.embeddings import EmbeddingResponse  # noqa: E402


def _reset_singletons() -> None:
    from section_cache.api import dependencies as deps
    from section_cache.core import config

    config.get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    if deps._DB is not None:
        deps._DB.close()
    deps._DB = None
    deps._RUNNER = None


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("SECC_DB_PATH", str(tmp_path / "sc.db"))
    monkeypatch.delenv("SECC_CONFIG", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    _reset_singletons()
    yield
    _reset_singletons()


class FakeProvider:
    """Records every call; raises for texts containing a configured marker."""

    def __init__(self, dim: int = 8, fail_on: str | None = None, transient_failures: int = 0) -> None:
        self.dim = dim
        self.fail_on = fail_on
        self.transient_failures = transient_failures
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def embed(self, text: str, model: str) -> EmbeddingResponse:
        with self._lock:
            self.calls.append(text)
            if self.transient_failures > 0:
                self.transient_failures -= 1
                raise TransientProviderError("rate limited")
        if self.fail_on and self.fail_on in text:
            raise ProviderError("rejected by provider")
        vector = [float(len(text) % 7)] + [0.5] * (self.dim - 1)
        return EmbeddingResponse(vector=vector, token_usage=len(text.split()))


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def database(tmp_path: Path):
    from section_cache.db.sqlite import SQLiteDatabase

    db = SQLiteDatabase(tmp_path / "store.db")
    db.ensure_schema()
    yield db
    db.close()


@pytest.fixture
def store(database):
    from section_cache.ingest.store import SectionStore

    return SectionStore(database, project_id="test")
