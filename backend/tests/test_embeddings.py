"""Tests for embedding providers and the retrying embedder."""

import pytest
import requests

from section_cache.core.errors import ProviderError, TransientProviderError
from section_cache.ingest.embeddings import (
    HashedEmbeddingProvider,
    OpenAIEmbeddingProvider,
    SectionEmbedder,
    as_bytes,
    from_bytes,
)

from conftest import FakeProvider


def _embedder(provider, **kwargs) -> SectionEmbedder:
    sleeps = kwargs.pop("sleeps", [])
    options = {"start_delay": 1.0, "max_attempts": 3, "concurrency": 2, "sleep": sleeps.append}
    options.update(kwargs)
    return SectionEmbedder(provider, model="test-model", **options)


def test_hashed_provider_is_normalized() -> None:
    provider = HashedEmbeddingProvider(dim=16)
    response = provider.embed("hello world hello", "any")
    assert len(response.vector) == 16
    assert abs(sum(value * value for value in response.vector) - 1.0) < 1e-6
    assert response.token_usage == 3


def test_sections_keep_order_and_original_text() -> None:
    provider = FakeProvider()
    chunks = [f"# Section {index}\nwith enough content to embed" for index in range(6)]
    result = _embedder(provider).embed_sections(chunks)

    assert [section.ordinal for section in result.sections] == list(range(6))
    assert [section.content for section in result.sections] == chunks
    assert all("\n" not in text for text in provider.calls)
    assert result.token_count == sum(section.token_count for section in result.sections)
    assert not result.errors


def test_short_sections_are_skipped() -> None:
    provider = FakeProvider()
    result = _embedder(provider).embed_sections(["tiny", "this chunk is long enough to embed"])
    assert len(provider.calls) == 1
    assert [section.ordinal for section in result.sections] == [1]
    assert not result.errors


def test_transient_errors_are_retried_with_backoff() -> None:
    provider = FakeProvider(transient_failures=2)
    sleeps: list[float] = []
    response = _embedder(provider, sleeps=sleeps).embed("retry this text please")
    assert len(provider.calls) == 3
    assert sleeps == [1.0, 2.0]
    assert response.vector


def test_retries_give_up_after_max_attempts() -> None:
    provider = FakeProvider(transient_failures=10)
    with pytest.raises(TransientProviderError):
        _embedder(provider).embed("this never succeeds at all")
    assert len(provider.calls) == 3


def test_terminal_error_is_not_retried_and_reported() -> None:
    provider = FakeProvider(fail_on="boom")
    result = _embedder(provider).embed_sections(
        ["a good section with plenty of text", "boom goes this section right here"]
    )
    assert len(provider.calls) == 2
    assert [section.ordinal for section in result.sections] == [0]
    assert result.errors == [
        "Unable to generate embeddings for section starting with 'boom goes this secti...': "
        "rejected by provider"
    ]


def test_vector_bytes_round_trip() -> None:
    vector = [0.5, -1.25, 3.0]
    assert from_bytes(as_bytes(vector)) == vector


class _FakeResponse:
    def __init__(self, status_code: int, payload: dict | None = None) -> None:
        self.status_code = status_code
        self._payload = payload or {}
        self.text = "error body"

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> dict:
        return self._payload


class _FakeSession:
    def __init__(self, response=None, exc: Exception | None = None) -> None:
        self.response = response
        self.exc = exc
        self.requests: list[dict] = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers})
        if self.exc is not None:
            raise self.exc
        return self.response


def test_openai_provider_parses_embedding() -> None:
    session = _FakeSession(
        _FakeResponse(200, {"data": [{"embedding": [0.1, 0.2]}], "usage": {"total_tokens": 7}})
    )
    provider = OpenAIEmbeddingProvider("sk-test", base_url="https://example.test/v1/", session=session)
    response = provider.embed("text", "text-embedding-ada-002")
    assert response.vector == [0.1, 0.2]
    assert response.token_usage == 7
    assert session.requests[0]["url"] == "https://example.test/v1/embeddings"
    assert session.requests[0]["headers"]["Authorization"] == "Bearer sk-test"


@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_openai_provider_rate_limits_are_transient(status_code: int) -> None:
    provider = OpenAIEmbeddingProvider("sk-test", session=_FakeSession(_FakeResponse(status_code)))
    with pytest.raises(TransientProviderError):
        provider.embed("text", "model")


def test_openai_provider_client_errors_are_terminal() -> None:
    provider = OpenAIEmbeddingProvider("sk-test", session=_FakeSession(_FakeResponse(400)))
    with pytest.raises(ProviderError) as excinfo:
        provider.embed("text", "model")
    assert not isinstance(excinfo.value, TransientProviderError)


def test_openai_provider_connection_errors_are_transient() -> None:
    session = _FakeSession(exc=requests.ConnectionError("refused"))
    provider = OpenAIEmbeddingProvider("sk-test", session=session)
    with pytest.raises(TransientProviderError):
        provider.embed("text", "model")


class _BrokenProvider:
    def embed(self, text: str, model: str):
        if "broken" in text:
            raise ValueError("bad json")
        return FakeProvider().embed(text, model)


def test_unexpected_provider_errors_stay_per_section() -> None:
    result = _embedder(_BrokenProvider()).embed_sections(
        ["a healthy section with enough text", "a broken section with enough text"]
    )
    assert [section.ordinal for section in result.sections] == [0]
    assert len(result.errors) == 1
    assert result.errors[0].endswith(": bad json")


class _InvalidJsonResponse(_FakeResponse):
    def json(self) -> dict:
        raise requests.JSONDecodeError("Expecting value", "<html>", 0)


def test_openai_provider_invalid_json_is_terminal() -> None:
    provider = OpenAIEmbeddingProvider("sk-test", session=_FakeSession(_InvalidJsonResponse(200)))
    with pytest.raises(ProviderError) as excinfo:
        provider.embed("text", "model")
    assert not isinstance(excinfo.value, TransientProviderError)
