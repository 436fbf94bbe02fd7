"""Embedding providers and the retrying section embedder."""

from __future__ import annotations

import hashlib
import math
import re
import time
from array import array
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from section_cache.core.config import Settings
from section_cache.core.errors import ProviderError, TransientProviderError
from section_cache.core.logging import get_logger
from section_cache.core.metrics import EMBEDDING_CALLS, EMBEDDING_RETRIES, EMBEDDING_TOKENS
from section_cache.ingest.types import EmbeddedSection
from section_cache.utils.text import flatten_newlines

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")

MIN_CONTENT_LENGTH = 20
ERROR_SNIPPET_LENGTH = 20


@dataclass(slots=True)
class EmbeddingResponse:
    vector: list[float]
    token_usage: int


class EmbeddingProvider(Protocol):
    """Computes one embedding per call.

    Implementations raise ``TransientProviderError`` for failures worth
    retrying and ``ProviderError`` for everything else.
    """

    def embed(self, text: str, model: str) -> EmbeddingResponse: ...


class UsageRecorder(Protocol):
    def record(self, project_id: str, model: str, tokens: int) -> None: ...


class HashedEmbeddingProvider:
    """Deterministic hashed bag-of-words embeddings, usable offline."""

    def __init__(self, dim: int = 384) -> None:
        self.dim = dim

    def embed(self, text: str, model: str) -> EmbeddingResponse:
        tokens = _tokenize(text)
        vector = [0.0] * self.dim
        for token in tokens:
            vector[_hash_token(token, self.dim)] += 1.0
        _normalize(vector)
        return EmbeddingResponse(vector=vector, token_usage=len(tokens))


class OpenAIEmbeddingProvider:
    """Calls an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def embed(self, text: str, model: str) -> EmbeddingResponse:
        try:
            resp = self.session.post(
                f"{self.base_url}/embeddings",
                json={"input": text, "model": model},
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransientProviderError(f"Embedding request failed: {exc}") from exc
        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientProviderError(f"Embedding provider returned {resp.status_code}: {resp.text}")
        if not resp.ok:
            raise ProviderError(f"Embedding provider returned {resp.status_code}: {resp.text}")
        try:
            payload = resp.json()
            vector = payload["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProviderError("Embedding provider returned no embedding") from exc
        usage = payload.get("usage") or {}
        return EmbeddingResponse(vector=list(vector), token_usage=int(usage.get("total_tokens") or 0))


def create_provider(settings: Settings) -> EmbeddingProvider:
    if settings.embedding_provider == "openai":
        return OpenAIEmbeddingProvider(settings.openai_api_key, base_url=settings.openai_base_url)
    return HashedEmbeddingProvider(dim=settings.embedding_dim)


@dataclass(slots=True)
class SectionEmbeddings:
    """Embeddings computed for the chunks of one file."""

    sections: list[EmbeddedSection] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    token_count: int = 0


class SectionEmbedder:
    """Embed a file's chunks with bounded concurrency and exponential backoff."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        model: str,
        min_content_length: int = MIN_CONTENT_LENGTH,
        start_delay: float = 10.0,
        max_attempts: int = 10,
        concurrency: int = 4,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.model = model
        self.min_content_length = min_content_length
        self.start_delay = start_delay
        self.max_attempts = max_attempts
        self.concurrency = max(1, concurrency)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, provider: EmbeddingProvider | None = None) -> "SectionEmbedder":
        return cls(
            provider=provider or create_provider(settings),
            model=settings.embedding_model,
            min_content_length=settings.min_content_length,
            start_delay=settings.embedding_start_delay,
            max_attempts=settings.embedding_max_attempts,
            concurrency=settings.embedding_concurrency,
        )

    def embed_sections(self, chunks: Sequence[str]) -> SectionEmbeddings:
        """Embed every chunk long enough to carry meaning, in chunk order.

        Chunks shorter than ``min_content_length`` are skipped silently.
        A chunk whose embedding ultimately fails is left out and reported in
        ``errors``; the other chunks are unaffected.
        """
        jobs = []
        for ordinal, chunk in enumerate(chunks):
            text = flatten_newlines(chunk)
            if len(text) < self.min_content_length:
                continue
            jobs.append((ordinal, chunk, text))

        result = SectionEmbeddings()
        if not jobs:
            return result
        with ThreadPoolExecutor(max_workers=min(self.concurrency, len(jobs))) as pool:
            futures = [(ordinal, chunk, text, pool.submit(self.embed, text)) for ordinal, chunk, text in jobs]
            for ordinal, chunk, text, future in futures:
                try:
                    response = future.result()
                except Exception as exc:
                    logger.error("Embedding failed for section %s: %s", ordinal, exc)
                    snippet = text[:ERROR_SNIPPET_LENGTH]
                    result.errors.append(
                        f"Unable to generate embeddings for section starting with '{snippet}...': {exc}"
                    )
                    continue
                result.token_count += response.token_usage
                result.sections.append(
                    EmbeddedSection(
                        ordinal=ordinal,
                        content=chunk,
                        embedding=response.vector,
                        token_count=response.token_usage,
                    )
                )
        return result

    def embed(self, text: str) -> EmbeddingResponse:
        """Single provider call, retried on transient errors."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.start_delay),
            retry=retry_if_exception_type(TransientProviderError),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            response = retrying(self.provider.embed, text, self.model)
        except Exception:
            EMBEDDING_CALLS.labels(model=self.model, result="error").inc()
            raise
        EMBEDDING_CALLS.labels(model=self.model, result="ok").inc()
        EMBEDDING_TOKENS.labels(model=self.model).inc(response.token_usage)
        return response

    def _log_retry(self, retry_state: RetryCallState) -> None:
        EMBEDDING_RETRIES.labels(model=self.model).inc()
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Embedding attempt %s/%s failed, retrying in %.1fs: %s",
            retry_state.attempt_number,
            self.max_attempts,
            delay,
            exc,
        )


def as_bytes(vector: Sequence[float]) -> bytes:
    return array("f", vector).tobytes()


def from_bytes(data: bytes) -> list[float]:
    floats = array("f")
    floats.frombytes(data)
    return list(floats)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "EmbeddingResponse",
    "EmbeddingProvider",
    "UsageRecorder",
    "HashedEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "create_provider",
    "SectionEmbeddings",
    "SectionEmbedder",
    "as_bytes",
    "from_bytes",
]
