"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

FILES_TOTAL = Counter(
    "secc_files_total",
    "Files seen by training runs, by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

EMBEDDING_CALLS = Counter(
    "secc_embedding_calls_total",
    "Embedding provider calls, by result",
    labelnames=("model", "result"),
    registry=REGISTRY,
)

EMBEDDING_RETRIES = Counter(
    "secc_embedding_retries_total",
    "Embedding calls retried after a transient provider error",
    labelnames=("model",),
    registry=REGISTRY,
)

EMBEDDING_TOKENS = Counter(
    "secc_embedding_tokens_total",
    "Tokens reported by the embedding provider",
    labelnames=("model",),
    registry=REGISTRY,
)

RUN_DURATION = Histogram(
    "secc_run_duration_seconds",
    "Duration of a training run",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "FILES_TOTAL",
    "EMBEDDING_CALLS",
    "EMBEDDING_RETRIES",
    "EMBEDDING_TOKENS",
    "RUN_DURATION",
    "metrics_response",
]
