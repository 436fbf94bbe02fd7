"""Exception hierarchy for Section Cache."""

from __future__ import annotations


class SectionCacheError(Exception):
    """Base class for all errors raised by the pipeline."""


class ParseError(SectionCacheError):
    """Content could not be normalized in its declared or fallback dialect."""


class MdxSyntaxError(ParseError):
    """Content is not valid MDX."""


class MarkdocSyntaxError(ParseError):
    """Content is not valid Markdoc."""


class ProviderError(SectionCacheError):
    """Embedding provider failed in a way that retrying will not fix."""


class TransientProviderError(ProviderError):
    """Embedding provider failed in a retryable way (rate limit, 5xx)."""


class PersistenceError(SectionCacheError):
    """Writing file metadata or sections failed."""


class RunInProgressError(SectionCacheError):
    """A run was started while another one is still active."""


__all__ = [
    "SectionCacheError",
    "ParseError",
    "MdxSyntaxError",
    "MarkdocSyntaxError",
    "ProviderError",
    "TransientProviderError",
    "PersistenceError",
    "RunInProgressError",
]
