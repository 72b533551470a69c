"""Exception taxonomy for provider access and pipeline execution.

Only ``RateLimitExceeded`` and ``PipelineStageFailed`` are meant to reach
callers of the orchestrator.  ``ProviderUnavailable`` and ``MalformedResponse``
are absorbed by the fallback resolver, and ``CacheCorruption`` is always
treated as a cache miss.
"""

from typing import Optional


class KeywordIntelError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(KeywordIntelError):
    """Settings could not be loaded or are inconsistent."""


class RateLimitExceeded(KeywordIntelError):
    """A live call was refused by the sliding-window limiter."""

    def __init__(self, service: str, retry_after: float):
        self.service = service
        self.retry_after = max(0.0, float(retry_after))
        super().__init__(
            f"Rate limit exceeded for {service}: retry after {self.retry_after:.1f}s"
        )


class ProviderError(KeywordIntelError):
    """Common parent of upstream provider failures."""

    def __init__(self, service: str, reason: str):
        self.service = service
        self.reason = reason
        super().__init__(f"{service}: {reason}")


class ProviderUnavailable(ProviderError):
    """Network, auth or timeout failure talking to an upstream service."""


class MalformedResponse(ProviderError):
    """Upstream payload could not be parsed into the expected shape."""


class CacheCorruption(KeywordIntelError):
    """A cache entry could not be decoded; readers treat it as a miss."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Corrupt cache entry {key!r}: {reason}")


class PipelineStageFailed(KeywordIntelError):
    """A pipeline stage could not produce valid output."""

    def __init__(
        self,
        stage: str,
        cause: str,
        retry_after: Optional[float] = None,
    ):
        self.stage = stage
        self.cause = cause
        self.retry_after = retry_after
        super().__init__(f"Stage {stage!r} failed: {cause}")
