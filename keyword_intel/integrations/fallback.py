"""Cache-then-mock degradation around live provider calls.

Resolution order for one request:

1. No live call configured (missing credentials): serve the mock directly.
2. Ask the rate limiter.  A rejection raises ``RateLimitExceeded`` and is
   never masked, because the caller genuinely has to wait.
3. Run the live call (optionally under a timeout).  On success the payload
   is cached and returned tagged ``live``.
4. On ``ProviderUnavailable`` or ``MalformedResponse`` serve the last good
   payload for the same cache key (tagged ``cached``), else the mock
   (tagged ``mock``).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from keyword_intel.errors import MalformedResponse, ProviderUnavailable
from keyword_intel.models import KeywordRecord, SerpReport, Source
from keyword_intel.utils.cache import MISS, ResultCache
from keyword_intel.utils.rate_limiter import RateLimit, RateLimiter

logger = logging.getLogger(__name__)

LiveCall = Callable[[], Awaitable[Any]]
MockCall = Callable[[], Any]


@dataclass(frozen=True)
class Resolved:
    """A payload together with where it came from."""

    payload: Any
    source: Source

    @property
    def degraded(self) -> bool:
        return self.source is not Source.LIVE


def tag_source(payload: Any, source: Source) -> Any:
    """Stamp *source* onto keyword and SERP records; other payloads pass through."""
    if isinstance(payload, (KeywordRecord, SerpReport)):
        return payload.with_source(source)
    if isinstance(payload, list):
        return [tag_source(item, source) for item in payload]
    return payload


class FallbackResolver:
    """Gate, cache and degrade calls to live providers.

    Usage::

        resolver = FallbackResolver(RateLimiter(), ResultCache())
        resolved = await resolver.resolve(
            "dataforseo", key, RateLimit(100, 86400),
            live=lambda: client.fetch_suggestions("crm", 20, "United States"),
            mock=lambda: mock.suggestions("crm", 20, "United States"),
        )
        resolved.payload, resolved.source
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        cache: ResultCache,
        ttl: Optional[float] = None,
    ):
        self._limiter = rate_limiter
        self._cache = cache
        self._ttl = ttl
        self.degraded_count = 0

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._limiter

    @property
    def cache(self) -> ResultCache:
        return self._cache

    async def resolve(
        self,
        service: str,
        cache_key: str,
        rate_limit: RateLimit,
        live: Optional[LiveCall],
        mock: MockCall,
        timeout: Optional[float] = None,
    ) -> Resolved:
        if live is None:
            logger.debug("%s not configured; serving mock for %s", service, cache_key)
            return Resolved(tag_source(mock(), Source.MOCK), Source.MOCK)

        self._limiter.acquire(service, rate_limit)

        try:
            if timeout is not None:
                payload = await asyncio.wait_for(live(), timeout=timeout)
            else:
                payload = await live()
        except asyncio.TimeoutError:
            return self._degrade(
                service, cache_key, mock,
                ProviderUnavailable(service, f"timed out after {timeout:.0f}s"),
            )
        except (ProviderUnavailable, MalformedResponse) as exc:
            return self._degrade(service, cache_key, mock, exc)

        self._cache.set(cache_key, payload, self._ttl)
        return Resolved(tag_source(payload, Source.LIVE), Source.LIVE)

    def _degrade(
        self,
        service: str,
        cache_key: str,
        mock: MockCall,
        error: Exception,
    ) -> Resolved:
        self.degraded_count += 1
        cached = self._cache.get(cache_key)
        if cached is not MISS:
            logger.warning("%s degraded (%s); serving cached result", service, error)
            return Resolved(tag_source(cached, Source.CACHED), Source.CACHED)
        logger.warning("%s degraded (%s); serving mock data", service, error)
        return Resolved(tag_source(mock(), Source.MOCK), Source.MOCK)
