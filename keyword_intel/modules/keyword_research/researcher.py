"""Keyword research stages: seed extraction, intent ranking, metrics and gap analysis.

Every call goes through the ``FallbackResolver`` so a missing or failing
provider degrades to cached or mock data instead of aborting research.
"""

import json
import logging
from typing import Any, Optional, Sequence

from keyword_intel.integrations.dataforseo import DataForSEOClient
from keyword_intel.integrations.fallback import FallbackResolver, Resolved
from keyword_intel.integrations.llm_client import LLMClient
from keyword_intel.integrations.mock_provider import MockProvider
from keyword_intel.models import KeywordRecord
from keyword_intel.modules.keyword_research.schemas import (
    GapAnalysisPayload,
    RankedKeywordsPayload,
    SeedKeywordsPayload,
)
from keyword_intel.utils.cache import make_cache_key
from keyword_intel.utils.helpers import seed_phrase, unique_keywords
from keyword_intel.utils.rate_limiter import RateLimit
from keyword_intel.utils.validators import is_url

logger = logging.getLogger(__name__)

DEFAULT_LLM_LIMIT = RateLimit(15, 60)
DEFAULT_METRICS_LIMIT = RateLimit(100, 86400)


class KeywordResearcher:
    """Research-side provider access for the analysis pipeline.

    Combines a text-generation client (seed extraction, intent ranking and
    gap analysis) with the DataForSEO client (metrics, suggestions, SERP).

    Usage::

        researcher = KeywordResearcher(resolver, llm_client, dataforseo)
        seeds = await researcher.extract_seed_keywords("https://acme-crm.com")
        ranked = await researcher.rank_keywords(
            [k.keyword for k in seeds.payload.seedKeywords]
        )
        metrics = await researcher.fetch_keyword_metrics(["crm software"])
    """

    def __init__(
        self,
        resolver: FallbackResolver,
        llm_client: LLMClient,
        data_client: DataForSEOClient,
        mock: Optional[MockProvider] = None,
        rate_limits: Optional[dict[str, RateLimit]] = None,
        timeout: Optional[float] = None,
        location: str = "United States",
    ):
        self._resolver = resolver
        self._llm = llm_client
        self._data = data_client
        self._mock = mock or MockProvider()
        self._limits = dict(rate_limits or {})
        self._timeout = timeout
        self._location = location

    def _limit(self, service: str, default: RateLimit) -> RateLimit:
        return self._limits.get(service, default)

    async def _llm_call(
        self,
        operation: str,
        prompt: str,
        schema: type,
        params: dict[str, Any],
        mock,
        **key_args: Any,
    ) -> Resolved:
        service = self._llm.service_name

        async def live():
            return await self._llm.generate_structured(prompt, schema, params)

        return await self._resolver.resolve(
            service,
            make_cache_key(service, operation, **key_args),
            self._limit(service, DEFAULT_LLM_LIMIT),
            live if self._llm.configured else None,
            mock,
            timeout=self._timeout,
        )

    async def _data_call(self, operation: str, live, mock, **key_args: Any) -> Resolved:
        service = self._data.service_name
        return await self._resolver.resolve(
            service,
            make_cache_key(service, operation, **key_args),
            self._limit(service, DEFAULT_METRICS_LIMIT),
            live if self._data.configured else None,
            mock,
            timeout=self._timeout,
        )

    # ------------------------------------------------------------------
    # Text-generation stages
    # ------------------------------------------------------------------

    async def extract_seed_keywords(self, seed: str) -> Resolved:
        """Candidate seed keywords for a URL or phrase (``SeedKeywordsPayload``)."""
        phrase = seed_phrase(seed) or seed.strip()
        subject = "the website " + seed if is_url(seed) else 'the topic "' + seed + '"'
        prompt = (
            "Analyze " + subject + " and identify 10-15 high-value seed keywords "
            "that represent its core business offerings.\n\n"
            "Focus on keywords with commercial intent, relevance to the primary "
            "products or services, and a realistic ranking opportunity.\n\n"
            "Return JSON with this exact structure:\n"
            '{"seedKeywords": [{"keyword": "...", "commercialIntent": 0-100, '
            '"searchVolume": "high|medium|low", "businessRelevance": 0-100, '
            '"reasoning": "..."}], "websiteAnalysis": {"businessType": "...", '
            '"targetAudience": "...", "primaryOfferings": ["..."]}}'
        )
        logger.info("Extracting seed keywords for %s", seed)
        return await self._llm_call(
            "seed_keywords", prompt, SeedKeywordsPayload,
            {"temperature": 0.3, "max_tokens": 1000},
            lambda: self._mock.seed_keywords(phrase),
            seed=seed,
        )

    async def rank_keywords(self, keywords: Sequence[str]) -> Resolved:
        """Order keywords by commercial value (``RankedKeywordsPayload``)."""
        keywords = unique_keywords(keywords)
        prompt = (
            "Rank these keywords by commercial intent and business value:\n\n"
            + json.dumps(keywords) + "\n\n"
            "Consider purchase intent, conversion likelihood and business value.\n\n"
            "Return JSON with this exact structure:\n"
            '{"rankedKeywords": [{"keyword": "...", "rank": 1, "commercialScore": 0-100, '
            '"purchaseIntent": "high|medium|low", "businessValue": 0-100, '
            '"conversionLikelihood": 0-100, "reasoning": "..."}], '
            '"insights": {"topOpportunity": "...", "quickWins": ["..."], '
            '"longTermTargets": ["..."]}}'
        )
        logger.info("Ranking %d keywords by intent", len(keywords))
        return await self._llm_call(
            "intent_ranking", prompt, RankedKeywordsPayload,
            {"temperature": 0.2, "max_tokens": 1200},
            lambda: self._mock.ranked_keywords(keywords),
            keywords=keywords,
        )

    async def analyze_gaps(
        self, seed: str, records: Sequence[KeywordRecord]
    ) -> Resolved:
        """Competitive content gaps over metric-enriched keywords (``GapAnalysisPayload``)."""
        phrase = seed_phrase(seed) or seed.strip()
        rows = [r.to_dict() for r in records]
        prompt = (
            "Perform a competitive gap analysis for these keywords:\n\n"
            + json.dumps(rows, indent=2) + "\n\n"
            "Identify content gaps, semantic keyword clusters and long-tail "
            "opportunities competitors are missing.\n\n"
            "Return JSON with this exact structure:\n"
            '{"gapAnalysis": {"contentGaps": [{"opportunity": "...", "keywords": ["..."], '
            '"difficulty": "low|medium|high", "potential": "...", "reasoning": "..."}], '
            '"semanticClusters": [{"theme": "...", "keywords": ["..."], '
            '"intent": "informational|commercial|transactional|navigational", '
            '"competition": "low|medium|high"}], "longTailOpportunities": '
            '[{"keyword": "...", "parentKeyword": "...", "searchIntent": "...", '
            '"difficulty": 1-100}]}, "competitorWeaknesses": ["..."], '
            '"quickWinOpportunities": ["..."]}'
        )
        logger.info("Running gap analysis over %d keywords", len(rows))
        return await self._llm_call(
            "gap_analysis", prompt, GapAnalysisPayload,
            {"temperature": 0.4, "max_tokens": 1500},
            lambda: self._mock.gap_analysis(phrase, list(records)),
            seed=seed,
            keywords=[r.keyword for r in records],
        )

    # ------------------------------------------------------------------
    # Keyword data lookups
    # ------------------------------------------------------------------

    async def fetch_keyword_metrics(
        self, keywords: Sequence[str], location: Optional[str] = None
    ) -> Resolved:
        """``KeywordRecord`` list with volume, CPC, competition and difficulty."""
        keywords = unique_keywords(keywords)
        location = location or self._location
        return await self._data_call(
            "keyword_metrics",
            lambda: self._data.fetch_keyword_metrics(keywords, location),
            lambda: self._mock.keyword_metrics(keywords, location),
            keywords=keywords, location=location,
        )

    async def fetch_suggestions(
        self, seed: str, limit: int, location: Optional[str] = None
    ) -> Resolved:
        """Related keywords for *seed*, each scored for relevance."""
        location = location or self._location
        return await self._data_call(
            "keyword_suggestions",
            lambda: self._data.fetch_suggestions(seed, limit, location),
            lambda: self._mock.suggestions(seed, limit, location),
            seed=seed, limit=limit, location=location,
        )

    async def fetch_serp_analysis(
        self, keyword: str, location: Optional[str] = None
    ) -> Resolved:
        location = location or self._location
        return await self._data_call(
            "serp_analysis",
            lambda: self._data.fetch_serp_analysis(keyword, location),
            lambda: self._mock.serp_analysis(keyword, location),
            keyword=keyword, location=location,
        )
