"""Strategy and content-recommendation synthesis."""

import json
import logging
from typing import Any, Optional, Sequence

from keyword_intel.integrations.fallback import FallbackResolver, Resolved
from keyword_intel.integrations.llm_client import LLMClient
from keyword_intel.integrations.mock_provider import MockProvider
from keyword_intel.modules.keyword_research.schemas import (
    ContentRecommendationsPayload,
    GapAnalysisPayload,
    RankedKeyword,
    StrategyPayload,
)
from keyword_intel.utils.cache import make_cache_key
from keyword_intel.utils.helpers import seed_phrase
from keyword_intel.utils.rate_limiter import RateLimit

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY_LIMIT = RateLimit(15, 60)


class StrategyPlanner:
    """Turn ranked keywords and gap analysis into a plan and content briefs.

    Usage::

        planner = StrategyPlanner(resolver, LLMClient("openai", api_key="..."))
        strategy = await planner.create_strategy(seed, ranked, gaps)
        content = await planner.recommend_content(seed, strategy.payload)
    """

    def __init__(
        self,
        resolver: FallbackResolver,
        llm_client: LLMClient,
        mock: Optional[MockProvider] = None,
        rate_limit: RateLimit = DEFAULT_STRATEGY_LIMIT,
        timeout: Optional[float] = None,
    ):
        self._resolver = resolver
        self._llm = llm_client
        self._mock = mock or MockProvider()
        self._rate_limit = rate_limit
        self._timeout = timeout

    @property
    def service_name(self) -> str:
        return self._llm.service_name

    async def _structured(
        self, operation: str, prompt: str, schema: type,
        params: dict[str, Any], mock, **key_args: Any,
    ) -> Resolved:
        async def live():
            return await self._llm.generate_structured(prompt, schema, params)

        return await self._resolver.resolve(
            self.service_name,
            make_cache_key(self.service_name, operation, **key_args),
            self._rate_limit,
            live if self._llm.configured else None,
            mock,
            timeout=self._timeout,
        )

    async def create_strategy(
        self,
        seed: str,
        ranked: Sequence[RankedKeyword],
        gaps: GapAnalysisPayload,
    ) -> Resolved:
        """Comprehensive keyword strategy (``StrategyPayload``)."""
        phrase = seed_phrase(seed) or seed.strip()
        ranked_rows = [k.model_dump() for k in ranked]
        gap_keywords = [kw for gap in gaps.gapAnalysis.contentGaps for kw in gap.keywords]
        prompt = (
            "Create a comprehensive SEO keyword strategy for " + seed + ".\n\n"
            "KEYWORD DATA:\n" + json.dumps(ranked_rows, indent=2) + "\n\n"
            "COMPETITIVE ANALYSIS:\n" + gaps.model_dump_json(indent=2) + "\n\n"
            "Return JSON with this exact structure:\n"
            '{"executiveSummary": {"keyOpportunities": ["..."], "timeline": "...", '
            '"expectedResults": "...", "resourceNeeds": ["..."]}, '
            '"keywordStrategy": {"primaryKeywords": [{"keyword": "...", '
            '"priority": "high|medium|low", "intent": "informational|commercial|'
            'transactional|navigational"}], "secondaryKeywords": [...], '
            '"keywordClusters": [{"theme": "...", "keywords": ["..."], '
            '"contentType": "blog|landing|resource", "priority": "high|medium|low"}]}, '
            '"contentStrategy": {"contentPillars": ["..."], "gapOpportunities": ["..."]}, '
            '"technicalPriorities": ["..."], "measurement": {"kpis": [{"metric": "...", '
            '"target": "...", "timeframe": "..."}], "milestones": ["..."], '
            '"reportingFrequency": "weekly|monthly"}}'
        )
        logger.info("Synthesizing keyword strategy for %s", seed)
        return await self._structured(
            "strategy", prompt, StrategyPayload,
            {"temperature": 0.3, "max_tokens": 4000},
            lambda: self._mock.strategy(phrase, [k.keyword for k in ranked], gap_keywords),
            seed=seed,
            ranked=ranked_rows,
            gaps=gaps.model_dump(mode="json"),
        )

    async def recommend_content(self, seed: str, strategy: StrategyPayload) -> Resolved:
        """Content briefs derived from the strategy (``ContentRecommendationsPayload``)."""
        phrase = seed_phrase(seed) or seed.strip()
        prompt = (
            "Based on this SEO strategy, generate specific content recommendations:\n\n"
            + strategy.model_dump_json(indent=2) + "\n\n"
            "Return JSON with this exact structure:\n"
            '{"contentPieces": [{"id": "content_1", "title": "...", '
            '"type": "blog|landing|resource|guide", "priority": "high|medium|low", '
            '"targetKeywords": {"primary": "...", "secondary": ["..."], "longTail": ["..."]}, '
            '"searchIntent": "informational|commercial|transactional|navigational", '
            '"estimatedWordCount": 1500, "contentOutline": [{"section": "...", '
            '"subsections": ["..."], "keywords": ["..."]}]}], '
            '"contentSeries": [{"seriesName": "...", "description": "...", "pieces": ["..."]}], '
            '"implementationPlan": {"phase1": {"duration": "...", "focus": "...", "content": ["..."]}}}'
        )
        logger.info("Generating content recommendations for %s", seed)
        return await self._structured(
            "content_recommendations", prompt, ContentRecommendationsPayload,
            {"temperature": 0.4, "max_tokens": 4000},
            lambda: self._mock.content_recommendations(phrase, strategy),
            seed=seed,
            strategy=strategy.model_dump(mode="json"),
        )
