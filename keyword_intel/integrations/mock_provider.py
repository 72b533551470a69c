"""Deterministic synthetic data for every provider capability.

Used when a provider has no credentials and as the last fallback tier when a
live call fails with nothing cached.  Output depends only on the capability
and its arguments, so the same request always produces the same payload.
Keyword and SERP records are tagged ``source=mock``; synthesis payloads
validate against the same schemas live replies must satisfy.
"""

import hashlib
import json
import logging
import random
from typing import Any, Sequence

from keyword_intel.models import KeywordRecord, SerpReport, SerpResult, Source
from keyword_intel.modules.keyword_research.clusterer import (
    DEFAULT_WEIGHTS,
    ScoringWeights,
    classify,
    cluster,
    cluster_theme,
    difficulty,
    infer_intent,
    relevance,
)
from keyword_intel.modules.keyword_research.schemas import (
    ContentRecommendationsPayload,
    GapAnalysisPayload,
    RankedKeywordsPayload,
    SeedKeywordsPayload,
    StrategyPayload,
)
from keyword_intel.modules.keyword_research.serp_metrics import (
    analyze_competitors,
    difficulty_metrics,
)
from keyword_intel.utils.helpers import unique_keywords
from keyword_intel.utils.validators import MAX_KEYWORD_LENGTH

logger = logging.getLogger(__name__)

SUGGESTION_TEMPLATES = (
    "best {seed}",
    "{seed} tools",
    "{seed} software",
    "{seed} guide",
    "how to {seed}",
    "{seed} tutorial",
    "{seed} tips",
    "{seed} strategies",
    "{seed} for beginners",
    "{seed} alternatives",
    "free {seed}",
    "{seed} comparison",
    "{seed} reviews",
    "{seed} pricing",
)

SEED_TEMPLATES = (
    "{seed}",
    "{seed} software",
    "best {seed}",
    "{seed} pricing",
    "{seed} guide",
    "{seed} alternatives",
    "{seed} for small business",
    "{seed} examples",
)

_CONTENT_TYPES = {
    "tools": "landing",
    "pricing": "landing",
    "examples": "resource",
    "guides": "blog",
    "reviews": "blog",
    "comparisons": "blog",
    "general": "blog",
}

_LEVELS = ("high", "medium", "low")


def _fill(templates: Sequence[str], seed: str) -> list[str]:
    phrases = [t.format(seed=seed) for t in templates]
    return [p for p in unique_keywords(phrases) if len(p) <= MAX_KEYWORD_LENGTH]


class MockProvider:
    """One synthetic implementation per capability, keyed by arguments.

    Usage::

        mock = MockProvider()
        records = mock.keyword_metrics(["crm software"], "United States")
        payload = mock.seed_keywords("crm software")
    """

    def __init__(self, weights: ScoringWeights = DEFAULT_WEIGHTS):
        self._weights = weights

    @staticmethod
    def _rng(capability: str, *args: Any) -> random.Random:
        raw = json.dumps([capability, *args], sort_keys=True, default=str).lower()
        seed = int(hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16], 16)
        return random.Random(seed)

    def _record(self, rng: random.Random, keyword: str, seed: str = "") -> KeywordRecord:
        volume = rng.randint(500, 50000)
        competition = round(rng.random(), 2)
        cpc = round(rng.uniform(0.2, 10.0), 2)
        return KeywordRecord(
            keyword=keyword,
            search_volume=volume,
            difficulty=difficulty(competition, cpc, volume, self._weights),
            cpc=cpc,
            intent=infer_intent(keyword),
            source=Source.MOCK,
            competition=competition,
            relevance=relevance(seed, keyword) if seed else None,
        )

    # ------------------------------------------------------------------
    # Keyword data capabilities
    # ------------------------------------------------------------------

    def keyword_metrics(self, keywords: Sequence[str], location: str) -> list[KeywordRecord]:
        records = []
        for keyword in unique_keywords(keywords):
            rng = self._rng("metrics", keyword, location)
            records.append(self._record(rng, keyword))
        return records

    def suggestions(self, seed: str, limit: int, location: str) -> list[KeywordRecord]:
        records = []
        for keyword in _fill(SUGGESTION_TEMPLATES, seed)[:max(0, limit)]:
            rng = self._rng("suggestions", seed, keyword, location)
            records.append(self._record(rng, keyword, seed))
        return records

    def serp_analysis(self, keyword: str, location: str) -> SerpReport:
        rng = self._rng("serp", keyword, location)
        slug = "-".join(keyword.split())
        results = tuple(
            SerpResult(
                position=i,
                title=f"{keyword} - Top Result {i}",
                url=f"https://example{i}.com/{slug}",
                domain=f"example{i}.com",
                description=f"Learn about {keyword} with this comprehensive guide...",
                page_rank=rng.randint(1, 100),
                domain_rank=rng.randint(1, 100),
            )
            for i in range(1, 11)
        )
        return SerpReport(
            keyword=keyword,
            total_results=rng.randint(100_000, 1_100_000),
            top_results=results,
            competitor_analysis=analyze_competitors(results),
            difficulty_metrics=difficulty_metrics(results),
            source=Source.MOCK,
        )

    # ------------------------------------------------------------------
    # Text-generation capabilities
    # ------------------------------------------------------------------

    def seed_keywords(self, seed: str) -> SeedKeywordsPayload:
        rng = self._rng("seed_keywords", seed)
        keywords = _fill(SEED_TEMPLATES, seed) or [seed[:MAX_KEYWORD_LENGTH]]
        return SeedKeywordsPayload.model_validate({
            "seedKeywords": [
                {
                    "keyword": kw,
                    "commercialIntent": rng.randint(30, 95),
                    "searchVolume": rng.choice(_LEVELS),
                    "businessRelevance": relevance(seed, kw),
                    "reasoning": f"Closely related to {seed}",
                }
                for kw in keywords
            ],
            "websiteAnalysis": {
                "businessType": f"{seed} provider",
                "targetAudience": f"Teams evaluating {seed}",
                "primaryOfferings": [seed],
            },
        })

    def ranked_keywords(self, keywords: Sequence[str]) -> RankedKeywordsPayload:
        scored = []
        for kw in unique_keywords(keywords):
            rng = self._rng("intent_ranking", kw)
            score = rng.randint(20, 95)
            if infer_intent(kw).value in ("commercial", "transactional"):
                score = min(100, score + 10)
            scored.append((kw, score, rng))
        scored.sort(key=lambda item: item[1], reverse=True)

        ranked = []
        for rank, (kw, score, rng) in enumerate(scored, start=1):
            ranked.append({
                "keyword": kw,
                "rank": rank,
                "commercialScore": score,
                "purchaseIntent": "high" if score >= 70 else "medium" if score >= 40 else "low",
                "businessValue": rng.randint(30, 100),
                "conversionLikelihood": rng.randint(10, 90),
                "reasoning": f"{infer_intent(kw).value.capitalize()} search intent",
            })
        top = [r["keyword"] for r in ranked]
        return RankedKeywordsPayload.model_validate({
            "rankedKeywords": ranked,
            "insights": {
                "topOpportunity": top[0] if top else "",
                "quickWins": top[:3],
                "longTermTargets": top[3:6],
            },
        })

    def gap_analysis(self, seed: str, records: Sequence[KeywordRecord]) -> GapAnalysisPayload:
        rng = self._rng("gap_analysis", seed, [r.keyword for r in records])
        clusters = cluster(records, self._weights)
        gaps = [
            {
                "opportunity": cluster_theme(c.name, seed),
                "keywords": [m.keyword for m in c.members],
                "difficulty": "low" if c.avg_difficulty < 40 else "medium" if c.avg_difficulty < 70 else "high",
                "potential": f"{c.total_volume} monthly searches",
                "reasoning": f"{c.opportunity.value.capitalize()} opportunity cluster",
            }
            for c in clusters
        ]
        semantic = [
            {
                "theme": cluster_theme(c.name, seed),
                "keywords": [m.keyword for m in c.members],
                "intent": c.members[0].intent.value,
                "competition": rng.choice(_LEVELS),
            }
            for c in clusters
        ]
        long_tail = [
            {
                "keyword": kw,
                "parentKeyword": r.keyword,
                "searchIntent": infer_intent(kw).value,
                "difficulty": max(1, r.difficulty - 15),
            }
            for r in records[:5]
            for kw in [f"{r.keyword} for small business"]
            if len(kw) <= MAX_KEYWORD_LENGTH
        ]
        return GapAnalysisPayload.model_validate({
            "gapAnalysis": {
                "contentGaps": gaps,
                "semanticClusters": semantic,
                "longTailOpportunities": long_tail,
            },
            "competitorWeaknesses": [
                f"Thin coverage of {seed} comparisons",
                f"Few practical {seed} examples",
            ],
            "quickWinOpportunities": [
                r.keyword for r in sorted(records, key=lambda r: r.difficulty)[:3]
            ],
        })

    def strategy(
        self,
        seed: str,
        ranked_keywords: Sequence[str],
        gap_keywords: Sequence[str] = (),
    ) -> StrategyPayload:
        keywords = unique_keywords(list(ranked_keywords) + list(gap_keywords)) or [seed]
        groups: dict[str, list[str]] = {}
        for kw in keywords:
            groups.setdefault(classify(kw), []).append(kw)

        def target(kw: str, priority: str) -> dict[str, str]:
            return {"keyword": kw, "priority": priority, "intent": infer_intent(kw).value}

        return StrategyPayload.model_validate({
            "executiveSummary": {
                "keyOpportunities": [cluster_theme(name, seed) for name in groups][:3],
                "timeline": "3-6 months for initial results",
                "expectedResults": "Steady growth in organic traffic for priority topics",
                "resourceNeeds": ["Content writer", "SEO specialist"],
            },
            "keywordStrategy": {
                "primaryKeywords": [target(kw, "high") for kw in keywords[:3]],
                "secondaryKeywords": [target(kw, "medium") for kw in keywords[3:8]],
                "keywordClusters": [
                    {
                        "theme": cluster_theme(name, seed),
                        "keywords": members,
                        "contentType": _CONTENT_TYPES.get(name, "blog"),
                        "priority": "high" if index == 0 else "medium",
                    }
                    for index, (name, members) in enumerate(groups.items())
                ],
            },
            "contentStrategy": {
                "contentPillars": [cluster_theme(name, seed) for name in groups],
                "gapOpportunities": list(gap_keywords)[:5],
            },
            "technicalPriorities": ["Improve page speed", "Add structured data"],
            "measurement": {
                "kpis": [
                    {"metric": "Organic traffic", "target": "+50%", "timeframe": "6 months"},
                    {"metric": "Keyword rankings", "target": "Top 10 for primary keywords", "timeframe": "6 months"},
                ],
                "milestones": ["Publish pillar content", "Build internal links"],
                "reportingFrequency": "monthly",
            },
        })

    def content_recommendations(self, seed: str, strategy: StrategyPayload) -> ContentRecommendationsPayload:
        rng = self._rng("content_recommendations", seed, strategy.model_dump(mode="json"))
        pieces = []
        for index, group in enumerate(strategy.keywordStrategy.keywordClusters, start=1):
            primary = group.keywords[0]
            content_type = "guide" if group.contentType == "resource" else group.contentType
            pieces.append({
                "id": f"content_{index}",
                "title": f"The Complete {group.theme} Guide",
                "type": content_type,
                "priority": group.priority,
                "targetKeywords": {
                    "primary": primary,
                    "secondary": group.keywords[1:4],
                    "longTail": [f"{primary} for beginners"],
                },
                "searchIntent": infer_intent(primary).value,
                "estimatedWordCount": rng.choice((1200, 1500, 2000, 2500, 3000)),
                "contentOutline": [
                    {"section": "Introduction", "subsections": [], "keywords": [primary]},
                    {"section": f"Understanding {group.theme}", "subsections": ["Key concepts"], "keywords": group.keywords[:2]},
                    {"section": "Conclusion", "subsections": [], "keywords": []},
                ],
            })
        ids = [p["id"] for p in pieces]
        return ContentRecommendationsPayload.model_validate({
            "contentPieces": pieces,
            "contentSeries": [
                {"seriesName": f"{seed} Fundamentals", "description": f"Core {seed} topics", "pieces": ids},
            ],
            "implementationPlan": {
                "phase1": {"duration": "Month 1", "focus": "High-priority pieces", "content": ids[:2]},
                "phase2": {"duration": "Months 2-3", "focus": "Supporting content", "content": ids[2:]},
            },
        })
