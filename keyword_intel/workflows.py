"""Pipeline orchestrator chaining research and synthesis stages into an Analysis."""

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence

from pydantic import BaseModel, ValidationError

from keyword_intel.errors import PipelineStageFailed, RateLimitExceeded
from keyword_intel.integrations.fallback import FallbackResolver, Resolved
from keyword_intel.models import Analysis, Cluster, KeywordRecord, SerpReport
from keyword_intel.modules.keyword_research.clusterer import (
    DEFAULT_WEIGHTS,
    ScoringWeights,
    cluster,
    cluster_theme,
    summarize_clusters,
)
from keyword_intel.modules.keyword_research.researcher import KeywordResearcher
from keyword_intel.modules.keyword_research.schemas import (
    ContentRecommendationsPayload,
    GapAnalysisPayload,
    RankedKeyword,
    RankedKeywordsPayload,
    SeedKeywordsPayload,
    StrategyPayload,
)
from keyword_intel.modules.keyword_research.strategist import StrategyPlanner
from keyword_intel.utils.helpers import normalize_keyword, seed_phrase
from keyword_intel.utils.rate_limiter import RateLimit
from keyword_intel.utils.validators import validate_keyword, validate_seed

logger = logging.getLogger(__name__)

STAGES = (
    ("seed_extraction", "seedKeywords"),
    ("intent_ranking", "rankedKeywords"),
    ("metrics_fetch", "keywordAnalysis"),
    ("suggestion_expansion", "keywordSuggestions"),
    ("gap_analysis", "competitiveGaps"),
    ("strategy_synthesis", "strategy"),
    ("content_recommendations", "contentRecommendations"),
)
MAX_SUGGESTIONS = 100
HIGH_INTENT_THRESHOLD = 70


def _unique_records(records: Sequence[KeywordRecord]) -> list[KeywordRecord]:
    seen: set[str] = set()
    unique: list[KeywordRecord] = []
    for record in records:
        key = normalize_keyword(record.keyword)
        if key not in seen:
            seen.add(key)
            unique.append(record)
    return unique


def _average_volume(records: Sequence[KeywordRecord]) -> int:
    if not records:
        return 0
    return round(sum(r.search_volume for r in records) / len(records))


def _merge_ranking(
    records: Sequence[KeywordRecord], ranked: Sequence[RankedKeyword]
) -> list[dict[str, Any]]:
    """Attach commercial ranking fields to keyword metric rows."""
    by_keyword = {normalize_keyword(k.keyword): k for k in ranked}
    rows = []
    for record in records:
        match = by_keyword.get(normalize_keyword(record.keyword))
        row = record.to_dict()
        row["commercialIntent"] = match.commercialScore if match else 50
        row["rank"] = match.rank if match else None
        row["purchaseIntent"] = match.purchaseIntent if match else "unknown"
        rows.append(row)
    return rows


def _cluster_rows(clusters: Sequence[Cluster], seed: str) -> list[dict[str, Any]]:
    rows = []
    for c in clusters:
        row = c.to_dict()
        row["theme"] = cluster_theme(c.name, seed)
        rows.append(row)
    return rows


class PipelineOrchestrator:
    """Run the seven-stage keyword analysis pipeline and its one-shot operations.

    Stages run strictly in order, each consuming the previous output.  A
    stage that cannot produce valid output, or whose live call is refused by
    the rate limiter, fails the whole run; provider outages alone never do,
    because the resolver degrades to cached or mock data.

    Usage::

        orchestrator = PipelineOrchestrator(resolver, researcher, planner)
        result = await orchestrator.run("https://acme-crm.com")
        if result["status"] == "failed":
            print(result["failedStage"], result["cause"])
    """

    def __init__(
        self,
        resolver: FallbackResolver,
        researcher: KeywordResearcher,
        planner: StrategyPlanner,
        providers: Optional[dict[str, Any]] = None,
        rate_limits: Optional[dict[str, RateLimit]] = None,
        metrics_top_n: int = 10,
        suggestion_limit: int = 20,
        default_location: str = "United States",
        max_tracked_runs: int = 100,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
    ):
        self._resolver = resolver
        self._researcher = researcher
        self._planner = planner
        self._providers = dict(providers or {})
        self._rate_limits = dict(rate_limits or {})
        self._metrics_top_n = metrics_top_n
        self._suggestion_limit = suggestion_limit
        self._default_location = default_location
        self._weights = weights
        self._max_tracked_runs = max_tracked_runs
        self._runs: OrderedDict[str, Analysis] = OrderedDict()
        self._pipeline_status: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Logging helper
    # ------------------------------------------------------------------

    def _log_step(
        self,
        run_id: str,
        step: int,
        total: int,
        description: str,
        status: str = "running",
    ) -> None:
        """Log and record a pipeline step transition."""
        msg = f"[{run_id}] Step {step}/{total}: {description} — {status}"
        if status == "error":
            logger.error(msg)
        else:
            logger.info(msg)
        self._pipeline_status[run_id] = {
            "current_step": step,
            "total_steps": total,
            "description": description,
            "status": status,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

    # ------------------------------------------------------------------
    # Run registry
    # ------------------------------------------------------------------

    def get_run_status(self, run_id: str) -> Optional[dict[str, Any]]:
        """Status of a run started by this orchestrator, or None if unknown."""
        analysis = self._runs.get(run_id)
        if analysis is None:
            return None
        status = {
            "id": analysis.id,
            "seed": analysis.seed,
            "status": analysis.status.value,
            "createdAt": analysis.created_at.isoformat(),
            "completedStages": list(analysis.outputs),
        }
        step = self._pipeline_status.get(run_id)
        if step is not None:
            status["step"] = dict(step)
        if analysis.failed_stage:
            status["failedStage"] = analysis.failed_stage
            status["cause"] = analysis.cause
        return status

    def get_pipeline_status(self) -> dict[str, Any]:
        """Return step status of all runs that have been started."""
        return dict(self._pipeline_status)

    def _track(self, analysis: Analysis) -> None:
        """Register a new run, dropping the oldest finished runs beyond the cap."""
        self._runs[analysis.id] = analysis
        excess = len(self._runs) - self._max_tracked_runs
        if excess <= 0:
            return
        finished = [run_id for run_id, run in self._runs.items() if run.finalized]
        for run_id in finished[:excess]:
            del self._runs[run_id]
            self._pipeline_status.pop(run_id, None)
        logger.debug("Run registry trimmed to %d runs", len(self._runs))

    # ------------------------------------------------------------------
    # Full pipeline (7 stages)
    # ------------------------------------------------------------------

    async def run(
        self,
        seed: str,
        location: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> dict[str, Any]:
        """Run every stage for *seed* (a URL or keyword phrase).

        Steps:
            1. Seed extraction
            2. Intent ranking
            3. Metrics fetch (top-N ranked keywords)
            4. Suggestion expansion (from the top-ranked keyword)
            5. Gap analysis
            6. Strategy synthesis
            7. Content recommendations

        Returns the finalized Analysis rendered for callers: the success
        shape with ``results`` and ``summary``, or ``{id, status: "failed",
        failedStage, cause}``.
        """
        seed = (seed or "").strip()
        analysis = Analysis(seed=seed, location=location or self._default_location)
        self._track(analysis)
        analysis.start()
        total = len(STAGES)
        logger.info("Starting analysis %s for %r", analysis.id, seed)

        valid, error = validate_seed(seed)
        if not valid:
            self._fail(analysis, 1, PipelineStageFailed(STAGES[0][0], error))
            return analysis.to_result()

        steps: dict[str, Callable[[Analysis, dict], Awaitable[Any]]] = {
            "seed_extraction": self._stage_seed_extraction,
            "intent_ranking": self._stage_intent_ranking,
            "metrics_fetch": self._stage_metrics_fetch,
            "suggestion_expansion": self._stage_suggestion_expansion,
            "gap_analysis": self._stage_gap_analysis,
            "strategy_synthesis": self._stage_strategy_synthesis,
            "content_recommendations": self._stage_content_recommendations,
        }
        context: dict[str, Any] = {}

        for index, (stage, result_key) in enumerate(STAGES, start=1):
            if cancel_event is not None and cancel_event.is_set():
                self._fail(analysis, index, PipelineStageFailed(stage, "cancelled"))
                return analysis.to_result()

            self._log_step(analysis.id, index, total, stage)
            try:
                output = await steps[stage](analysis, context)
            except RateLimitExceeded as exc:
                failure = PipelineStageFailed(stage, str(exc), retry_after=exc.retry_after)
            except PipelineStageFailed as exc:
                failure = exc
            except asyncio.CancelledError:
                self._fail(analysis, index, PipelineStageFailed(stage, "cancelled"))
                raise
            except Exception as exc:
                logger.exception("Stage %s raised unexpectedly", stage)
                failure = PipelineStageFailed(stage, f"{type(exc).__name__}: {exc}")
            else:
                analysis.record(result_key, output)
                self._log_step(analysis.id, index, total, stage, "done")
                continue
            self._fail(analysis, index, failure)
            return analysis.to_result()

        all_keywords = _unique_records(context["metrics"] + context["suggestions"])
        analysis.record(
            "keywordClusters",
            _cluster_rows(cluster(all_keywords, self._weights), context["phrase"]),
        )
        analysis.complete(self._summarize(context))
        logger.info("Analysis %s completed: %s", analysis.id, analysis.summary)
        return analysis.to_result()

    def _fail(self, analysis: Analysis, step: int, failure: PipelineStageFailed) -> None:
        analysis.fail(failure.stage, failure.cause, failure.retry_after)
        self._log_step(analysis.id, step, len(STAGES), failure.stage, "error")
        logger.error("Analysis %s failed at %s: %s", analysis.id, failure.stage, failure.cause)

    @staticmethod
    def _summarize(context: dict[str, Any]) -> dict[str, Any]:
        ranking: RankedKeywordsPayload = context["ranking"]
        content: ContentRecommendationsPayload = context["content"]
        return {
            "totalKeywords": len(context["metrics"]),
            "totalSuggestions": len(context["suggestions"]),
            "contentPieces": len(content.contentPieces),
            "topOpportunity": ranking.insights.topOpportunity or "Not identified",
            "estimatedTrafficPotential": sum(r.search_volume for r in context["metrics"]),
        }

    # ------------------------------------------------------------------
    # Output validation
    # ------------------------------------------------------------------

    @staticmethod
    def _expect_payload(stage: str, resolved: Resolved, schema: type[BaseModel]) -> BaseModel:
        """Re-validate a resolved synthesis payload against its schema."""
        payload = resolved.payload
        if isinstance(payload, schema):
            return payload
        try:
            return schema.model_validate(payload)
        except ValidationError as exc:
            raise PipelineStageFailed(
                stage, f"{schema.__name__} validation failed ({resolved.source.value}): "
                f"{exc.error_count()} errors",
            ) from exc

    @staticmethod
    def _expect_records(stage: str, resolved: Resolved) -> list[KeywordRecord]:
        payload = resolved.payload
        if not isinstance(payload, list) or not all(
            isinstance(r, KeywordRecord) for r in payload
        ):
            raise PipelineStageFailed(stage, "provider returned no keyword records")
        return _unique_records(payload)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _stage_seed_extraction(self, analysis: Analysis, context: dict) -> dict:
        context["phrase"] = seed_phrase(analysis.seed) or analysis.seed
        resolved = await self._researcher.extract_seed_keywords(analysis.seed)
        payload = self._expect_payload("seed_extraction", resolved, SeedKeywordsPayload)
        context["seeds"] = [k.keyword for k in payload.seedKeywords]
        return {**payload.model_dump(mode="json"), "source": resolved.source.value}

    async def _stage_intent_ranking(self, analysis: Analysis, context: dict) -> dict:
        resolved = await self._researcher.rank_keywords(context["seeds"])
        payload = self._expect_payload("intent_ranking", resolved, RankedKeywordsPayload)
        context["ranking"] = payload
        context["ranked"] = payload.ordered()
        output = payload.model_dump(mode="json")
        output["rankedKeywords"] = [k.model_dump(mode="json") for k in context["ranked"]]
        output["source"] = resolved.source.value
        return output

    async def _stage_metrics_fetch(self, analysis: Analysis, context: dict) -> list[dict]:
        top = [k.keyword for k in context["ranked"][:self._metrics_top_n]]
        resolved = await self._researcher.fetch_keyword_metrics(top, analysis.location)
        records = self._expect_records("metrics_fetch", resolved)
        context["metrics"] = records
        return _merge_ranking(records, context["ranked"])

    async def _stage_suggestion_expansion(self, analysis: Analysis, context: dict) -> list[dict]:
        top = context["ranked"][0].keyword
        resolved = await self._researcher.fetch_suggestions(
            top, self._suggestion_limit, analysis.location
        )
        records = self._expect_records("suggestion_expansion", resolved)
        context["suggestions"] = records[:self._suggestion_limit]
        return [r.to_dict() for r in context["suggestions"]]

    async def _stage_gap_analysis(self, analysis: Analysis, context: dict) -> dict:
        resolved = await self._researcher.analyze_gaps(analysis.seed, context["metrics"])
        payload = self._expect_payload("gap_analysis", resolved, GapAnalysisPayload)
        context["gaps"] = payload
        return {**payload.model_dump(mode="json"), "source": resolved.source.value}

    async def _stage_strategy_synthesis(self, analysis: Analysis, context: dict) -> dict:
        resolved = await self._planner.create_strategy(
            analysis.seed, context["ranked"], context["gaps"]
        )
        payload = self._expect_payload("strategy_synthesis", resolved, StrategyPayload)
        context["strategy"] = payload
        return {**payload.model_dump(mode="json"), "source": resolved.source.value}

    async def _stage_content_recommendations(self, analysis: Analysis, context: dict) -> dict:
        resolved = await self._planner.recommend_content(analysis.seed, context["strategy"])
        payload = self._expect_payload(
            "content_recommendations", resolved, ContentRecommendationsPayload
        )
        context["content"] = payload
        return {**payload.model_dump(mode="json"), "source": resolved.source.value}

    # ------------------------------------------------------------------
    # One-shot operations
    # ------------------------------------------------------------------

    async def analyze_keywords(
        self, keywords: Sequence[str], location: Optional[str] = None
    ) -> dict[str, Any]:
        """Metrics for an explicit keyword list, merged with intent ranking."""
        for kw in keywords:
            valid, error = validate_keyword(kw)
            if not valid:
                raise ValueError(f"{kw!r}: {error}")
        if not keywords:
            raise ValueError("At least one keyword is required.")
        location = location or self._default_location

        metrics = await self._researcher.fetch_keyword_metrics(keywords, location)
        records = self._expect_records("metrics_fetch", metrics)
        ranking = await self._researcher.rank_keywords(keywords)
        ranked = self._expect_payload("intent_ranking", ranking, RankedKeywordsPayload)

        rows = _merge_ranking(records, ranked.ordered())
        return {
            "keywords": rows,
            "location": location,
            "sources": {"metrics": metrics.source.value, "ranking": ranking.source.value},
            "summary": {
                "totalKeywords": len(rows),
                "averageVolume": _average_volume(records),
                "highIntentKeywords": sum(
                    1 for row in rows if row["commercialIntent"] > HIGH_INTENT_THRESHOLD
                ),
            },
        }

    async def keyword_suggestions(
        self, keyword: str, limit: int = 50, location: Optional[str] = None
    ) -> dict[str, Any]:
        """Related keywords for *keyword*; *limit* is capped at 100."""
        valid, error = validate_keyword(keyword)
        if not valid:
            raise ValueError(error)
        limit = max(1, min(int(limit), MAX_SUGGESTIONS))
        resolved = await self._researcher.fetch_suggestions(keyword.strip(), limit, location)
        records = self._expect_records("suggestion_expansion", resolved)[:limit]
        return {
            "seedKeyword": keyword.strip(),
            "suggestions": [r.to_dict() for r in records],
            "source": resolved.source.value,
            "summary": {
                "totalSuggestions": len(records),
                "averageVolume": _average_volume(records),
                "totalPotentialTraffic": sum(r.search_volume for r in records),
            },
        }

    async def serp_analysis(
        self, keyword: str, location: Optional[str] = None
    ) -> dict[str, Any]:
        valid, error = validate_keyword(keyword)
        if not valid:
            raise ValueError(error)
        resolved = await self._researcher.fetch_serp_analysis(keyword.strip(), location)
        if not isinstance(resolved.payload, SerpReport):
            raise PipelineStageFailed("serp_analysis", "provider returned no SERP report")
        return resolved.payload.to_dict()

    async def discover_clusters(
        self, seed: str, limit: int = 20, location: Optional[str] = None
    ) -> dict[str, Any]:
        """Cluster suggestions for *seed* together with the seed's own metrics."""
        valid, error = validate_seed(seed)
        if not valid:
            raise ValueError(error)
        phrase = seed_phrase(seed) or seed.strip()
        limit = max(1, min(int(limit), MAX_SUGGESTIONS))

        suggestions = await self._researcher.fetch_suggestions(phrase, limit, location)
        metrics = await self._researcher.fetch_keyword_metrics([phrase], location)
        records = _unique_records(
            self._expect_records("metrics_fetch", metrics)
            + self._expect_records("suggestion_expansion", suggestions)[:limit]
        )
        clusters = cluster(records, self._weights)
        return {
            "seed": phrase,
            "clusters": _cluster_rows(clusters, phrase),
            "summary": summarize_clusters(clusters),
        }

    # ------------------------------------------------------------------
    # Health and status
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, Any]:
        """Probe every provider concurrently and collect all outcomes."""
        names = list(self._providers)
        outcomes = await asyncio.gather(
            *(self._providers[name].health_check() for name in names),
            return_exceptions=True,
        )
        services: dict[str, Any] = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Health check failed for %s: %s", name, outcome)
                services[name] = {"service": name, "status": "unhealthy", "error": str(outcome)}
            else:
                services[name] = {"service": name, **outcome}
        healthy = all(s.get("status") == "healthy" for s in services.values())
        return {
            "status": "healthy" if healthy else "degraded",
            "services": services,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def service_status(self) -> dict[str, Any]:
        """Configuration and live usage of every provider, plus cache stats."""
        limiter = self._resolver.rate_limiter
        services: dict[str, Any] = {}
        for name, provider in self._providers.items():
            configured = bool(getattr(provider, "configured", False))
            entry: dict[str, Any] = {
                "configured": configured,
                "mode": "live" if configured else "mock",
            }
            limit = self._rate_limits.get(name)
            if limit is not None:
                entry["rateLimit"] = {
                    "maxRequests": limit.max_requests,
                    "windowSeconds": limit.window_seconds,
                    "used": limiter.usage(name, limit.window_seconds),
                }
            if hasattr(provider, "get_usage_summary"):
                entry["usage"] = provider.get_usage_summary()
            services[name] = entry
        return {
            "services": services,
            "cache": self._resolver.cache.stats(),
            "degradedResponses": self._resolver.degraded_count,
        }

    def clear_cache(self) -> None:
        self._resolver.cache.clear()
        logger.info("Result cache cleared")
