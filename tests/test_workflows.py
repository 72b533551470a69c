"""Tests for the seven-stage pipeline orchestrator and its one-shot operations."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_record
from keyword_intel.errors import PipelineStageFailed, ProviderUnavailable
from keyword_intel.integrations.dataforseo import SUGGESTIONS_PATH, DataForSEOClient
from keyword_intel.integrations.fallback import Resolved
from keyword_intel.models import Source
from keyword_intel.modules.keyword_research.researcher import KeywordResearcher
from keyword_intel.modules.keyword_research.strategist import StrategyPlanner
from keyword_intel.utils.rate_limiter import RateLimit
from keyword_intel.workflows import STAGES, PipelineOrchestrator

RESULT_KEYS = {key for _, key in STAGES} | {"keywordClusters"}


def _live_llm_orchestrator(resolver, mock_provider, offline_clients, llm, rate_limits=None):
    researcher = KeywordResearcher(
        resolver, llm, offline_clients["data"], mock=mock_provider, rate_limits=rate_limits
    )
    planner = StrategyPlanner(resolver, offline_clients["strategy"], mock=mock_provider)
    return PipelineOrchestrator(
        resolver, researcher, planner,
        providers={"perplexity": llm, "dataforseo": offline_clients["data"]},
    )


def _rebuilt(orchestrator, **kwargs):
    """Same collaborators as *orchestrator*, different pipeline settings."""
    return PipelineOrchestrator(
        orchestrator._resolver, orchestrator._researcher, orchestrator._planner,
        providers=orchestrator._providers, **kwargs
    )


class TestFullRun:

    @pytest.mark.asyncio
    async def test_mock_run_completes(self, orchestrator):
        result = await orchestrator.run("crm software")

        assert result["status"] == "completed"
        assert set(result["results"]) == RESULT_KEYS
        assert result["seed"] == "crm software"
        assert result["location"] == "United States"
        assert result["results"]["seedKeywords"]["source"] == "mock"

        summary = result["summary"]
        analysis = result["results"]["keywordAnalysis"]
        assert summary["totalKeywords"] == len(analysis)
        assert summary["totalSuggestions"] == len(result["results"]["keywordSuggestions"])
        assert summary["contentPieces"] == len(
            result["results"]["contentRecommendations"]["contentPieces"]
        )
        assert summary["estimatedTrafficPotential"] == sum(r["searchVolume"] for r in analysis)
        assert summary["topOpportunity"] != "Not identified"

    @pytest.mark.asyncio
    async def test_ranked_rows_are_merged_into_metrics(self, orchestrator):
        result = await orchestrator.run("crm software")
        ranked = result["results"]["rankedKeywords"]["rankedKeywords"]
        assert [k["rank"] for k in ranked] == sorted(k["rank"] for k in ranked)
        for row in result["results"]["keywordAnalysis"]:
            assert {"commercialIntent", "rank", "purchaseIntent", "source"} <= set(row)

    @pytest.mark.asyncio
    async def test_clusters_partition_metrics_and_suggestions(self, orchestrator):
        result = await orchestrator.run("https://acme-crm.com")
        assert result["status"] == "completed"
        clustered = [
            kw["keyword"]
            for c in result["results"]["keywordClusters"]
            for kw in c["keywords"]
        ]
        assert len(clustered) == len(set(clustered))
        assert all("theme" in c for c in result["results"]["keywordClusters"])

    @pytest.mark.asyncio
    async def test_same_seed_same_results(self, orchestrator):
        first = await orchestrator.run("crm software")
        second = await orchestrator.run("crm software")
        assert first["results"] == second["results"]
        assert first["id"] != second["id"]

    @pytest.mark.asyncio
    async def test_run_status_is_tracked(self, orchestrator):
        result = await orchestrator.run("crm software")
        status = orchestrator.get_run_status(result["id"])
        assert status["status"] == "completed"
        assert status["step"]["current_step"] == len(STAGES)
        assert status["step"]["status"] == "done"
        assert orchestrator.get_run_status("analysis_unknown") is None
        assert result["id"] in orchestrator.get_pipeline_status()

    @pytest.mark.asyncio
    async def test_registry_keeps_latest_finished_runs(self, orchestrator):
        bounded = _rebuilt(orchestrator, max_tracked_runs=2)

        ids = [(await bounded.run("crm software"))["id"] for _ in range(3)]

        assert bounded.get_run_status(ids[0]) is None
        assert ids[0] not in bounded.get_pipeline_status()
        assert [bounded.get_run_status(i)["status"] for i in ids[1:]] == ["completed"] * 2


class TestStageCaps:

    @pytest.mark.asyncio
    async def test_metrics_and_suggestions_are_capped(self, orchestrator, mock_provider):
        ranking = mock_provider.ranked_keywords([f"crm idea {i}" for i in range(12)])
        capped = _rebuilt(orchestrator, metrics_top_n=3, suggestion_limit=4)
        researcher = capped._researcher
        researcher.rank_keywords = AsyncMock(return_value=Resolved(ranking, Source.MOCK))
        metrics = AsyncMock(wraps=researcher.fetch_keyword_metrics)
        researcher.fetch_keyword_metrics = metrics
        suggestions = AsyncMock(return_value=Resolved(
            [make_record(f"crm extra {i}", volume=5000 - i) for i in range(10)], Source.LIVE
        ))
        researcher.fetch_suggestions = suggestions

        result = await capped.run("crm")

        assert result["status"] == "completed"
        top_three = [k.keyword for k in ranking.ordered()[:3]]
        assert metrics.await_args.args[0] == top_three
        assert [row["keyword"] for row in result["results"]["keywordAnalysis"]] == top_three
        assert suggestions.await_args.args[0] == top_three[0]
        assert suggestions.await_args.args[1] == 4
        assert len(result["results"]["keywordSuggestions"]) == 4
        assert result["summary"]["totalSuggestions"] == 4


class TestStageFailures:

    @pytest.mark.asyncio
    async def test_metrics_stage_failure_fails_run(self, orchestrator):
        orchestrator._researcher.fetch_keyword_metrics = AsyncMock(
            side_effect=PipelineStageFailed("metrics_fetch", "no metrics")
        )

        result = await orchestrator.run("crm software")

        assert result["status"] == "failed"
        assert result["failedStage"] == "metrics_fetch"
        assert result["cause"] == "no metrics"
        assert "results" not in result
        status = orchestrator.get_run_status(result["id"])
        assert status["completedStages"] == ["seedKeywords", "rankedKeywords"]
        assert status["status"] == "failed"
        assert status["step"]["status"] == "error"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self, orchestrator):
        orchestrator._researcher.fetch_suggestions = AsyncMock(side_effect=RuntimeError("boom"))
        result = await orchestrator.run("crm software")
        assert result["failedStage"] == "suggestion_expansion"
        assert "RuntimeError" in result["cause"]

    @pytest.mark.asyncio
    async def test_invalid_strategy_payload_fails_stage(self, orchestrator):
        orchestrator._planner.create_strategy = AsyncMock(
            return_value=Resolved({"executiveSummary": {}}, Source.LIVE)
        )
        result = await orchestrator.run("crm software")
        assert result["status"] == "failed"
        assert result["failedStage"] == "strategy_synthesis"
        assert "StrategyPayload" in result["cause"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", ["", "   ", "x" * 101, "ftp://example.com"])
    async def test_invalid_seed_fails_first_stage(self, orchestrator, seed):
        result = await orchestrator.run(seed)
        assert result["status"] == "failed"
        assert result["failedStage"] == "seed_extraction"

    @pytest.mark.asyncio
    async def test_rate_limit_fails_run_with_retry_after(
        self, resolver, mock_provider, offline_clients, mock_llm_client
    ):
        mock_llm_client.generate_structured.return_value = mock_provider.seed_keywords("crm")
        orchestrator = _live_llm_orchestrator(
            resolver, mock_provider, offline_clients, mock_llm_client,
            rate_limits={"perplexity": RateLimit(1, 60)},
        )

        result = await orchestrator.run("crm")

        assert result["status"] == "failed"
        assert result["failedStage"] == "intent_ranking"
        assert result["retryAfter"] == 60.0
        assert mock_llm_client.generate_structured.await_count == 1


class TestDegradation:

    @pytest.mark.asyncio
    async def test_live_outage_still_completes(
        self, resolver, mock_provider, offline_clients, mock_llm_client
    ):
        mock_llm_client.generate_structured.side_effect = ProviderUnavailable(
            "perplexity", "connection reset"
        )
        orchestrator = _live_llm_orchestrator(
            resolver, mock_provider, offline_clients, mock_llm_client
        )

        result = await orchestrator.run("crm software")

        assert result["status"] == "completed"
        assert result["results"]["seedKeywords"]["source"] == "mock"
        assert result["results"]["competitiveGaps"]["source"] == "mock"
        # seed extraction, intent ranking and gap analysis
        assert resolver.degraded_count == 3

    @pytest.mark.asyncio
    async def test_live_payload_is_used_and_tagged(
        self, resolver, mock_provider, offline_clients, mock_llm_client
    ):
        seeds = mock_provider.seed_keywords("crm")
        ranked = mock_provider.ranked_keywords([k.keyword for k in seeds.seedKeywords])
        gaps = mock_provider.gap_analysis("crm", [])
        mock_llm_client.generate_structured.side_effect = [seeds, ranked, gaps]
        orchestrator = _live_llm_orchestrator(
            resolver, mock_provider, offline_clients, mock_llm_client
        )

        result = await orchestrator.run("crm")

        assert result["status"] == "completed"
        assert result["results"]["seedKeywords"]["source"] == "live"
        assert result["results"]["rankedKeywords"]["source"] == "live"
        assert result["results"]["keywordAnalysis"][0]["source"] == "mock"

    @pytest.mark.asyncio
    async def test_malformed_live_suggestions_fall_back_to_mock(
        self, resolver, mock_provider, offline_clients
    ):
        data = DataForSEOClient(login="me@example.com", password="secret")

        async def post(path, tasks):
            if path == SUGGESTIONS_PATH:
                results = ["not-a-dict"]
            else:
                results = [{"keyword": kw, "search_volume": 1000} for kw in tasks[0]["keywords"]]
            return {"status_code": 20000, "tasks": [{"status_code": 20000, "result": results}]}

        data._post = AsyncMock(side_effect=post)
        researcher = KeywordResearcher(
            resolver, offline_clients["research"], data, mock=mock_provider
        )
        planner = StrategyPlanner(resolver, offline_clients["strategy"], mock=mock_provider)
        orchestrator = PipelineOrchestrator(
            resolver, researcher, planner, providers={"dataforseo": data}
        )

        result = await orchestrator.run("crm software")

        assert result["status"] == "completed"
        assert result["results"]["keywordAnalysis"][0]["source"] == "live"
        suggestions = result["results"]["keywordSuggestions"]
        assert suggestions
        assert {s["source"] for s in suggestions} == {"mock"}


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, orchestrator):
        event = asyncio.Event()
        event.set()
        result = await orchestrator.run("crm software", cancel_event=event)
        assert result["status"] == "failed"
        assert result["failedStage"] == "seed_extraction"
        assert result["cause"] == "cancelled"

    @pytest.mark.asyncio
    async def test_cancelled_between_stages(self, orchestrator):
        event = asyncio.Event()
        original = orchestrator._researcher.fetch_keyword_metrics

        async def fetch_then_cancel(*args, **kwargs):
            resolved = await original(*args, **kwargs)
            event.set()
            return resolved

        orchestrator._researcher.fetch_keyword_metrics = fetch_then_cancel
        result = await orchestrator.run("crm software", cancel_event=event)

        assert result["failedStage"] == "suggestion_expansion"
        assert result["cause"] == "cancelled"
        status = orchestrator.get_run_status(result["id"])
        assert "keywordAnalysis" in status["completedStages"]


class TestOneShotOperations:

    @pytest.mark.asyncio
    async def test_analyze_keywords(self, orchestrator):
        result = await orchestrator.analyze_keywords(["crm software", "crm pricing"])
        assert result["summary"]["totalKeywords"] == 2
        assert result["sources"] == {"metrics": "mock", "ranking": "mock"}
        high = sum(1 for row in result["keywords"] if row["commercialIntent"] > 70)
        assert result["summary"]["highIntentKeywords"] == high

    @pytest.mark.asyncio
    async def test_analyze_keywords_rejects_bad_input(self, orchestrator):
        with pytest.raises(ValueError):
            await orchestrator.analyze_keywords([])
        with pytest.raises(ValueError):
            await orchestrator.analyze_keywords(["ok", "x" * 101])

    @pytest.mark.asyncio
    async def test_suggestion_limit_is_capped(self, orchestrator):
        fetch = AsyncMock(return_value=Resolved([], Source.MOCK))
        orchestrator._researcher.fetch_suggestions = fetch

        result = await orchestrator.keyword_suggestions("crm", limit=500)

        assert fetch.await_args.args[1] == 100
        assert result["summary"]["totalSuggestions"] == 0

    @pytest.mark.asyncio
    async def test_keyword_suggestions_summary(self, orchestrator):
        result = await orchestrator.keyword_suggestions("crm", limit=5)
        volumes = [s["searchVolume"] for s in result["suggestions"]]
        assert result["seedKeyword"] == "crm"
        assert len(volumes) == 5
        assert result["summary"]["totalPotentialTraffic"] == sum(volumes)

    @pytest.mark.asyncio
    async def test_serp_analysis(self, orchestrator):
        report = await orchestrator.serp_analysis("crm software")
        assert report["keyword"] == "crm software"
        assert len(report["topResults"]) == 10
        assert report["source"] == "mock"

    @pytest.mark.asyncio
    async def test_discover_clusters(self, orchestrator):
        result = await orchestrator.discover_clusters("https://www.acme-crm.com", limit=10)
        assert result["seed"] == "acme crm"
        members = [kw["keyword"] for c in result["clusters"] for kw in c["keywords"]]
        assert "acme crm" in members
        assert result["summary"]["totalClusters"] == len(result["clusters"])
        assert result["summary"]["totalSearchVolume"] == sum(
            c["totalVolume"] for c in result["clusters"]
        )


class TestHealthAndStatus:

    @pytest.mark.asyncio
    async def test_all_mock_providers_are_healthy(self, orchestrator):
        health = await orchestrator.health_check()
        assert health["status"] == "healthy"
        assert set(health["services"]) == {"perplexity", "openai", "dataforseo"}

    @pytest.mark.asyncio
    async def test_failing_health_check_degrades_overall(self, resolver, orchestrator):
        broken = MagicMock()
        broken.health_check = AsyncMock(side_effect=ProviderUnavailable("gemini", "HTTP 503"))
        orchestrator._providers["gemini"] = broken

        health = await orchestrator.health_check()

        assert health["status"] == "degraded"
        assert health["services"]["gemini"]["status"] == "unhealthy"
        assert health["services"]["dataforseo"]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_service_status_and_clear_cache(self, resolver, mock_provider, offline_clients):
        researcher = KeywordResearcher(
            resolver, offline_clients["research"], offline_clients["data"], mock=mock_provider
        )
        planner = StrategyPlanner(resolver, offline_clients["strategy"], mock=mock_provider)
        orchestrator = PipelineOrchestrator(
            resolver, researcher, planner,
            providers={"dataforseo": offline_clients["data"]},
            rate_limits={"dataforseo": RateLimit(100, 86400)},
        )
        resolver.cache.set("k", "v")

        status = orchestrator.service_status()

        assert status["services"]["dataforseo"] == {
            "configured": False,
            "mode": "mock",
            "rateLimit": {"maxRequests": 100, "windowSeconds": 86400, "used": 0},
        }
        assert status["cache"]["entries"] == 1
        assert status["degradedResponses"] == 0
        orchestrator.clear_cache()
        assert len(resolver.cache) == 0

    def test_service_status_reports_llm_usage(self, orchestrator):
        status = orchestrator.service_status()

        assert status["services"]["openai"]["usage"] == {
            "service": "openai",
            "backend": "openai",
            "model": "gpt-4o-mini",
            "total_requests": 0,
            "failed_requests": 0,
            "total_input_tokens": 0,
            "total_output_tokens": 0,
        }
        assert "usage" not in status["services"]["dataforseo"]
