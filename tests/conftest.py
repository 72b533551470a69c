"""Shared pytest fixtures for Keyword Intel tests."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure project root is on sys.path so 'keyword_intel' is importable.
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from keyword_intel.integrations.dataforseo import DataForSEOClient  # noqa: E402
from keyword_intel.integrations.fallback import FallbackResolver  # noqa: E402
from keyword_intel.integrations.llm_client import LLMClient  # noqa: E402
from keyword_intel.integrations.mock_provider import MockProvider  # noqa: E402
from keyword_intel.models import KeywordRecord  # noqa: E402
from keyword_intel.modules.keyword_research.researcher import KeywordResearcher  # noqa: E402
from keyword_intel.modules.keyword_research.strategist import StrategyPlanner  # noqa: E402
from keyword_intel.utils.cache import ResultCache  # noqa: E402
from keyword_intel.utils.rate_limiter import RateLimiter  # noqa: E402
from keyword_intel.workflows import PipelineOrchestrator  # noqa: E402

CREDENTIAL_VARS = (
    "DATAFORSEO_LOGIN",
    "DATAFORSEO_PASSWORD",
    "PERPLEXITY_API_KEY",
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "LOG_LEVEL",
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_record(keyword, volume=1000, difficulty=30, cpc=1.0, **kwargs) -> KeywordRecord:
    return KeywordRecord(
        keyword=keyword,
        search_volume=volume,
        difficulty=difficulty,
        cpc=cpc,
        **kwargs,
    )


@pytest.fixture()
def clean_env(monkeypatch):
    """Remove provider credentials so every provider runs in mock mode."""
    for var in CREDENTIAL_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def limiter(clock):
    return RateLimiter(clock=clock)


@pytest.fixture()
def cache(clock):
    return ResultCache(default_ttl=1800, max_size=100, clock=clock)


@pytest.fixture()
def resolver(limiter, cache):
    return FallbackResolver(limiter, cache)


@pytest.fixture()
def mock_provider():
    return MockProvider()


@pytest.fixture()
def mock_llm_client():
    """Return a configured LLMClient double whose replies are canned."""
    client = MagicMock(spec=LLMClient)
    client.service_name = "perplexity"
    client.configured = True
    client.generate_text = AsyncMock(return_value="Mock LLM response text.")
    client.generate_structured = AsyncMock()
    client.health_check = AsyncMock(return_value={"status": "healthy", "mode": "live"})
    return client


@pytest.fixture()
def offline_clients():
    """Unconfigured clients: every capability is served by the mock provider."""
    return {
        "research": LLMClient("perplexity"),
        "strategy": LLMClient("openai"),
        "data": DataForSEOClient(),
    }


@pytest.fixture()
def orchestrator(resolver, mock_provider, offline_clients):
    """Orchestrator wired entirely to mock-mode providers."""
    researcher = KeywordResearcher(
        resolver, offline_clients["research"], offline_clients["data"], mock=mock_provider
    )
    planner = StrategyPlanner(resolver, offline_clients["strategy"], mock=mock_provider)
    providers = {
        "perplexity": offline_clients["research"],
        "openai": offline_clients["strategy"],
        "dataforseo": offline_clients["data"],
    }
    return PipelineOrchestrator(resolver, researcher, planner, providers=providers)
