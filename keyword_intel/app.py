"""Composition root wiring settings, shared state, providers and the pipeline."""

import logging
from typing import Any, Callable, Optional

from keyword_intel.config import DEFAULT_CONFIG_PATH, DEFAULT_ENV_PATH, Settings, load_settings
from keyword_intel.integrations.dataforseo import DataForSEOClient
from keyword_intel.integrations.fallback import FallbackResolver
from keyword_intel.integrations.llm_client import LLMClient
from keyword_intel.integrations.mock_provider import MockProvider
from keyword_intel.modules.keyword_research.researcher import KeywordResearcher
from keyword_intel.modules.keyword_research.strategist import StrategyPlanner
from keyword_intel.utils.cache import ResultCache
from keyword_intel.utils.rate_limiter import RateLimit, RateLimiter
from keyword_intel.workflows import PipelineOrchestrator

logger = logging.getLogger(__name__)


class KeywordIntelApp:
    """Central application class that owns one limiter, one cache and the providers.

    The rate limiter and result cache are created here and injected into
    every consumer, so all runs in the process share them explicitly.

    Usage::

        app = KeywordIntelApp()
        app.initialize()
        result = await app.orchestrator.run("https://acme-crm.com")
        await app.close()
    """

    def __init__(
        self,
        config_path: str = DEFAULT_CONFIG_PATH,
        env_path: str = DEFAULT_ENV_PATH,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._config_path = config_path
        self._env_path = env_path
        self._clock = clock
        self.settings = settings
        self.rate_limiter: Optional[RateLimiter] = None
        self.cache: Optional[ResultCache] = None
        self.providers: dict[str, Any] = {}
        self._orchestrator: Optional[PipelineOrchestrator] = None
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load settings and build the provider graph."""
        if self._initialized:
            return
        if self.settings is None:
            self.settings = load_settings(self._config_path, self._env_path)
        settings = self.settings

        self.rate_limiter = RateLimiter(clock=self._clock)
        self.cache = ResultCache(
            default_ttl=settings.cache.ttl_seconds,
            max_size=settings.cache.max_size,
            clock=self._clock,
        )
        resolver = FallbackResolver(self.rate_limiter, self.cache, settings.cache.ttl_seconds)
        mock = MockProvider(settings.scoring)

        research_llm = self._build_llm("perplexity", settings.perplexity)
        strategy_llm = self._strategy_llm()
        dataforseo = DataForSEOClient(
            login=settings.dataforseo.login,
            password=settings.dataforseo.password,
            base_url=settings.dataforseo.base_url,
            timeout=settings.dataforseo.timeout,
            weights=settings.scoring,
        )
        self.providers = {
            research_llm.service_name: research_llm,
            strategy_llm.service_name: strategy_llm,
            dataforseo.service_name: dataforseo,
        }

        timeout = settings.pipeline.stage_timeout_seconds
        researcher = KeywordResearcher(
            resolver, research_llm, dataforseo,
            mock=mock,
            rate_limits=settings.rate_limits,
            timeout=timeout,
            location=settings.pipeline.default_location,
        )
        planner = StrategyPlanner(
            resolver, strategy_llm,
            mock=mock,
            rate_limit=settings.rate_limits.get(strategy_llm.service_name, RateLimit(15, 60)),
            timeout=timeout,
        )
        self._orchestrator = PipelineOrchestrator(
            resolver, researcher, planner,
            providers=self.providers,
            rate_limits={
                name: limit for name, limit in settings.rate_limits.items()
                if name in self.providers
            },
            metrics_top_n=settings.pipeline.metrics_top_n,
            suggestion_limit=settings.pipeline.suggestion_limit,
            default_location=settings.pipeline.default_location,
            max_tracked_runs=settings.pipeline.max_tracked_runs,
            weights=settings.scoring,
        )

        for name, provider in self.providers.items():
            mode = "live" if provider.configured else "mock"
            logger.info("Provider %s ready (%s mode)", name, mode)
        self._initialized = True
        logger.info("KeywordIntelApp initialised.")

    async def close(self) -> None:
        """Release HTTP sessions held by providers."""
        for provider in self.providers.values():
            closer = getattr(provider, "close", None)
            if closer is not None:
                await closer()

    @staticmethod
    def _build_llm(service: str, cfg, backend: str = "openai") -> LLMClient:
        return LLMClient(
            service,
            api_key=cfg.api_key,
            model=cfg.model,
            backend=backend,
            base_url=cfg.base_url,
            max_tokens=cfg.max_tokens,
            temperature=cfg.temperature,
            timeout=cfg.timeout,
        )

    def _strategy_llm(self) -> LLMClient:
        """OpenAI when configured, else Gemini, else OpenAI in mock mode."""
        settings = self.settings
        if not settings.openai.api_key and settings.gemini.api_key:
            return self._build_llm("gemini", settings.gemini, backend="gemini")
        return self._build_llm("openai", settings.openai)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def orchestrator(self) -> PipelineOrchestrator:
        self._ensure_initialized()
        return self._orchestrator

    def get_status(self) -> dict[str, Any]:
        """Service status plus a short description of the loaded settings."""
        status = self.orchestrator.service_status()
        status["settings"] = {
            "config_path": self._config_path,
            "metrics_top_n": self.settings.pipeline.metrics_top_n,
            "suggestion_limit": self.settings.pipeline.suggestion_limit,
            "default_location": self.settings.pipeline.default_location,
        }
        return status

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("Call initialize() before using the application.")
