"""Settings loaded from ``config/settings.yaml`` plus environment credentials."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from keyword_intel.errors import ConfigurationError
from keyword_intel.modules.keyword_research.clusterer import ScoringWeights
from keyword_intel.utils.rate_limiter import RateLimit

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"
DEFAULT_ENV_PATH = ".env"

DEFAULT_RATE_LIMITS = {
    "perplexity": (15, 60),
    "openai": (15, 60),
    "gemini": (15, 60),
    "dataforseo": (100, 86400),
}


@dataclass(frozen=True)
class LLMSettings:
    api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    base_url: Optional[str] = None
    max_tokens: int = 4096
    temperature: float = 0.3
    timeout: float = 60.0


@dataclass(frozen=True)
class DataForSEOSettings:
    login: Optional[str] = None
    password: Optional[str] = None
    base_url: str = "https://api.dataforseo.com/v3"
    timeout: float = 60.0


@dataclass(frozen=True)
class CacheSettings:
    ttl_seconds: float = 1800.0
    max_size: int = 1000


@dataclass(frozen=True)
class PipelineSettings:
    metrics_top_n: int = 10
    suggestion_limit: int = 20
    stage_timeout_seconds: Optional[float] = 60.0
    default_location: str = "United States"
    max_tracked_runs: int = 100


@dataclass(frozen=True)
class Settings:
    """Everything the composition root needs to build the pipeline."""

    perplexity: LLMSettings = field(
        default_factory=lambda: LLMSettings(model="sonar", base_url="https://api.perplexity.ai")
    )
    openai: LLMSettings = field(default_factory=LLMSettings)
    gemini: LLMSettings = field(default_factory=lambda: LLMSettings(model="gemini-2.0-flash"))
    dataforseo: DataForSEOSettings = field(default_factory=DataForSEOSettings)
    rate_limits: dict[str, RateLimit] = field(
        default_factory=lambda: {k: RateLimit(*v) for k, v in DEFAULT_RATE_LIMITS.items()}
    )
    cache: CacheSettings = field(default_factory=CacheSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    scoring: ScoringWeights = field(default_factory=ScoringWeights)
    log_level: str = "INFO"


def _load_yaml(config_path: str) -> dict[str, Any]:
    """Load the YAML configuration file."""
    config_file = Path(config_path)
    if not config_file.exists():
        logger.warning("Config file not found: %s — using defaults.", config_path)
        return {}
    try:
        with open(config_file, "r", encoding="utf-8") as fh:
            config = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(config, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping at the top level")
    logger.info("Configuration loaded from %s", config_path)
    return config


def _section(config: dict[str, Any], *path: str) -> dict[str, Any]:
    node: Any = config
    for key in path:
        node = node.get(key) if isinstance(node, dict) else None
        if node is None:
            return {}
    if not isinstance(node, dict):
        raise ConfigurationError(f"Setting {'.'.join(path)!r} must be a mapping")
    return node


def _llm(cfg: dict[str, Any], default: LLMSettings, env_key: str) -> LLMSettings:
    return LLMSettings(
        api_key=os.getenv(env_key) or cfg.get("api_key") or None,
        model=cfg.get("model", default.model),
        base_url=cfg.get("base_url", default.base_url),
        max_tokens=int(cfg.get("max_tokens", default.max_tokens)),
        temperature=float(cfg.get("temperature", default.temperature)),
        timeout=float(cfg.get("timeout", default.timeout)),
    )


def _rate_limits(cfg: dict[str, Any]) -> dict[str, RateLimit]:
    limits = {k: RateLimit(*v) for k, v in DEFAULT_RATE_LIMITS.items()}
    for service, entry in cfg.items():
        if not isinstance(entry, dict):
            raise ConfigurationError(f"rate_limits.{service} must be a mapping")
        default = limits.get(service, RateLimit(15, 60))
        try:
            limits[service] = RateLimit(
                int(entry.get("max_requests", default.max_requests)),
                float(entry.get("window_seconds", default.window_seconds)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid rate limit for {service}: {exc}") from exc
    return limits


def load_settings(
    config_path: str = DEFAULT_CONFIG_PATH,
    env_path: str = DEFAULT_ENV_PATH,
) -> Settings:
    """Build ``Settings`` from YAML, ``.env`` and the process environment.

    Credentials are only read from the environment (or ``.env``); a provider
    without credentials runs in mock mode.
    """
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)
        logger.info("Loaded environment from %s", env_path)

    config = _load_yaml(config_path)
    defaults = Settings()
    providers = _section(config, "providers")
    dfs_cfg = _section(providers, "dataforseo")
    cache_cfg = _section(config, "cache")
    pipe_cfg = _section(config, "pipeline")

    try:
        timeout = pipe_cfg.get("stage_timeout_seconds", defaults.pipeline.stage_timeout_seconds)
        settings = Settings(
            perplexity=_llm(_section(providers, "perplexity"), defaults.perplexity, "PERPLEXITY_API_KEY"),
            openai=_llm(_section(providers, "openai"), defaults.openai, "OPENAI_API_KEY"),
            gemini=_llm(_section(providers, "gemini"), defaults.gemini, "GEMINI_API_KEY"),
            dataforseo=DataForSEOSettings(
                login=os.getenv("DATAFORSEO_LOGIN") or None,
                password=os.getenv("DATAFORSEO_PASSWORD") or None,
                base_url=dfs_cfg.get("base_url", defaults.dataforseo.base_url),
                timeout=float(dfs_cfg.get("timeout", defaults.dataforseo.timeout)),
            ),
            rate_limits=_rate_limits(_section(config, "rate_limits")),
            cache=CacheSettings(
                ttl_seconds=float(cache_cfg.get("ttl_seconds", defaults.cache.ttl_seconds)),
                max_size=int(cache_cfg.get("max_size", defaults.cache.max_size)),
            ),
            pipeline=PipelineSettings(
                metrics_top_n=int(pipe_cfg.get("metrics_top_n", defaults.pipeline.metrics_top_n)),
                suggestion_limit=int(pipe_cfg.get("suggestion_limit", defaults.pipeline.suggestion_limit)),
                stage_timeout_seconds=float(timeout) if timeout is not None else None,
                default_location=str(pipe_cfg.get("default_location", defaults.pipeline.default_location)),
                max_tracked_runs=int(pipe_cfg.get("max_tracked_runs", defaults.pipeline.max_tracked_runs)),
            ),
            scoring=ScoringWeights.from_dict(_section(config, "scoring")),
            log_level=str(os.getenv("LOG_LEVEL") or config.get("log_level", "INFO")).upper(),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid setting in {config_path}: {exc}") from exc

    if min(settings.pipeline.metrics_top_n, settings.pipeline.suggestion_limit,
           settings.pipeline.max_tracked_runs) < 1:
        raise ConfigurationError("pipeline caps must be positive")
    if settings.cache.ttl_seconds <= 0:
        raise ConfigurationError("cache.ttl_seconds must be positive")
    return settings
