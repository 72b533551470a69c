"""DataForSEO adapter for keyword metrics, suggestions and SERP analysis.

All three capabilities talk to the same upstream (``api.dataforseo.com/v3``)
over HTTP basic auth.  DataForSEO reports success in the payload rather than
the HTTP status: every envelope and every task carries ``status_code`` and
only ``20000`` means OK.
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from keyword_intel.errors import MalformedResponse, ProviderUnavailable
from keyword_intel.models import Intent, KeywordRecord, SerpReport, SerpResult
from keyword_intel.modules.keyword_research.clusterer import (
    DEFAULT_WEIGHTS,
    ScoringWeights,
    difficulty,
    infer_intent,
    relevance,
)
from keyword_intel.modules.keyword_research.serp_metrics import (
    analyze_competitors,
    difficulty_metrics,
)
from keyword_intel.utils.helpers import extract_domain

logger = logging.getLogger(__name__)

BASE_URL = "https://api.dataforseo.com/v3"
SEARCH_VOLUME_PATH = "/keywords_data/google_ads/search_volume/live"
SUGGESTIONS_PATH = "/dataforseo_labs/google/keyword_suggestions/live"
SERP_PATH = "/serp/google/organic/live/advanced"
USER_DATA_PATH = "/appendix/user_data"

STATUS_OK = 20000
DEFAULT_LOCATION = "United States"
DEFAULT_LANGUAGE = "English"
SERP_DEPTH = 10

# Raised while walking a payload whose nesting is not what the API documents.
SHAPE_ERRORS = (AttributeError, IndexError, KeyError, TypeError, ValueError)


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _intent_from(item: dict[str, Any], keyword: str) -> Intent:
    main = (item.get("search_intent_info") or {}).get("main_intent")
    try:
        return Intent(main)
    except ValueError:
        return infer_intent(keyword)


def _competition_from(data: dict[str, Any]) -> float:
    """Normalize competition to 0..1.

    Google Ads search volume reports ``competition`` as a label and
    ``competition_index`` as 0-100; DataForSEO Labs reports a 0-1 float.
    """
    index = data.get("competition_index")
    if isinstance(index, (int, float)):
        return max(0.0, min(1.0, index / 100))
    value = data.get("competition")
    if isinstance(value, (int, float)):
        return max(0.0, min(1.0, float(value)))
    return 0.0


class DataForSEOClient:
    """Async client for the DataForSEO v3 REST API.

    Usage::

        client = DataForSEOClient(login="me@example.com", password="...")
        records = await client.fetch_keyword_metrics(["crm software"], "United States")
        report = await client.fetch_serp_analysis("crm software", "United States")
        await client.close()
    """

    service_name = "dataforseo"

    def __init__(
        self,
        login: Optional[str] = None,
        password: Optional[str] = None,
        base_url: str = BASE_URL,
        timeout: float = 60.0,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
    ):
        self._login = login or ""
        self._password = password or ""
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._weights = weights
        self._http_session: Optional[aiohttp.ClientSession] = None
        if not self.configured:
            logger.warning("DataForSEO credentials not found, using mock mode")

    @property
    def configured(self) -> bool:
        return bool(self._login and self._password)

    async def _get_http_session(self) -> aiohttp.ClientSession:
        """Lazily create and return an aiohttp session."""
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession(
                timeout=self._timeout,
                auth=aiohttp.BasicAuth(self._login, self._password),
                headers={"Content-Type": "application/json"},
            )
        return self._http_session

    async def close(self) -> None:
        """Clean up resources."""
        if self._http_session and not self._http_session.closed:
            await self._http_session.close()

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def fetch_keyword_metrics(
        self, keywords: list[str], location: str = DEFAULT_LOCATION
    ) -> list[KeywordRecord]:
        """Search volume, CPC and competition for each keyword."""
        if not keywords:
            return []
        logger.info("Getting keyword data for %d keywords", len(keywords))
        envelope = await self._post(SEARCH_VOLUME_PATH, [{
            "keywords": list(keywords),
            "location_name": location,
            "language_name": DEFAULT_LANGUAGE,
        }])

        records: dict[str, KeywordRecord] = {}
        try:
            for task in self._ok_tasks(envelope):
                for item in task.get("result") or []:
                    record = self._parse(self._metrics_record, item)
                    if record and record.keyword not in records:
                        records[record.keyword] = record
        except SHAPE_ERRORS as exc:
            raise MalformedResponse(self.service_name, f"unexpected metrics shape: {exc}") from exc
        logger.info("Retrieved data for %d keywords", len(records))
        return list(records.values())

    async def fetch_suggestions(
        self, seed: str, limit: int = 50, location: str = DEFAULT_LOCATION
    ) -> list[KeywordRecord]:
        """Related keywords containing *seed*, ordered by search volume."""
        logger.info("Getting keyword suggestions for: %s", seed)
        envelope = await self._post(SUGGESTIONS_PATH, [{
            "keyword": seed,
            "location_name": location,
            "language_name": DEFAULT_LANGUAGE,
            "limit": limit,
            "filters": [["keyword_info.search_volume", ">", 100]],
            "order_by": ["keyword_info.search_volume,desc"],
        }])

        records: dict[str, KeywordRecord] = {}
        try:
            for task in self._ok_tasks(envelope, strict=True):
                for result in task.get("result") or []:
                    for item in result.get("items") or []:
                        record = self._parse(self._suggestion_record, item, seed)
                        if record and record.keyword not in records:
                            records[record.keyword] = record
        except SHAPE_ERRORS as exc:
            raise MalformedResponse(self.service_name, f"unexpected suggestions shape: {exc}") from exc
        suggestions = list(records.values())[:limit]
        logger.info("Retrieved %d keyword suggestions", len(suggestions))
        return suggestions

    async def fetch_serp_analysis(
        self, keyword: str, location: str = DEFAULT_LOCATION
    ) -> SerpReport:
        """Top organic results for *keyword* with competition metrics."""
        logger.info("Getting SERP analysis for: %s", keyword)
        envelope = await self._post(SERP_PATH, [{
            "keyword": keyword,
            "location_name": location,
            "language_name": DEFAULT_LANGUAGE,
            "device": "desktop",
            "os": "windows",
            "depth": SERP_DEPTH,
        }])
        tasks = self._ok_tasks(envelope, strict=True)
        try:
            result = ((tasks[0].get("result") or [None])[0]) if tasks else None
            if not isinstance(result, dict):
                raise MalformedResponse(self.service_name, "SERP task returned no result")
            return self._serp_report(keyword, result)
        except SHAPE_ERRORS as exc:
            raise MalformedResponse(self.service_name, f"unexpected SERP shape: {exc}") from exc

    async def health_check(self) -> dict[str, Any]:
        if not self.configured:
            return {
                "status": "healthy",
                "mode": "mock",
                "message": "Running in mock mode - DataForSEO credentials not configured",
            }
        session = await self._get_http_session()
        url = f"{self._base_url}{USER_DATA_PATH}"
        try:
            async with session.get(url) as resp:
                if resp.status >= 400:
                    raise ProviderUnavailable(self.service_name, f"HTTP {resp.status}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ProviderUnavailable(self.service_name, str(exc)) from exc
        tasks = self._ok_tasks(data, strict=True)
        result = ((tasks[0].get("result") or [{}])[0]) or {}
        return {
            "status": "healthy",
            "mode": "live",
            "balance": (result.get("money") or {}).get("balance", "unknown"),
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _post(self, path: str, tasks: list[dict[str, Any]]) -> dict[str, Any]:
        if not self.configured:
            raise ProviderUnavailable(self.service_name, "credentials not configured")
        session = await self._get_http_session()
        url = f"{self._base_url}{path}"
        try:
            async with session.post(url, json=tasks) as resp:
                if resp.status in (401, 403):
                    raise ProviderUnavailable(self.service_name, "authentication failed")
                if resp.status >= 400:
                    raise ProviderUnavailable(self.service_name, f"HTTP {resp.status} from {path}")
                data = await resp.json(content_type=None)
        except aiohttp.ContentTypeError as exc:
            raise MalformedResponse(self.service_name, f"non-JSON body from {path}") from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("DataForSEO request to %s failed: %s", path, exc)
            raise ProviderUnavailable(self.service_name, str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise MalformedResponse(self.service_name, f"invalid JSON from {path}") from exc
        return data

    def _ok_tasks(self, envelope: Any, strict: bool = False) -> list[dict[str, Any]]:
        """Return the successful tasks of an envelope.

        A failed envelope means the call failed.  Individual failed tasks are
        skipped, unless *strict* (single-task calls) where they fail the call.
        """
        if not isinstance(envelope, dict):
            raise MalformedResponse(self.service_name, "response envelope is not an object")
        if envelope.get("status_code") != STATUS_OK:
            raise ProviderUnavailable(
                self.service_name,
                f"API error {envelope.get('status_code')}: {envelope.get('status_message')}",
            )
        tasks = envelope.get("tasks")
        if not isinstance(tasks, list):
            raise MalformedResponse(self.service_name, "response has no task list")

        ok: list[dict[str, Any]] = []
        for task in tasks:
            if not isinstance(task, dict):
                raise MalformedResponse(self.service_name, "task entry is not an object")
            if task.get("status_code") == STATUS_OK:
                ok.append(task)
                continue
            if strict:
                raise ProviderUnavailable(
                    self.service_name, f"task failed: {task.get('status_message')}"
                )
            logger.warning("DataForSEO task failed: %s", task.get("status_message"))
        return ok

    def _parse(self, builder, item: Any, *args: Any) -> Optional[KeywordRecord]:
        try:
            return builder(item, *args)
        except SHAPE_ERRORS as exc:
            raise MalformedResponse(self.service_name, f"unparseable keyword item: {exc}") from exc

    def _serp_report(self, keyword: str, result: dict[str, Any]) -> SerpReport:
        organic = [
            item for item in result.get("items") or []
            if isinstance(item, dict) and item.get("type") == "organic"
        ][:SERP_DEPTH]
        top: list[SerpResult] = []
        for index, item in enumerate(organic, start=1):
            url = item.get("url") or ""
            top.append(SerpResult(
                position=int(item.get("rank_group") or index),
                title=str(item.get("title") or ""),
                url=url,
                domain=item.get("domain") or extract_domain(url),
                description=str(item.get("description") or ""),
                page_rank=_optional_int(item.get("rank_absolute")),
                domain_rank=_optional_int(item.get("domain_rank")),
            ))

        return SerpReport(
            keyword=keyword,
            total_results=int(result.get("se_results_count") or result.get("items_count") or 0),
            top_results=tuple(top),
            competitor_analysis=analyze_competitors(top),
            difficulty_metrics=difficulty_metrics(top),
        )

    def _metrics_record(self, item: Any) -> Optional[KeywordRecord]:
        if not isinstance(item, dict) or not item.get("keyword"):
            return None
        keyword = str(item["keyword"]).strip()
        volume = max(0, int(item.get("search_volume") or 0))
        cpc = max(0.0, float(item.get("cpc") or 0))
        competition = _competition_from(item)
        return KeywordRecord(
            keyword=keyword,
            search_volume=volume,
            difficulty=difficulty(competition, cpc, volume, self._weights),
            cpc=cpc,
            intent=_intent_from(item, keyword),
            competition=competition,
        )

    def _suggestion_record(self, item: Any, seed: str) -> Optional[KeywordRecord]:
        if not isinstance(item, dict) or not item.get("keyword"):
            return None
        info = item.get("keyword_info") or {}
        keyword = str(item["keyword"]).strip()
        volume = max(0, int(info.get("search_volume") or 0))
        cpc = max(0.0, float(info.get("cpc") or 0))
        competition = _competition_from(info)
        return KeywordRecord(
            keyword=keyword,
            search_volume=volume,
            difficulty=difficulty(competition, cpc, volume, self._weights),
            cpc=cpc,
            intent=_intent_from(item, keyword),
            competition=competition,
            relevance=relevance(seed, keyword),
        )
