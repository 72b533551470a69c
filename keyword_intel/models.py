"""Core data records shared by providers, the clusterer and the pipeline."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Intent(str, Enum):
    INFORMATIONAL = "informational"
    COMMERCIAL = "commercial"
    TRANSACTIONAL = "transactional"
    NAVIGATIONAL = "navigational"


class Source(str, Enum):
    LIVE = "live"
    CACHED = "cached"
    MOCK = "mock"


class Opportunity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS = {
    RunStatus.PENDING: {RunStatus.RUNNING, RunStatus.FAILED},
    RunStatus.RUNNING: {RunStatus.COMPLETED, RunStatus.FAILED},
    RunStatus.COMPLETED: set(),
    RunStatus.FAILED: set(),
}


@dataclass(frozen=True)
class KeywordRecord:
    """Search metrics for a single keyword as returned by a provider."""

    keyword: str
    search_volume: int
    difficulty: int
    cpc: float
    intent: Intent = Intent.INFORMATIONAL
    source: Source = Source.LIVE
    competition: float = 0.0
    relevance: Optional[int] = None

    def __post_init__(self) -> None:
        if not isinstance(self.keyword, str) or not self.keyword.strip():
            raise ValueError("keyword must be a non-empty string")
        if int(self.search_volume) < 0:
            raise ValueError(f"search_volume must be >= 0, got {self.search_volume}")
        if not 10 <= int(self.difficulty) <= 100:
            raise ValueError(f"difficulty must be within [10, 100], got {self.difficulty}")
        if float(self.cpc) < 0:
            raise ValueError(f"cpc must be >= 0, got {self.cpc}")
        # Coerce enum-like strings coming from upstream payloads.
        object.__setattr__(self, "search_volume", int(self.search_volume))
        object.__setattr__(self, "difficulty", int(self.difficulty))
        object.__setattr__(self, "cpc", round(float(self.cpc), 2))
        object.__setattr__(self, "intent", Intent(self.intent))
        object.__setattr__(self, "source", Source(self.source))

    def with_source(self, source: Source) -> "KeywordRecord":
        return replace(self, source=Source(source))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "keyword": self.keyword,
            "searchVolume": self.search_volume,
            "difficulty": self.difficulty,
            "cpc": self.cpc,
            "competition": round(self.competition, 4),
            "intent": self.intent.value,
            "source": self.source.value,
        }
        if self.relevance is not None:
            data["relevanceScore"] = self.relevance
        return data


@dataclass(frozen=True)
class Cluster:
    """A named thematic group of keyword records with aggregate statistics."""

    name: str
    members: tuple[KeywordRecord, ...]
    total_volume: int
    avg_difficulty: int
    opportunity: Opportunity

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "keywords": [m.to_dict() for m in self.members],
            "totalVolume": self.total_volume,
            "avgDifficulty": self.avg_difficulty,
            "opportunity": self.opportunity.value,
        }


@dataclass(frozen=True)
class SerpResult:
    position: int
    title: str
    url: str
    domain: str
    description: str = ""
    page_rank: Optional[int] = None
    domain_rank: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "title": self.title,
            "url": self.url,
            "domain": self.domain,
            "description": self.description,
            "rankingInfo": {
                "pageRank": self.page_rank,
                "domainRank": self.domain_rank,
            },
        }


@dataclass(frozen=True)
class SerpReport:
    """Organic top results for a keyword plus derived competition metrics."""

    keyword: str
    total_results: int
    top_results: tuple[SerpResult, ...]
    competitor_analysis: dict[str, Any] = field(default_factory=dict)
    difficulty_metrics: dict[str, Any] = field(default_factory=dict)
    source: Source = Source.LIVE

    def with_source(self, source: Source) -> "SerpReport":
        return replace(self, source=Source(source))

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyword": self.keyword,
            "totalResults": self.total_results,
            "topResults": [r.to_dict() for r in self.top_results],
            "competitorAnalysis": dict(self.competitor_analysis),
            "difficultyMetrics": dict(self.difficulty_metrics),
            "source": self.source.value,
        }


@dataclass
class Analysis:
    """State of one pipeline run.

    Status only moves forward (pending -> running -> completed|failed).
    Once finalized the record refuses further mutation.
    """

    seed: str
    location: str
    id: str = field(default_factory=lambda: "analysis_" + uuid.uuid4().hex[:16])
    created_at: datetime = field(default_factory=_utcnow)
    status: RunStatus = RunStatus.PENDING
    outputs: dict[str, Any] = field(default_factory=dict)
    summary: dict[str, Any] = field(default_factory=dict)
    failed_stage: Optional[str] = None
    cause: Optional[str] = None
    retry_after: Optional[float] = None
    finished_at: Optional[datetime] = None

    @property
    def finalized(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED)

    def _transition(self, target: RunStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise ValueError(
                f"Illegal status transition {self.status.value} -> {target.value}"
            )
        self.status = target

    def start(self) -> None:
        self._transition(RunStatus.RUNNING)

    def record(self, stage: str, output: Any) -> None:
        if self.status is not RunStatus.RUNNING:
            raise ValueError(f"Cannot record stage output while {self.status.value}")
        self.outputs[stage] = output

    def complete(self, summary: dict[str, Any]) -> None:
        self._transition(RunStatus.COMPLETED)
        self.summary = dict(summary)
        self.finished_at = _utcnow()

    def fail(self, stage: str, cause: str, retry_after: Optional[float] = None) -> None:
        self._transition(RunStatus.FAILED)
        self.failed_stage = stage
        self.cause = cause
        self.retry_after = retry_after
        self.finished_at = _utcnow()

    def to_result(self) -> dict[str, Any]:
        """Render the caller-facing result for a finalized run."""
        if self.status is RunStatus.COMPLETED:
            return {
                "id": self.id,
                "status": self.status.value,
                "seed": self.seed,
                "location": self.location,
                "createdAt": self.created_at.isoformat(),
                "results": dict(self.outputs),
                "summary": dict(self.summary),
            }
        result: dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "failedStage": self.failed_stage,
            "cause": self.cause,
        }
        if self.retry_after is not None:
            result["retryAfter"] = round(self.retry_after, 1)
        return result
