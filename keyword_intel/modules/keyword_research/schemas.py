"""Strict schemas for structured payloads returned by text-generation providers.

Every research and synthesis stage that relies on a language model declares
the exact shape it expects here.  Replies are validated against these models
and rejected as a whole when they do not conform; nothing is guessed.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Level = Literal["high", "medium", "low"]
IntentName = Literal["informational", "commercial", "transactional", "navigational"]


class StrictModel(BaseModel):
    """Base configuration for provider payload schemas."""

    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Seed extraction
# ---------------------------------------------------------------------------


class SeedKeyword(StrictModel):
    keyword: str = Field(min_length=1, max_length=100)
    commercialIntent: int = Field(ge=0, le=100)
    searchVolume: Level
    businessRelevance: int = Field(ge=0, le=100)
    reasoning: str = ""


class WebsiteAnalysis(StrictModel):
    businessType: str
    targetAudience: str
    primaryOfferings: list[str] = Field(default_factory=list)


class SeedKeywordsPayload(StrictModel):
    seedKeywords: list[SeedKeyword] = Field(min_length=1)
    websiteAnalysis: WebsiteAnalysis | None = None


# ---------------------------------------------------------------------------
# Intent ranking
# ---------------------------------------------------------------------------


class RankedKeyword(StrictModel):
    keyword: str = Field(min_length=1, max_length=100)
    rank: int = Field(ge=1)
    commercialScore: int = Field(ge=0, le=100)
    purchaseIntent: Level
    businessValue: int = Field(default=50, ge=0, le=100)
    conversionLikelihood: int = Field(default=50, ge=0, le=100)
    reasoning: str = ""


class RankingInsights(StrictModel):
    topOpportunity: str = ""
    quickWins: list[str] = Field(default_factory=list)
    longTermTargets: list[str] = Field(default_factory=list)


class RankedKeywordsPayload(StrictModel):
    rankedKeywords: list[RankedKeyword] = Field(min_length=1)
    insights: RankingInsights = Field(default_factory=RankingInsights)

    def ordered(self) -> list[RankedKeyword]:
        """Ranked keywords by ascending rank, ties broken by commercial score."""
        return sorted(self.rankedKeywords, key=lambda k: (k.rank, -k.commercialScore))


# ---------------------------------------------------------------------------
# Competitive gap analysis
# ---------------------------------------------------------------------------


class ContentGap(StrictModel):
    opportunity: str = Field(min_length=1)
    keywords: list[str] = Field(default_factory=list)
    difficulty: Level
    potential: str = ""
    reasoning: str = ""


class SemanticCluster(StrictModel):
    theme: str = Field(min_length=1)
    keywords: list[str] = Field(default_factory=list)
    intent: IntentName
    competition: Level


class LongTailOpportunity(StrictModel):
    keyword: str = Field(min_length=1)
    parentKeyword: str
    searchIntent: str = ""
    difficulty: int = Field(ge=1, le=100)


class GapAnalysis(StrictModel):
    contentGaps: list[ContentGap]
    semanticClusters: list[SemanticCluster] = Field(default_factory=list)
    longTailOpportunities: list[LongTailOpportunity] = Field(default_factory=list)


class GapAnalysisPayload(StrictModel):
    gapAnalysis: GapAnalysis
    competitorWeaknesses: list[str] = Field(default_factory=list)
    quickWinOpportunities: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Strategy synthesis
# ---------------------------------------------------------------------------


class ExecutiveSummary(StrictModel):
    keyOpportunities: list[str] = Field(min_length=1)
    timeline: str
    expectedResults: str
    resourceNeeds: list[str] = Field(default_factory=list)


class TargetKeyword(StrictModel):
    keyword: str = Field(min_length=1)
    priority: Level
    intent: IntentName


class StrategyCluster(StrictModel):
    theme: str = Field(min_length=1)
    keywords: list[str] = Field(min_length=1)
    contentType: Literal["blog", "landing", "resource"]
    priority: Level


class KeywordStrategy(StrictModel):
    primaryKeywords: list[TargetKeyword] = Field(min_length=1)
    secondaryKeywords: list[TargetKeyword] = Field(default_factory=list)
    keywordClusters: list[StrategyCluster] = Field(min_length=1)


class ContentStrategy(StrictModel):
    contentPillars: list[str] = Field(min_length=1)
    gapOpportunities: list[str] = Field(default_factory=list)


class Kpi(StrictModel):
    metric: str
    target: str
    timeframe: str


class Measurement(StrictModel):
    kpis: list[Kpi] = Field(default_factory=list)
    milestones: list[str] = Field(default_factory=list)
    reportingFrequency: Literal["weekly", "monthly"] = "monthly"


class StrategyPayload(StrictModel):
    executiveSummary: ExecutiveSummary
    keywordStrategy: KeywordStrategy
    contentStrategy: ContentStrategy
    technicalPriorities: list[str] = Field(default_factory=list)
    measurement: Measurement = Field(default_factory=Measurement)


# ---------------------------------------------------------------------------
# Content recommendations
# ---------------------------------------------------------------------------


class PieceKeywords(StrictModel):
    primary: str = Field(min_length=1)
    secondary: list[str] = Field(default_factory=list)
    longTail: list[str] = Field(default_factory=list)


class OutlineSection(StrictModel):
    section: str
    subsections: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)


class ContentPiece(StrictModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    type: Literal["blog", "landing", "resource", "guide"]
    priority: Level
    targetKeywords: PieceKeywords
    searchIntent: IntentName
    estimatedWordCount: int = Field(ge=100, le=20000)
    contentOutline: list[OutlineSection] = Field(default_factory=list)


class ContentSeries(StrictModel):
    seriesName: str
    description: str = ""
    pieces: list[str] = Field(default_factory=list)


class ImplementationPhase(StrictModel):
    duration: str
    focus: str
    content: list[str] = Field(default_factory=list)


class ContentRecommendationsPayload(StrictModel):
    contentPieces: list[ContentPiece] = Field(min_length=1)
    contentSeries: list[ContentSeries] = Field(default_factory=list)
    implementationPlan: dict[str, ImplementationPhase] = Field(default_factory=dict)
