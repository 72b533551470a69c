"""Rule-based keyword clustering, difficulty and relevance scoring.

Everything here is a pure function of its inputs.  The numeric weights are
heuristic business tuning, so they live in ``ScoringWeights`` and can be
overridden from configuration instead of being baked into the formulas.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from keyword_intel.models import Cluster, Intent, KeywordRecord, Opportunity
from keyword_intel.utils.helpers import tokenize

logger = logging.getLogger(__name__)

# First matching rule wins, which keeps the partition non-overlapping.
CLUSTER_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("tools", ("tool", "software", "platform")),
    ("guides", ("guide", "tutorial", "how to")),
    ("reviews", ("best", "top", "review")),
    ("comparisons", ("vs", "comparison", "alternative")),
    ("pricing", ("price", "pricing", "cost", "free")),
    ("examples", ("example", "template", "case study")),
)
GENERAL_CLUSTER = "general"

CLUSTER_THEMES = {
    "tools": "{seed} Tools & Software",
    "guides": "{seed} Guides & Tutorials",
    "reviews": "{seed} Reviews & Recommendations",
    "comparisons": "{seed} Comparisons & Alternatives",
    "pricing": "{seed} Pricing & Costs",
    "examples": "{seed} Examples & Templates",
    "general": "General {seed} Topics",
}

_TRANSACTIONAL_TERMS = ("buy", "price", "pricing", "cost", "cheap", "deal", "discount", "coupon", "order", "free trial")
_COMMERCIAL_TERMS = ("best", "top", "review", "vs", "comparison", "alternative", "software", "tool", "platform")
_NAVIGATIONAL_TERMS = ("login", "log in", "sign in", "official site", "website", ".com")


@dataclass(frozen=True)
class ScoringWeights:
    """Tunable constants for difficulty and opportunity scoring."""

    competition_weight: float = 30.0
    cpc_weight: float = 10.0
    cpc_cap: float = 30.0
    volume_divisor: float = 1000.0
    volume_cap: float = 40.0
    min_difficulty: int = 10
    max_difficulty: int = 100
    high_volume_threshold: int = 10000
    medium_volume_threshold: int = 5000
    low_difficulty_threshold: int = 40
    medium_difficulty_threshold: int = 70

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "ScoringWeights":
        data = data or {}
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        unknown = set(data) - set(known)
        if unknown:
            logger.warning("Ignoring unknown scoring settings: %s", sorted(unknown))
        return cls(**known)


DEFAULT_WEIGHTS = ScoringWeights()


def _non_negative(value: Any) -> float:
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    return number if number > 0 else 0.0


def difficulty(
    competition: Any,
    cpc: Any,
    search_volume: Any,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> int:
    """Estimate ranking difficulty, always clamped to [10, 100].

    Negative, missing or non-numeric inputs are treated as zero.

    Examples:
        >>> difficulty(0.5, 2.0, 12000)
        47
        >>> difficulty(0, 0, 0)
        10
        >>> difficulty(5, 1000, 10**9)
        100
    """
    score = _non_negative(competition) * weights.competition_weight
    score += min(_non_negative(cpc) * weights.cpc_weight, weights.cpc_cap)
    score += min(_non_negative(search_volume) / weights.volume_divisor, weights.volume_cap)
    return int(max(weights.min_difficulty, min(weights.max_difficulty, round(score))))


def relevance(seed: str, candidate: str) -> int:
    """Score how closely *candidate* matches *seed* (0-100).

    Full containment of the seed phrase scores 100; otherwise the share of
    seed tokens present in the candidate.

    Examples:
        >>> relevance("ai tools", "best ai tools for marketing")
        100
        >>> relevance("crm software", "free crm")
        50
    """
    seed_l = seed.lower().strip()
    cand_l = candidate.lower().strip()
    if not seed_l:
        return 0
    if seed_l in cand_l:
        return 100
    seed_tokens = tokenize(seed_l)
    cand_tokens = set(tokenize(cand_l))
    overlap = sum(1 for tok in seed_tokens if tok in cand_tokens)
    return round(100 * overlap / len(seed_tokens))


def classify(keyword: str) -> str:
    """Return the cluster name for a keyword using the first matching rule."""
    text = keyword.lower()
    for name, vocabulary in CLUSTER_RULES:
        if any(term in text for term in vocabulary):
            return name
    return GENERAL_CLUSTER


def infer_intent(keyword: str) -> Intent:
    """Cheap lexical intent guess for providers that do not report one."""
    text = keyword.lower()
    if any(term in text for term in _TRANSACTIONAL_TERMS):
        return Intent.TRANSACTIONAL
    if any(term in text for term in _NAVIGATIONAL_TERMS):
        return Intent.NAVIGATIONAL
    if any(term in text for term in _COMMERCIAL_TERMS):
        return Intent.COMMERCIAL
    return Intent.INFORMATIONAL


def opportunity(
    total_volume: int,
    avg_difficulty: int,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> Opportunity:
    if total_volume > weights.high_volume_threshold:
        volume_score = 2
    elif total_volume > weights.medium_volume_threshold:
        volume_score = 1
    else:
        volume_score = 0
    if avg_difficulty < weights.low_difficulty_threshold:
        difficulty_score = 2
    elif avg_difficulty < weights.medium_difficulty_threshold:
        difficulty_score = 1
    else:
        difficulty_score = 0
    total = volume_score + difficulty_score
    if total >= 3:
        return Opportunity.HIGH
    if total >= 2:
        return Opportunity.MEDIUM
    return Opportunity.LOW


def _round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def cluster(
    records: Iterable[KeywordRecord],
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> list[Cluster]:
    """Partition keyword records into thematic clusters.

    Every record lands in exactly one cluster.  Clusters are ordered by
    total volume (descending) and members by search volume (descending);
    both sorts are stable, so ties keep input order.
    """
    groups: dict[str, list[KeywordRecord]] = {}
    for record in records:
        groups.setdefault(classify(record.keyword), []).append(record)

    clusters: list[Cluster] = []
    for name, members in groups.items():
        members = sorted(members, key=lambda r: r.search_volume, reverse=True)
        total_volume = sum(m.search_volume for m in members)
        avg_difficulty = _round_half_up(sum(m.difficulty for m in members) / len(members))
        clusters.append(Cluster(
            name=name,
            members=tuple(members),
            total_volume=total_volume,
            avg_difficulty=avg_difficulty,
            opportunity=opportunity(total_volume, avg_difficulty, weights),
        ))

    clusters.sort(key=lambda c: c.total_volume, reverse=True)
    logger.debug("Clustered %d keywords into %d clusters",
                 sum(len(c.members) for c in clusters), len(clusters))
    return clusters


def cluster_theme(name: str, seed: str) -> str:
    template = CLUSTER_THEMES.get(name, "{seed} Related Topics")
    return template.format(seed=seed).strip()


def summarize_clusters(
    clusters: Sequence[Cluster],
) -> dict[str, Any]:
    """Aggregate statistics across clusters (volume, difficulty, opportunity mix)."""
    members = [m for c in clusters for m in c.members]
    breakdown = {level.value: 0 for level in (Opportunity.HIGH, Opportunity.MEDIUM, Opportunity.LOW)}
    for c in clusters:
        breakdown[c.opportunity.value] += 1
    return {
        "totalSearchVolume": sum(m.search_volume for m in members),
        "averageDifficulty": (
            _round_half_up(sum(m.difficulty for m in members) / len(members)) if members else 0
        ),
        "totalClusters": len(clusters),
        "opportunityBreakdown": breakdown,
        "topCluster": clusters[0].name if clusters else "none",
    }
