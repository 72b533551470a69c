"""Competition metrics derived from a page of organic SERP results."""

from collections import Counter
from typing import Any, Sequence

from keyword_intel.models import SerpResult

DEFAULT_DOMAIN_RANK = 50


def analyze_competitors(results: Sequence[SerpResult]) -> dict[str, Any]:
    domains = [r.domain for r in results]
    unique = list(dict.fromkeys(domains))
    return {
        "totalCompetitors": len(unique),
        "topDomains": unique[:5],
        "domainDistribution": dict(Counter(domains)),
        "averagePosition": (
            round(sum(r.position for r in results) / len(results), 2) if results else 0.0
        ),
    }


def average_domain_rank(results: Sequence[SerpResult]) -> float:
    """Mean domain rank; results without a rank count as 50."""
    if not results:
        return 0.0
    ranks = [
        r.domain_rank if r.domain_rank is not None else DEFAULT_DOMAIN_RANK
        for r in results
    ]
    return sum(ranks) / len(ranks)


def competition_level(avg_domain_rank: float) -> str:
    if avg_domain_rank > 70:
        return "high"
    if avg_domain_rank > 40:
        return "medium"
    return "low"


def ranking_difficulty(results: Sequence[SerpResult]) -> int:
    avg_rank = average_domain_rank(results)
    unique_domains = len({r.domain for r in results})
    bonus = 20 if unique_domains > 8 else 10 if unique_domains > 5 else 0
    return round(min(100, avg_rank + bonus))


def difficulty_metrics(results: Sequence[SerpResult]) -> dict[str, Any]:
    avg_rank = average_domain_rank(results)
    return {
        "averageDomainRank": round(avg_rank, 1),
        "competitionLevel": competition_level(avg_rank),
        "rankingDifficulty": ranking_difficulty(results),
    }
