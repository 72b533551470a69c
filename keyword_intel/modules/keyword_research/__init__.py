"""Keyword Research module -- clustering, scoring, research and strategy stages.

Only the pure scoring functions are re-exported here; the provider-backed
``KeywordResearcher`` and ``StrategyPlanner`` live in their own modules.
"""

from keyword_intel.modules.keyword_research.clusterer import (
    ScoringWeights,
    classify,
    cluster,
    difficulty,
    opportunity,
    relevance,
    summarize_clusters,
)

__all__ = [
    "ScoringWeights",
    "classify",
    "cluster",
    "difficulty",
    "opportunity",
    "relevance",
    "summarize_clusters",
]
