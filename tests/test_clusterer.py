"""Tests for keyword clustering, difficulty, relevance and opportunity scoring."""

import pytest

from conftest import make_record
from keyword_intel.models import Intent, Opportunity
from keyword_intel.modules.keyword_research.clusterer import (
    ScoringWeights,
    classify,
    cluster,
    cluster_theme,
    difficulty,
    infer_intent,
    opportunity,
    relevance,
    summarize_clusters,
)

SAMPLE_KEYWORDS = [
    "best crm tool", "crm guide", "crm pricing", "hubspot vs salesforce",
    "crm template", "crm", "top crm apps", "how to use a crm", "crm software",
    "free crm", "crm case study", "crm alternatives", "crm review", "sales platform",
    "crm tutorial", "crm cost", "customer database", "crm comparison",
]


def _sample_records():
    return [
        make_record(kw, volume=(i * 937) % 9000, difficulty=10 + (i * 13) % 91)
        for i, kw in enumerate(SAMPLE_KEYWORDS)
    ]


class TestClassify:

    @pytest.mark.parametrize("keyword,expected", [
        ("best crm tool", "tools"),
        ("crm software", "tools"),
        ("How To pick a CRM", "guides"),
        ("crm tutorial", "guides"),
        ("top crm", "reviews"),
        ("crm vs spreadsheet", "comparisons"),
        ("crm alternatives", "comparisons"),
        ("free crm", "pricing"),
        ("crm cost", "pricing"),
        ("crm pricing", "pricing"),
        ("crm template", "examples"),
        ("crm case study", "examples"),
        ("crm", "general"),
    ])
    def test_first_matching_rule_wins(self, keyword, expected):
        assert classify(keyword) == expected


class TestCluster:

    def test_scenario_three_distinct_clusters(self):
        records = [
            make_record("best crm tool", volume=3000),
            make_record("crm guide", volume=2000),
            make_record("crm pricing", volume=1000),
        ]
        clusters = cluster(records)

        assert [c.name for c in clusters] == ["tools", "guides", "pricing"]
        assert all(len(c.members) == 1 for c in clusters)

    def test_partition_is_exhaustive_and_non_overlapping(self):
        records = _sample_records()
        clusters = cluster(records)

        members = [m.keyword for c in clusters for m in c.members]
        assert sorted(members) == sorted(SAMPLE_KEYWORDS)
        assert len(members) == len(set(members))
        assert len({c.name for c in clusters}) == len(clusters)

    def test_aggregates_match_members(self):
        for c in cluster(_sample_records()):
            assert c.total_volume == sum(m.search_volume for m in c.members)
            mean = sum(m.difficulty for m in c.members) / len(c.members)
            assert abs(c.avg_difficulty - mean) <= 0.5
            assert c.opportunity == opportunity(c.total_volume, c.avg_difficulty)

    def test_average_difficulty_rounds_half_up(self):
        records = [
            make_record("crm guide", difficulty=20),
            make_record("crm tutorial", difficulty=31),
        ]
        (guides,) = cluster(records)
        assert guides.avg_difficulty == 26

    def test_ordering_by_volume(self):
        records = [
            make_record("crm guide", volume=100),
            make_record("crm tool", volume=50),
            make_record("crm tutorial", volume=900),
            make_record("crm software", volume=60),
        ]
        clusters = cluster(records)

        assert [c.name for c in clusters] == ["guides", "tools"]
        assert [m.keyword for m in clusters[0].members] == ["crm tutorial", "crm guide"]
        assert [m.keyword for m in clusters[1].members] == ["crm software", "crm tool"]

    def test_empty_input(self):
        assert cluster([]) == []


class TestDifficulty:

    def test_weighted_formula(self):
        assert difficulty(0.5, 2.0, 12000) == 47

    def test_component_caps(self):
        # 1.0*30 + min(50, 30) + min(100, 40)
        assert difficulty(1.0, 5.0, 100000) == 100
        assert difficulty(0.0, 100.0, 0) == 30

    @pytest.mark.parametrize("competition,cpc,volume", [
        (0, 0, 0),
        (-5, -10, -1000),
        (None, None, None),
        ("n/a", "x", "y"),
        (1e9, 1e9, 1e12),
        (0.01, 0.01, 1),
    ])
    def test_always_within_bounds(self, competition, cpc, volume):
        assert 10 <= difficulty(competition, cpc, volume) <= 100

    def test_custom_weights(self):
        weights = ScoringWeights(competition_weight=60.0)
        assert difficulty(0.5, 0, 0, weights) == 30


class TestRelevance:

    def test_containment_scores_full(self):
        assert relevance("ai tools", "best ai tools for marketing") == 100

    def test_token_overlap(self):
        assert relevance("crm software", "free crm") == 50
        assert relevance("crm software", "project management") == 0

    def test_case_insensitive(self):
        assert relevance("AI Tools", "best ai tools") == 100

    def test_empty_seed(self):
        assert relevance("", "anything") == 0


class TestOpportunity:

    @pytest.mark.parametrize("volume,avg_difficulty,expected", [
        (12000, 30, Opportunity.HIGH),
        (6000, 30, Opportunity.HIGH),
        (12000, 50, Opportunity.HIGH),
        (6000, 50, Opportunity.MEDIUM),
        (12000, 80, Opportunity.MEDIUM),
        (1000, 35, Opportunity.MEDIUM),
        (1000, 50, Opportunity.LOW),
        (10000, 70, Opportunity.LOW),
    ])
    def test_thresholds(self, volume, avg_difficulty, expected):
        assert opportunity(volume, avg_difficulty) is expected

    def test_weights_from_dict_ignore_unknown(self, caplog):
        weights = ScoringWeights.from_dict({"high_volume_threshold": 500, "bogus": 1})
        assert weights.high_volume_threshold == 500
        assert "bogus" in caplog.text
        assert opportunity(600, 80, weights) is Opportunity.MEDIUM


class TestIntentAndSummary:

    @pytest.mark.parametrize("keyword,expected", [
        ("buy crm", Intent.TRANSACTIONAL),
        ("crm pricing", Intent.TRANSACTIONAL),
        ("crm login", Intent.NAVIGATIONAL),
        ("best crm", Intent.COMMERCIAL),
        ("what is a crm", Intent.INFORMATIONAL),
    ])
    def test_infer_intent(self, keyword, expected):
        assert infer_intent(keyword) is expected

    def test_theme_labels(self):
        assert cluster_theme("tools", "crm") == "crm Tools & Software"
        assert cluster_theme("general", "crm") == "General crm Topics"

    def test_summarize_clusters(self):
        records = [
            make_record("crm tool", volume=8000, difficulty=20),
            make_record("crm software", volume=4000, difficulty=40),
            make_record("crm guide", volume=100, difficulty=90),
        ]
        summary = summarize_clusters(cluster(records))

        assert summary["totalSearchVolume"] == 12100
        assert summary["averageDifficulty"] == 50
        assert summary["totalClusters"] == 2
        assert summary["opportunityBreakdown"] == {"high": 1, "medium": 0, "low": 1}
        assert summary["topCluster"] == "tools"

    def test_summarize_empty(self):
        summary = summarize_clusters([])
        assert summary["totalClusters"] == 0
        assert summary["topCluster"] == "none"
