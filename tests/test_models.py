"""Tests for keyword records and the Analysis run record."""

import pytest

from conftest import make_record
from keyword_intel.models import Analysis, Intent, RunStatus, Source


class TestKeywordRecord:

    @pytest.mark.parametrize("kwargs", [
        {"keyword": "", "search_volume": 10, "difficulty": 20, "cpc": 1.0},
        {"keyword": "crm", "search_volume": -1, "difficulty": 20, "cpc": 1.0},
        {"keyword": "crm", "search_volume": 10, "difficulty": 5, "cpc": 1.0},
        {"keyword": "crm", "search_volume": 10, "difficulty": 101, "cpc": 1.0},
        {"keyword": "crm", "search_volume": 10, "difficulty": 20, "cpc": -0.5},
    ])
    def test_invalid_records_rejected(self, kwargs):
        with pytest.raises(ValueError):
            make_record(kwargs.pop("keyword"), volume=kwargs.pop("search_volume"), **kwargs)

    def test_coerces_enum_strings(self):
        record = make_record("crm", intent="commercial", source="cached")
        assert record.intent is Intent.COMMERCIAL
        assert record.source is Source.CACHED

    def test_to_dict_keys(self):
        assert "relevanceScore" not in make_record("crm").to_dict()
        data = make_record("crm", relevance=80).to_dict()
        assert data["relevanceScore"] == 80
        assert data["searchVolume"] == 1000
        assert data["source"] == "live"

    def test_with_source_copies(self):
        record = make_record("crm")
        mocked = record.with_source(Source.MOCK)
        assert mocked.source is Source.MOCK
        assert record.source is Source.LIVE


class TestAnalysis:

    def test_successful_lifecycle(self):
        analysis = Analysis(seed="crm", location="United States")
        assert analysis.status is RunStatus.PENDING
        analysis.start()
        analysis.record("seedKeywords", {"seedKeywords": []})
        analysis.complete({"totalKeywords": 0})

        result = analysis.to_result()
        assert result["status"] == "completed"
        assert result["results"] == {"seedKeywords": {"seedKeywords": []}}
        assert analysis.finalized

    def test_failure_shape(self):
        analysis = Analysis(seed="crm", location="United States")
        analysis.start()
        analysis.fail("intent_ranking", "rate limited", retry_after=12.345)

        assert analysis.to_result() == {
            "id": analysis.id,
            "status": "failed",
            "failedStage": "intent_ranking",
            "cause": "rate limited",
            "retryAfter": 12.3,
        }

    def test_finalized_runs_reject_mutation(self):
        analysis = Analysis(seed="crm", location="United States")
        analysis.start()
        analysis.complete({})
        with pytest.raises(ValueError):
            analysis.record("strategy", {})
        with pytest.raises(ValueError):
            analysis.fail("strategy_synthesis", "late")
        with pytest.raises(ValueError):
            analysis.start()

    def test_cannot_record_before_start(self):
        with pytest.raises(ValueError):
            Analysis(seed="crm", location="x").record("seedKeywords", {})

    def test_ids_are_unique(self):
        assert Analysis(seed="a", location="x").id != Analysis(seed="a", location="x").id
