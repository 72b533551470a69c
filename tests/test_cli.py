"""Tests for the Typer CLI, run entirely against mock providers."""

import pytest
from typer.testing import CliRunner

from keyword_intel.cli import app

runner = CliRunner()


@pytest.fixture()
def config_args(clean_env, tmp_path):
    """Run from an empty directory with no settings file and no credentials."""
    clean_env.chdir(tmp_path)
    return ["--config", str(tmp_path / "settings.yaml")]


class TestCommands:

    def test_analyze_json(self, config_args):
        result = runner.invoke(app, ["analyze", "crm software", "--json", *config_args])
        assert result.exit_code == 0, result.output
        assert '"status": "completed"' in result.output
        assert '"keywordClusters"' in result.output

    def test_analyze_invalid_seed_fails(self, config_args):
        result = runner.invoke(app, ["analyze", "ftp://example.com", *config_args])
        assert result.exit_code == 1
        assert "seed_extraction" in result.output

    def test_keywords(self, config_args):
        result = runner.invoke(app, ["keywords", "crm software", "crm pricing", *config_args])
        assert result.exit_code == 0, result.output
        assert "totalKeywords" in result.output

    def test_suggest_rejects_overlong_keyword(self, config_args):
        result = runner.invoke(app, ["suggest", "x" * 101, *config_args])
        assert result.exit_code == 2

    def test_serp(self, config_args):
        result = runner.invoke(app, ["serp", "crm", *config_args])
        assert result.exit_code == 0, result.output
        assert "example1.com" in result.output

    def test_clusters(self, config_args):
        result = runner.invoke(app, ["clusters", "crm", "--limit", "10", *config_args])
        assert result.exit_code == 0, result.output
        assert "totalClusters" in result.output

    def test_health_in_mock_mode(self, config_args):
        result = runner.invoke(app, ["health", *config_args])
        assert result.exit_code == 0, result.output
        assert "healthy" in result.output

    def test_status(self, config_args):
        result = runner.invoke(app, ["status", *config_args])
        assert result.exit_code == 0, result.output
        assert "dataforseo" in result.output

    def test_bad_config_exits_2(self, clean_env, tmp_path):
        clean_env.chdir(tmp_path)
        bad = tmp_path / "settings.yaml"
        bad.write_text("cache:\n  ttl_seconds: -5\n", encoding="utf-8")
        result = runner.invoke(app, ["status", "--config", str(bad)])
        assert result.exit_code == 2
