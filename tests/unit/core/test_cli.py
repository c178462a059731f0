"""
Tests for the siteaudit command-line interface
"""
import json

import pytest
from click.testing import CliRunner

from core.cli import cli

pytestmark = pytest.mark.unit


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def audit_file(tmp_path):
    """Exported audit with one Priority OFI that no longer qualifies"""
    path = tmp_path / "audit.json"
    path.write_text(
        json.dumps(
            {
                "id": 17,
                "url": "https://example.com",
                "createdAt": "2024-03-04T12:00:00+00:00",
                "results": {
                    "onPage": {
                        "items": [
                            {
                                "name": "Robots meta tag",
                                "status": "Priority OFI",
                                "importance": "High",
                                "category": "technical",
                                "pageUrl": "https://example.com/",
                                "pageType": "homepage",
                                "analysisDetails": {"actual": "noindex"},
                            },
                            {
                                "name": "Minor wording issue",
                                "status": "Priority OFI",
                                "importance": "Low",
                                "category": "on-page",
                                "pageUrl": "https://example.com/blog",
                                "pageType": "blog",
                            },
                            {
                                "name": "H1 present",
                                "status": "OK",
                                "category": "on-page",
                                "pageUrl": "https://example.com/blog",
                                "pageType": "blog",
                            },
                        ]
                    }
                },
            }
        ),
        encoding="utf-8",
    )
    return path


class TestValidateRules:
    def test_default_rules(self, runner):
        result = runner.invoke(cli, ["validate-rules"])

        assert result.exit_code == 0
        assert "Validation successful" in result.output
        assert "blocks_indexability (critical)" in result.output

    def test_invalid_rules(self, runner, write_rules):
        path = write_rules('version: "1.0"\ncriteria: []\n')

        result = runner.invoke(cli, ["validate-rules", str(path)])

        assert result.exit_code == 1
        assert "Validation failed" in result.output


class TestShowTiers:
    def test_shows_configured_tiers(self, runner):
        result = runner.invoke(cli, ["show-tiers"])

        assert result.exit_code == 0
        assert "Page tiers (v1.0)" in result.output
        assert "Tier 1 (weight 3)" in result.output
        assert "(everything else)" in result.output

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["show-tiers", str(tmp_path / "missing.yaml")])
        assert result.exit_code == 1


class TestAuditCommands:
    def test_score_audit(self, runner, audit_file):
        result = runner.invoke(cli, ["score-audit", str(audit_file)])

        assert result.exit_code == 0
        summary = json.loads(result.output)
        assert summary["priorityOfiCount"] == 2
        assert summary["okCount"] == 1
        assert summary["priorityBreakdown"]["tier1"]["pages"] == 1
        assert summary["priorityBreakdown"]["confidence"] == 0.75

    def test_reclassify_audit_writes_output(self, runner, audit_file, tmp_path):
        output = tmp_path / "reclassified.json"

        result = runner.invoke(cli, ["reclassify-audit", str(audit_file), "--output", str(output)])

        assert result.exit_code == 0
        assert '"downgradedCount": 1' in result.output

        written = json.loads(output.read_text(encoding="utf-8"))
        items = written["results"]["onPage"]["items"]
        assert written["id"] == 17
        assert [item["status"] for item in items] == ["Priority OFI", "OFI", "OK"]
        assert items[1]["notes"].startswith("[OFI Classification] Standard OFI")
        assert written["results"]["summary"]["priorityOfiCount"] == 1

    def test_zulu_timestamp_accepted(self, runner, tmp_path):
        path = tmp_path / "zulu.json"
        path.write_text(
            json.dumps(
                {
                    "id": 18,
                    "url": "https://example.com",
                    "createdAt": "2024-03-04T12:00:00.000Z",
                    "results": {"onPage": {"items": [{"name": "H1 present", "status": "OK"}]}},
                }
            ),
            encoding="utf-8",
        )

        result = runner.invoke(cli, ["score-audit", str(path)])

        assert result.exit_code == 0
        assert json.loads(result.output)["okCount"] == 1

    def test_malformed_json_exits_cleanly(self, runner, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text('{"id": 19, "results": {', encoding="utf-8")

        result = runner.invoke(cli, ["reclassify-audit", str(path)])

        assert result.exit_code == 1
        assert "✗ Invalid audit" in result.output
        assert not isinstance(result.exception, json.JSONDecodeError)

    def test_invalid_item_exits_cleanly(self, runner, tmp_path):
        path = tmp_path / "bad_item.json"
        path.write_text(json.dumps({"results": {"onPage": {"items": [{"description": "no name"}]}}}), encoding="utf-8")

        result = runner.invoke(cli, ["score-audit", str(path)])

        assert result.exit_code == 1
        assert "✗ Invalid audit" in result.output

    def test_non_object_results_exit_cleanly(self, runner, tmp_path):
        path = tmp_path / "list.json"
        path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")

        result = runner.invoke(cli, ["score-audit", str(path)])

        assert result.exit_code == 1
        assert "Audit results must be a JSON object" in result.output


class TestInfo:
    def test_env_info(self, runner):
        result = runner.invoke(cli, ["env-info"])

        assert result.exit_code == 0
        assert "Environment: test" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert "0.1.0" in result.output
