"""Tests for the command-line interface."""

import json

import pytest
from click.testing import CliRunner

from seo_compliance_optimizer import cli

from conftest import COMPLIANT_META, ScriptedCorrector, fix_meta, provider_down


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def write_document(tmp_path):
    """Write a document to a JSON file and return its path."""
    def write(document, name="page.json"):
        path = tmp_path / name
        path.write_text(json.dumps(document.to_dict()), encoding="utf-8")
        return path
    return write


@pytest.fixture
def scripted_providers(monkeypatch):
    """Replace provider construction with scripted correctors."""
    created = []

    def install(**kwargs):
        def factory(name, model=None):
            corrector = ScriptedCorrector(name=name, **kwargs)
            created.append(corrector)
            return corrector
        monkeypatch.setattr(cli, "create_corrector", factory)
        return created
    return install


class TestAnalyze:
    """Tests for the analyze command."""

    def test_compliant_document(self, runner, write_document, compliant_document):
        """Test analyzing a document with no issues."""
        result = runner.invoke(cli.main, ["analyze", str(write_document(compliant_document))])

        assert result.exit_code == 0
        assert "100.0" in result.output
        assert "No issues found" in result.output

    def test_json_output(self, runner, write_document, short_meta_document):
        """Test the raw JSON validation output."""
        result = runner.invoke(
            cli.main, ["analyze", str(write_document(short_meta_document)), "--json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["compliance_score"] == 75.93
        assert [i["type"] for i in data["issues"]] == [
            "meta_description_short",
            "meta_description_no_keyword",
        ]

    def test_config_file(self, runner, write_document, short_meta_document, tmp_path):
        """Test that thresholds from a config file apply."""
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"minMetaDescLength": 5}), encoding="utf-8")

        result = runner.invoke(cli.main, [
            "analyze", str(write_document(short_meta_document)), "--config", str(config), "--json",
        ])

        types = [i["type"] for i in json.loads(result.stdout)["issues"]]
        assert "meta_description_short" not in types

    def test_existing_title_warning(self, runner, write_document, compliant_document):
        """Test that a duplicate published title shows up as a warning."""
        result = runner.invoke(cli.main, [
            "analyze", str(write_document(compliant_document)),
            "--existing-title", "Coffee Brewing Basics for Beginners", "--json",
        ])

        assert result.exit_code == 0
        warnings = json.loads(result.stdout)["warnings"]
        assert warnings == ["Title may not be unique: 100.0% similar to 'Coffee Brewing Basics for Beginners'"]

    def test_invalid_json(self, runner, tmp_path):
        """Test that an unparsable document exits with status 1."""
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        result = runner.invoke(cli.main, ["analyze", str(path)])

        assert result.exit_code == 1
        assert "Error:" in result.output


class TestOptimize:
    """Tests for the optimize command."""

    def test_writes_result(self, runner, write_document, short_meta_document, scripted_providers, tmp_path):
        """Test a successful optimization saved with --output."""
        scripted_providers(default=fix_meta)
        output = tmp_path / "result.json"

        result = runner.invoke(cli.main, [
            "optimize", str(write_document(short_meta_document)), "-o", str(output),
        ])

        assert result.exit_code == 0
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["termination_reason"] == "compliance_achieved"
        assert data["optimization_summary"]["complianceAchieved"] is True
        assert data["document"]["meta_description"] == COMPLIANT_META

    def test_provider_failover_order(self, runner, write_document, short_meta_document, scripted_providers):
        """Test that repeated --provider options build correctors in order."""
        created = scripted_providers(default=fix_meta)

        result = runner.invoke(cli.main, [
            "optimize", str(write_document(short_meta_document)), "-p", "openai", "-p", "anthropic",
        ])

        assert result.exit_code == 0
        assert [c.name for c in created] == ["openai", "anthropic"]
        assert created[0].calls
        assert not created[1].calls

    def test_invalid_option_value(self, runner, write_document, short_meta_document, scripted_providers):
        """Test that an invalid configuration exits with status 1."""
        scripted_providers(default=fix_meta)

        result = runner.invoke(cli.main, [
            "optimize", str(write_document(short_meta_document)), "--max-iterations", "0",
        ])

        assert result.exit_code == 1
        assert "max_iterations" in result.output

    def test_session_error_exit_status(self, runner, write_document, short_meta_document,
                                       scripted_providers, tmp_path):
        """Test that a session ending on an error exits with status 2."""
        scripted_providers(default=provider_down())
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"maxRetryAttempts": 1}), encoding="utf-8")

        result = runner.invoke(cli.main, [
            "optimize", str(write_document(short_meta_document)), "--config", str(config),
        ])

        assert result.exit_code == 2
        assert "critical_error" in result.output
