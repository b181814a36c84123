"""Tests for patch_compliance.cli module."""

import json
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner

import patch_compliance.cli as cli_module
from patch_compliance.cli import cli, parse_month, print_header
from patch_compliance.history_client import dump_links
from patch_compliance.models import Device


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def links_file(tmp_path: Path, sample_links) -> Path:
    """Write the sample release links to a JSON file."""
    path = tmp_path / "links.json"
    dump_links(sample_links, path)
    return path


@pytest.fixture
def devices_file(tmp_path: Path) -> Path:
    """Write a small device export."""
    path = tmp_path / "devices.json"
    path.write_text(json.dumps({
        "value": [
            {"deviceName": "PC-1", "osVersion": "10.0.19045.5131"},
            {"deviceName": "PC-2", "osVersion": "10.0.19045.5011"},
            {"deviceName": "PC-3"},
        ]
    }))
    return path


@pytest.fixture(autouse=True)
def isolated_db(tmp_path: Path, monkeypatch):
    """Point the CLI at a temporary database."""
    monkeypatch.setenv("PATCH_COMPLIANCE_DB", str(tmp_path / "cli.db"))
    monkeypatch.delenv("PATCH_COMPLIANCE_TARGET_MONTH", raising=False)
    monkeypatch.delenv("PATCH_COMPLIANCE_FRESHNESS_DAYS", raising=False)
    monkeypatch.delenv("GRAPH_ACCESS_TOKEN", raising=False)
    monkeypatch.setattr(cli_module.console, "width", 200)


class TestPrintHeader:
    """Tests for print_header function."""

    def test_print_header(self):
        """Test that header prints without error."""
        print_header()


class TestParseMonth:
    """Tests for parse_month function."""

    def test_valid(self):
        """Test parsing YYYY-MM."""
        assert parse_month("2024-11") == (11, 2024)

    def test_invalid_month(self):
        """Test rejecting month 13."""
        with pytest.raises(ValueError):
            parse_month("2024-13")

    def test_garbage(self):
        """Test rejecting non-numeric input."""
        with pytest.raises(ValueError):
            parse_month("november")


class TestCliGroup:
    """Tests for main CLI group."""

    def test_cli_help(self, runner: CliRunner):
        """Test CLI help output."""
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "Patch Compliance Reporter" in result.output

    def test_cli_version(self, runner: CliRunner):
        """Test CLI version output."""
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestBuildsCommand:
    """Tests for builds command."""

    def test_builds(self, runner: CliRunner):
        """Test listing the build registry."""
        result = runner.invoke(cli, ["builds"])

        assert result.exit_code == 0
        assert "19045" in result.output
        assert "Win10-22H2" in result.output


class TestCatalogCommand:
    """Tests for catalog command."""

    def test_catalog_from_file(self, runner: CliRunner, links_file: Path):
        """Test building the catalog from a links file."""
        result = runner.invoke(cli, ["catalog", "-l", str(links_file)])

        assert result.exit_code == 0
        assert "19045.5131" in result.output
        assert "19045.5073" in result.output  # preview list
        assert "22631.4351" in result.output  # out-of-band list

    def test_catalog_fetch_and_save(self, runner: CliRunner, tmp_path: Path, sample_links):
        """Test fetching links, saving them and storing the catalog."""
        saved = tmp_path / "saved.json"
        with patch("patch_compliance.cli.fetch_all_update_history", return_value=sample_links):
            result = runner.invoke(cli, ["catalog", "--save-links", str(saved), "--save"])

        assert result.exit_code == 0
        assert saved.exists()
        assert "Stored 6 patch records" in result.output

    def test_catalog_empty(self, runner: CliRunner):
        """Test a fetch that returns nothing."""
        with patch("patch_compliance.cli.fetch_all_update_history", return_value=[]):
            result = runner.invoke(cli, ["catalog"])

        assert result.exit_code == 0
        assert "No patch records found" in result.output


class TestLatestCommand:
    """Tests for latest command."""

    def test_latest_target_month(self, runner: CliRunner, links_file: Path):
        """Test selecting patches for an explicit month."""
        result = runner.invoke(cli, ["latest", "-l", str(links_file), "-m", "2024-11"])

        assert result.exit_code == 0
        assert "KB5046613" in result.output
        assert "target-month" in result.output

    def test_latest_month_from_environment(self, runner: CliRunner, links_file: Path, monkeypatch):
        """Test reading the target month from the environment."""
        monkeypatch.setenv("PATCH_COMPLIANCE_TARGET_MONTH", "2024-10")
        result = runner.invoke(cli, ["latest", "-l", str(links_file)])

        assert result.exit_code == 0
        assert "KB5044273" in result.output

    def test_latest_invalid_month(self, runner: CliRunner, links_file: Path):
        """Test rejecting a malformed month."""
        result = runner.invoke(cli, ["latest", "-l", str(links_file), "-m", "2024-13"])

        assert "Invalid month format" in result.output

    def test_latest_nothing_selected(self, runner: CliRunner, links_file: Path):
        """Test a month without releases."""
        result = runner.invoke(cli, ["latest", "-l", str(links_file), "-m", "2020-01"])

        assert result.exit_code == 0
        assert "No patches selected" in result.output


class TestEvaluateCommand:
    """Tests for evaluate command."""

    def test_evaluate_from_files(self, runner: CliRunner, links_file: Path, devices_file: Path, tmp_path: Path):
        """Test a full run from exported links and devices."""
        csv_path = tmp_path / "report.csv"
        result = runner.invoke(cli, [
            "evaluate", "-l", str(links_file), "-d", str(devices_file),
            "-m", "2024-11", "--csv", str(csv_path),
        ])

        assert result.exit_code == 0
        assert "Compliance Summary" in result.output
        assert "33.33%" in result.output
        assert "Stored as run #1" in result.output
        assert csv_path.exists()

    def test_evaluate_with_malformed_device(self, runner: CliRunner, links_file: Path, tmp_path: Path):
        """Test that one bad device record does not stop the batch."""
        path = tmp_path / "mixed.json"
        path.write_text(json.dumps([
            {"deviceName": "PC-OK", "osVersion": "10.0.19045.5131"},
            {"deviceName": "PC-BAD", "osVersion": "10.0.19045.5011", "lastSyncDateTime": "not-a-date"},
        ]))
        result = runner.invoke(cli, [
            "evaluate", "-l", str(links_file), "-d", str(path), "-m", "2024-11", "--no-save",
        ])

        assert result.exit_code == 0
        assert "PC-BAD" in result.output
        assert "50.00%" in result.output

    def test_evaluate_no_save(self, runner: CliRunner, links_file: Path, devices_file: Path):
        """Test skipping the database."""
        result = runner.invoke(cli, [
            "evaluate", "-l", str(links_file), "-d", str(devices_file), "-m", "2024-11", "--no-save",
        ])

        assert result.exit_code == 0
        assert "Stored as run" not in result.output

    def test_evaluate_from_graph(self, runner: CliRunner, links_file: Path):
        """Test fetching devices with a Graph token."""
        devices = [Device(device_name="PC-1", os_version="10.0.19045.5131")]
        with patch("patch_compliance.cli.fetch_managed_devices", return_value=devices) as mock_fetch:
            result = runner.invoke(cli, [
                "evaluate", "-l", str(links_file), "--token", "abc", "-m", "2024-11", "--no-save",
            ])

        assert result.exit_code == 0
        mock_fetch.assert_called_once_with("abc", verbose=False)
        assert "100.00%" in result.output

    def test_evaluate_graph_failure(self, runner: CliRunner, links_file: Path):
        """Test that Graph errors end the command with an error."""
        request = httpx.Request("GET", "https://graph.microsoft.com/beta/deviceManagement/managedDevices")
        error = httpx.HTTPStatusError("401 Unauthorized", request=request, response=httpx.Response(401, request=request))
        with patch("patch_compliance.cli.fetch_managed_devices", side_effect=error):
            result = runner.invoke(cli, ["evaluate", "-l", str(links_file), "--token", "abc"])

        assert result.exit_code != 0
        assert "Failed to fetch managed devices" in result.output

    def test_evaluate_without_device_source(self, runner: CliRunner, links_file: Path):
        """Test that a missing device source is reported."""
        result = runner.invoke(cli, ["evaluate", "-l", str(links_file)])

        assert "No device source" in result.output


class TestRunsCommands:
    """Tests for runs, show and stats commands."""

    def test_runs_empty(self, runner: CliRunner):
        """Test listing runs before any evaluation."""
        result = runner.invoke(cli, ["runs"])

        assert result.exit_code == 0
        assert "No runs found" in result.output

    def test_runs_and_show(self, runner: CliRunner, links_file: Path, devices_file: Path):
        """Test browsing a stored run."""
        runner.invoke(cli, ["evaluate", "-l", str(links_file), "-d", str(devices_file), "-m", "2024-11"])

        runs = runner.invoke(cli, ["runs"])
        assert runs.exit_code == 0
        assert "2024-11" in runs.output

        show = runner.invoke(cli, ["show", "1"])
        assert show.exit_code == 0
        assert "PC-2" in show.output
        assert "KB5046613" in show.output

    def test_show_missing_run(self, runner: CliRunner):
        """Test showing a run that does not exist."""
        result = runner.invoke(cli, ["show", "42"])

        assert "not found" in result.output

    def test_stats(self, runner: CliRunner):
        """Test database statistics output."""
        result = runner.invoke(cli, ["stats"])

        assert result.exit_code == 0
        assert "Database Statistics" in result.output


class TestCleanCommand:
    """Tests for clean command."""

    def test_clean(self, runner: CliRunner, tmp_path: Path):
        """Test deleting old reports."""
        for stamp in ("20241101_080000", "20241108_080000"):
            (tmp_path / f"patch_compliance_{stamp}.csv").write_text("x")

        result = runner.invoke(cli, ["clean", "--report-dir", str(tmp_path), "--keep", "1"])

        assert result.exit_code == 0
        assert "patch_compliance_20241101_080000.csv" in result.output

    def test_clean_negative_keep(self, runner: CliRunner, tmp_path: Path):
        """Test that a negative --keep is rejected before anything is deleted."""
        report = tmp_path / "patch_compliance_20241101_080000.csv"
        report.write_text("x")

        result = runner.invoke(cli, ["clean", "--report-dir", str(tmp_path), "--keep", "-1"])

        assert result.exit_code != 0
        assert report.exists()

    def test_clean_nothing(self, runner: CliRunner, tmp_path: Path):
        """Test cleaning an empty directory."""
        result = runner.invoke(cli, ["clean", "--report-dir", str(tmp_path)])

        assert "Nothing to delete" in result.output
