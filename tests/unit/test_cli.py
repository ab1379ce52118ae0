"""
Unit tests for the command line interface.

Run with: pytest tests/unit/test_cli.py -v
"""

import importlib
import json

import pytest
import yaml
from click.testing import CliRunner

from codethreat.cli import cli
from codethreat.core.exceptions import RemoteServiceError
from codethreat.core.models import ScanStatus, SeverityCounts
from codethreat.core.orchestrator import ScanOrchestrator


# The package re-exports the ``scan`` click group under the module's name
scan_module = importlib.import_module("codethreat.cli.scan")


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def service_factory(monkeypatch, make_service, client_context):
    """Replace the API client used by ``scan`` commands with a fake service"""
    created = []

    def install(statuses, **kwargs):
        service = make_service(statuses, **kwargs)
        created.append(service)
        monkeypatch.setattr(scan_module, "CodeThreatClient", lambda config: client_context(service))
        return service

    install.created = created
    return install


@pytest.fixture
def org_env(clean_env, monkeypatch):
    monkeypatch.setenv("CT_SERVER_URL", "https://api.codethreat.test")
    monkeypatch.setenv("CT_API_KEY", "ct_test_key")
    monkeypatch.setenv("CT_ORG_SLUG", "acme")
    return clean_env


class TestScanRun:
    """Test ``codethreat scan run`` exit codes"""

    def test_threshold_failure_exits_one(self, runner, org_env, service_factory):
        """Test critical findings above --max-critical fail the build"""
        service_factory([ScanStatus.COMPLETED], counts=SeverityCounts(critical=2))

        result = runner.invoke(cli, ["scan", "run", "repo-1", "--wait", "--max-critical", "1"])

        assert result.exit_code == 1
        assert "Build failed" in result.output
        assert "2 critical vulnerabilities found (threshold: 1)" in result.output

    def test_thresholds_pass(self, runner, org_env, service_factory):
        """Test counts under every threshold exit zero"""
        service_factory([ScanStatus.COMPLETED], counts=SeverityCounts(critical=2, high=1))

        result = runner.invoke(
            cli, ["scan", "run", "repo-1", "--wait", "--max-critical", "5", "--max-high", "-1"]
        )

        assert result.exit_code == 0, result.output
        assert "All threshold checks passed" in result.output

    def test_no_thresholds_passes_with_findings(self, runner, org_env, service_factory):
        """Test a plain --wait run never fails on findings alone"""
        service_factory([ScanStatus.COMPLETED], counts=SeverityCounts(critical=1, high=4))

        result = runner.invoke(cli, ["scan", "run", "repo-1", "--wait"])

        assert result.exit_code == 0, result.output
        assert "Build failed" not in result.output

    def test_out_of_bounds_timeout_flag_exits_two(self, runner, org_env, service_factory):
        """Test --timeout below the minimum exits 2 before any request"""
        service = service_factory([ScanStatus.SCANNING])

        result = runner.invoke(cli, ["scan", "run", "repo-1", "--wait", "--timeout", "10"])

        assert result.exit_code == 2
        assert "between 60 and 3600" in result.output
        assert service.submit_calls == []
        assert service.status_calls == []

    def test_zero_poll_interval_flag_exits_two(self, runner, org_env, service_factory):
        """Test --poll-interval 0 exits 2 before any request"""
        service = service_factory([ScanStatus.SCANNING])

        result = runner.invoke(cli, ["scan", "run", "repo-1", "--wait", "--poll-interval", "0"])

        assert result.exit_code == 2
        assert "between 5 and 60" in result.output
        assert service.submit_calls == []

    def test_timeout_reports_elapsed_and_last_status(
        self, runner, org_env, service_factory, monkeypatch, fake_clock
    ):
        """Test the timeout message names elapsed time and the last status"""
        service_factory([ScanStatus.SCANNING], clock=fake_clock)
        monkeypatch.setattr(
            scan_module,
            "ScanOrchestrator",
            lambda client, config: ScanOrchestrator(client, config, clock=fake_clock, sleep=fake_clock.sleep),
        )

        result = runner.invoke(
            cli, ["scan", "run", "repo-1", "--wait", "--timeout", "60", "--poll-interval", "30"]
        )

        output = " ".join(result.output.split())
        assert result.exit_code == 6
        assert "60s elapsed, last status: SCANNING" in output

    def test_export_without_wait_is_usage_error(self, runner, org_env, service_factory, tmp_path):
        """Test --export without --wait is rejected instead of ignored"""
        service = service_factory([ScanStatus.COMPLETED])

        result = runner.invoke(cli, ["scan", "run", "repo-1", "--export", "out.sarif"])

        assert result.exit_code == 2
        assert "--export requires --wait" in result.output
        assert service.submit_calls == []
        assert not (tmp_path / "project" / "out.sarif").exists()

    def test_no_wait_ignores_thresholds(self, runner, org_env, service_factory):
        """Test an asynchronous submission exits zero and prints the scan id"""
        service = service_factory([ScanStatus.SCANNING])

        result = runner.invoke(cli, ["scan", "run", "repo-1", "--format", "json"])

        assert result.exit_code == 0, result.output
        assert service.status_calls == []
        assert '"synchronous": false' in result.output
        assert "scan-1" in result.output

    def test_missing_organization_exits_three(self, runner, clean_env, monkeypatch, service_factory):
        """Test a scan without an organization slug exits 3"""
        monkeypatch.setenv("CT_API_KEY", "ct_test_key")
        service = service_factory([ScanStatus.COMPLETED])

        result = runner.invoke(cli, ["scan", "run", "repo-1", "--wait"])

        assert result.exit_code == 3
        assert service.submit_calls == []

    def test_invalid_config_exits_two(self, runner, org_env, monkeypatch, service_factory):
        """Test an out-of-bounds timeout exits 2 before any request"""
        monkeypatch.setenv("CT_TIMEOUT", "59")
        service = service_factory([ScanStatus.COMPLETED])

        result = runner.invoke(cli, ["scan", "run", "repo-1", "--wait"])

        assert result.exit_code == 2
        assert "between 60 and 3600" in result.output
        assert service.submit_calls == []

    def test_remote_error_exits_four(self, runner, org_env, service_factory):
        """Test a server error exits 4"""
        service_factory(
            [ScanStatus.COMPLETED],
            submit_error=RemoteServiceError("Repository not found", status=404, code="NOT_FOUND"),
        )

        result = runner.invoke(cli, ["scan", "run", "repo-1"])

        assert result.exit_code == 4
        assert "Repository not found" in result.output

    def test_failed_scan_exits_five(self, runner, org_env, service_factory):
        """Test a scan that fails on the server exits 5"""
        service_factory([ScanStatus.FAILED])

        result = runner.invoke(cli, ["scan", "run", "repo-1", "--wait"])

        assert result.exit_code == 5

    def test_invalid_scan_type_is_usage_error(self, runner, org_env, service_factory):
        """Test an unknown --types value is rejected by click"""
        service = service_factory([ScanStatus.COMPLETED])

        result = runner.invoke(cli, ["scan", "run", "repo-1", "--types", "sast,dast"])

        assert result.exit_code == 2
        assert "dast" in result.output
        assert service.submit_calls == []

    def test_export_after_completion(self, runner, org_env, service_factory):
        """Test --export writes the results file"""
        service_factory(
            [ScanStatus.COMPLETED],
            counts=SeverityCounts(low=1),
            export_payload='{"runs": []}',
        )

        result = runner.invoke(
            cli,
            ["scan", "run", "repo-1", "--wait", "--export", "out/results.sarif", "--export-format", "sarif"],
        )

        assert result.exit_code == 0, result.output
        with open("out/results.sarif", encoding="utf-8") as f:
            assert f.read() == '{"runs": []}'


class TestConfigCommands:
    """Test ``codethreat config``"""

    def test_show_json_masks_api_key(self, runner, org_env):
        """Test config show never prints the API key"""
        result = runner.invoke(cli, ["config", "show", "--format", "json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["api_key"] == "***hidden***"
        assert data["organization_slug"] == "acme"
        assert "ct_test_key" not in result.output

    def test_flags_override_environment(self, runner, org_env):
        """Test global flags win over CT_* variables"""
        result = runner.invoke(cli, ["--org-slug", "from-flag", "config", "show", "--format", "json"])

        assert json.loads(result.output)["organization_slug"] == "from-flag"

    def test_set_persists_value(self, runner, org_env):
        """Test config set writes the user config file"""
        result = runner.invoke(cli, ["config", "set", "default-branch", "develop"])

        assert result.exit_code == 0, result.output
        saved = yaml.safe_load((org_env / ".codethreat" / "config.yml").read_text(encoding="utf-8"))
        assert saved["default_branch"] == "develop"
        assert "api_key" not in saved

    def test_set_rejects_out_of_bounds(self, runner, org_env):
        """Test config set validates bounds"""
        result = runner.invoke(cli, ["config", "set", "default-timeout", "30"])

        assert result.exit_code == 2
        assert not (org_env / ".codethreat" / "config.yml").exists()

    def test_set_unknown_key(self, runner, org_env):
        """Test an unknown key is a configuration error"""
        result = runner.invoke(cli, ["config", "set", "colour", "blue"])

        assert result.exit_code == 2
        assert "Unknown configuration key" in result.output

    def test_set_api_key_goes_to_credentials(self, runner, org_env):
        """Test the API key is saved with credentials, not in the config file"""
        result = runner.invoke(cli, ["config", "set", "api-key", "ct_new_key"])

        assert result.exit_code == 0, result.output
        credentials = json.loads((org_env / ".codethreat" / ".credentials").read_text(encoding="utf-8"))
        assert credentials["apiKey"] == "ct_new_key"
        assert not (org_env / ".codethreat" / "config.yml").exists()

    def test_init_writes_template(self, runner, org_env):
        """Test config init creates .codethreat.yml in the working directory"""
        result = runner.invoke(cli, ["config", "init"])

        assert result.exit_code == 0, result.output
        with open(".codethreat.yml", encoding="utf-8") as f:
            assert yaml.safe_load(f)["default_branch"] == "main"


class TestVersion:
    """Test version output"""

    def test_version_command(self, runner, clean_env):
        """Test the version command lists the command groups"""
        result = runner.invoke(cli, ["version"])

        assert result.exit_code == 0
        assert "CodeThreat CLI v" in result.output
        assert "scan" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
