"""Tests for the beacon CLI."""

from typer.testing import CliRunner

from beacon.cli import app
from beacon.telemetry.consent import OPTOUT_ENV_VAR
from beacon.telemetry.identity import FALLBACK_NODE_ID, IDENTITY_FILE_NAME

runner = CliRunner()


class TestStatusCommand:
    def test_status_enabled(self):
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "enabled" in result.output
        assert f"Opt out with {OPTOUT_ENV_VAR}=1" in result.output
        assert "What we NEVER collect" in result.output

    def test_status_opted_out(self, monkeypatch):
        monkeypatch.setenv(OPTOUT_ENV_VAR, "1")
        result = runner.invoke(app, ["telemetry", "status"])
        assert result.exit_code == 0
        assert "disabled" in result.output
        assert "Env override" in result.output


class TestIdentityCommand:
    def test_shows_persisted_id(self, beacon_home):
        result = runner.invoke(app, ["telemetry", "identity"])
        assert result.exit_code == 0
        node_id = (beacon_home / ".cache" / "beacon" / IDENTITY_FILE_NAME).read_text().strip()
        assert f"Node ID: {node_id}" in result.output

    def test_opted_out_creates_nothing(self, monkeypatch, beacon_home):
        monkeypatch.setenv(OPTOUT_ENV_VAR, "true")
        result = runner.invoke(app, ["telemetry", "identity"])
        assert result.exit_code == 0
        assert "Telemetry is disabled." in result.output
        assert not (beacon_home / ".cache" / "beacon").exists()

    def test_fallback(self, tmp_path, monkeypatch):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        monkeypatch.setenv("BEACON_CACHE_DIR", str(blocker / "beacon"))
        result = runner.invoke(app, ["telemetry", "identity"])
        assert result.exit_code == 0
        assert str(FALLBACK_NODE_ID) in result.output
        assert "fallback" in result.output


class TestAllowlistCommand:
    def test_all_categories(self):
        result = runner.invoke(app, ["telemetry", "allowlist"])
        assert result.exit_code == 0
        assert "PSReadLine" in result.output
        assert "ConsoleHost" in result.output

    def test_single_category(self):
        result = runner.invoke(app, ["telemetry", "allowlist", "start_modes"])
        assert result.exit_code == 0
        assert "Interactive" in result.output
        assert "PSReadLine" not in result.output

    def test_unknown_category(self):
        result = runner.invoke(app, ["telemetry", "allowlist", "secrets"])
        assert result.exit_code == 1
        assert "Unknown category" in result.output


class TestConfigCommands:
    def test_show(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "Config Sources" in result.output
        assert "telemetry.transport" in result.output

    def test_check_ok(self):
        result = runner.invoke(app, ["config", "check"])
        assert result.exit_code == 0
        assert "Configuration OK." in result.output

    def test_check_bad_value(self, monkeypatch):
        monkeypatch.setenv("BEACON_FLUSH_TIMEOUT", "-1")
        result = runner.invoke(app, ["config", "check"])
        assert result.exit_code == 1
        assert "Invalid value" in result.output
