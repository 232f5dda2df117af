"""Tests for the command line entry point."""

import json

import pytest

from crmpilot import __version__
from crmpilot.cli import main
from crmpilot.core.logging import reset_logging


@pytest.fixture
def cli_config(test_config, monkeypatch):
    """Route every get_config() call to the temp-path test config."""
    monkeypatch.setattr("crmpilot.core.config._config", test_config)
    yield test_config
    reset_logging()


class TestFlags:
    """Informational flags."""

    def test_version(self, capsys):
        assert main(["--version"]) == 0
        assert f"v{__version__}" in capsys.readouterr().out

    def test_status(self, cli_config, capsys):
        assert main(["--status"]) == 0
        out = capsys.readouterr().out
        assert "[-] Microsoft Outlook" in out

    def test_list_actions(self, cli_config, capsys):
        assert main(["--list-actions"]) == 0
        out = capsys.readouterr().out
        assert "daily_program" in out
        assert "[calendar]" in out

    def test_no_command(self, cli_config, capsys):
        assert main([]) == 2


class TestRun:
    """run subcommand."""

    def test_run_action(self, cli_config, capsys):
        assert main(["run", "get_dashboard_summary"]) == 0
        result = json.loads(capsys.readouterr().out)
        assert result["success"] is True
        assert result["payload"]["totalAccounts"] == 0
        assert cli_config.db_path.exists()

    def test_run_with_params(self, cli_config, capsys):
        assert main(["run", "create_account", "--params", '{"name": "Acme Corp"}']) == 0
        capsys.readouterr()
        assert main(["run", "search_accounts", "--params", '{"query": "acme"}']) == 0
        result = json.loads(capsys.readouterr().out)
        assert result["payload"]["total"] == 1

    def test_failed_action_exit_code(self, cli_config, capsys):
        assert main(["run", "teleport"]) == 1
        result = json.loads(capsys.readouterr().out)
        assert result["errorKind"] == "ValidationError"

    @pytest.mark.parametrize("params", ["not json", "[1, 2]"])
    def test_bad_params(self, cli_config, capsys, params):
        assert main(["run", "daily_program", "--params", params]) == 2
        assert "Invalid parameters" in capsys.readouterr().out
