"""CLI tests."""

from unittest.mock import AsyncMock, patch

from typer.testing import CliRunner

from stormlink import __version__
from stormlink.cli import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_prune_tokens_defaults_to_dry_run():
    summary = {
        "success": True,
        "dry_run": True,
        "cutoff": "2026-01-01T00:00:00+00:00",
        "tokens_would_delete": 3,
        "tokens_deleted": 0,
    }
    with patch(
        "stormlink.cli.maintenance.prune_expired_tokens",
        new_callable=AsyncMock,
        return_value=summary,
    ) as mock_prune:
        result = runner.invoke(app, ["maintenance", "prune-tokens"])

    assert result.exit_code == 0
    mock_prune.assert_awaited_once_with(dry_run=True)
    assert "--execute" in result.output


def test_prune_tokens_reports_failure():
    with patch(
        "stormlink.cli.maintenance.prune_expired_tokens",
        new_callable=AsyncMock,
        return_value={"success": False, "error": "Token prune failed: boom"},
    ):
        result = runner.invoke(app, ["maintenance", "prune-tokens", "--execute"])

    assert result.exit_code == 1
    assert "boom" in result.output


def test_worker_command_propagates_exit_code():
    with patch("stormlink.worker.run", return_value=1) as mock_run:
        result = runner.invoke(app, ["worker"])

    assert result.exit_code == 1
    mock_run.assert_called_once_with(verbose=False)
