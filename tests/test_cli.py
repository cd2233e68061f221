"""Tests for the command line interface."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from kinsync.core.cli import cli
from kinsync.exceptions import ConfigurationError
from kinsync.models.sync import RunStage, SyncRun, SyncStatus


def make_run(status):
    run = SyncRun(id="run-1", started_at=datetime(2024, 5, 1, tzinfo=timezone.utc))
    if status == SyncStatus.COMPLETED:
        run.mark_completed(datetime(2024, 5, 1, 0, 0, 2, tzinfo=timezone.utc))
    else:
        run.stage = RunStage.RECONCILE_PEOPLE
        run.mark_failed(RuntimeError("batch rejected"), datetime(2024, 5, 1, 0, 0, 2, tzinfo=timezone.utc))
    return run


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def engine():
    with patch("kinsync.core.cli._build_engine") as build:
        yield build.return_value


class TestRunCommand:
    """Test the run command"""

    def test_success(self, runner, engine):
        engine.run.return_value = make_run(SyncStatus.COMPLETED)
        result = runner.invoke(cli, ["run", "--memory-cursors"])

        assert result.exit_code == 0
        assert "Sync completed" in result.output
        engine.run.assert_called_once_with(triggered_by="cli")

    def test_failed_run_exits_non_zero(self, runner, engine):
        engine.run.return_value = make_run(SyncStatus.FAILED)
        result = runner.invoke(cli, ["run"])

        assert result.exit_code == 1
        assert "batch rejected" in result.output

    def test_json_output(self, runner, engine):
        engine.run.return_value = make_run(SyncStatus.COMPLETED)
        result = runner.invoke(cli, ["run", "--output", "json"])
        assert '"status": "completed"' in result.output

    def test_configuration_error(self, runner):
        with patch("kinsync.core.cli.load_settings", side_effect=ConfigurationError("FIBERY_SPACE is not set")):
            result = runner.invoke(cli, ["run"])
        assert result.exit_code == 1
        assert "FIBERY_SPACE" in result.output


class TestOtherCommands:
    """Test connection and cursor commands"""

    def test_connection_failure(self, runner, engine):
        engine.pco = MagicMock()
        engine.pco.name = "planning_center"
        engine.pco.test_connection.return_value = True
        engine.fibery = MagicMock()
        engine.fibery.name = "fibery"
        engine.fibery.test_connection.return_value = False

        result = runner.invoke(cli, ["test-connection"])

        assert result.exit_code == 1
        assert "Successfully connected to planning_center" in result.output
        assert "Could not connect to fibery" in result.output

    def test_show_cursors(self, runner, engine):
        engine.cursors.get_all.return_value = {"Asource": "2024-01-01T00:00:00.000Z", "Bsource": None}
        result = runner.invoke(cli, ["show-cursors"])

        assert result.exit_code == 0
        assert "Asource: 2024-01-01T00:00:00.000Z" in result.output
        assert "Bsource: (not set" in result.output
