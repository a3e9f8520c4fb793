"""Tests for CLI commands - watch and sync."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from reflectsync.cli import cli
from reflectsync.cli.config import configure_logging
from reflectsync.sync.types import DispatchResult, SyncOptions


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a configuration with one watched and one manual folder."""
    (tmp_path / "data").mkdir()
    path = tmp_path / "reflect.json"
    path.write_text(
        json.dumps(
            {
                "machines": [
                    {
                        "name": "default",
                        "host": "127.0.0.1",
                        "port": 2222,
                        "folders": [
                            {"guestpath": "/vagrant", "exclude": ["*.log"]},
                            {"guestpath": "/data", "hostpath": "data", "auto": False},
                        ],
                    }
                ]
            }
        )
    )
    return path


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo the handler configure_logging() installs."""
    logger = logging.getLogger("reflectsync")
    handlers, level, propagate = logger.handlers[:], logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_levels(self) -> None:
        """Verbose should log debug, warnings only otherwise."""
        configure_logging(True)
        assert logging.getLogger("reflectsync").level == logging.DEBUG

        configure_logging(False)
        logger = logging.getLogger("reflectsync")
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1


class TestSyncCommand:
    """Tests for 'reflect sync' command."""

    def test_missing_config(self, runner: CliRunner, tmp_path: Path) -> None:
        """A missing configuration should fail."""
        result = runner.invoke(cli, ["sync", "--config", str(tmp_path / "nope.json")])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_unknown_machine(self, runner: CliRunner, config_file: Path) -> None:
        """An unknown machine name should fail."""
        result = runner.invoke(cli, ["sync", "--config", str(config_file), "ghost"])
        assert result.exit_code == 1
        assert "Unknown machine" in result.output

    def test_syncs_every_folder(self, runner: CliRunner, config_file: Path) -> None:
        """Every folder, watched or not, should be mirrored once."""
        with patch("reflectsync.cli.sync.SyncDispatcher") as dispatcher_class:
            dispatcher_class.return_value.initial_sync.side_effect = lambda targets: [
                DispatchResult(target=t) for t in targets
            ]
            result = runner.invoke(cli, ["sync", "--config", str(config_file)])

        assert result.exit_code == 0
        [targets] = dispatcher_class.return_value.initial_sync.call_args.args
        assert [t.guestpath for t in targets] == ["/vagrant", "/data"]
        assert dispatcher_class.call_args.kwargs["workdir"] == str(config_file.parent.resolve())

    def test_failure_exit_code(self, runner: CliRunner, config_file: Path) -> None:
        """A failed folder should make the command fail."""
        with patch("reflectsync.cli.sync.SyncDispatcher") as dispatcher_class:
            dispatcher_class.return_value.initial_sync.side_effect = lambda targets: [
                DispatchResult(target=t, not_ready=True) for t in targets
            ]
            result = runner.invoke(cli, ["sync", "--config", str(config_file)])

        assert result.exit_code == 1


class TestWatchCommand:
    """Tests for 'reflect watch' command."""

    def test_watches_auto_folders(self, runner: CliRunner, config_file: Path) -> None:
        """Auto folders should be watched after the initial sync."""
        with (
            patch("reflectsync.cli.watch.SyncDispatcher") as dispatcher_class,
            patch("reflectsync.cli.watch.WatchCoordinator") as coordinator_class,
        ):
            coordinator = coordinator_class.return_value
            binding = MagicMock(root="/project/")
            binding.targets = [MagicMock()]
            binding.targets[0].machine.name = "default"
            coordinator.bindings = [binding]
            coordinator.run.return_value = 0

            result = runner.invoke(cli, ["watch", "--config", str(config_file), "--poll"])

        assert result.exit_code == 0
        assert "==> default: Watching: /project/" in result.output
        dispatcher_class.return_value.initial_sync.assert_called_once()
        coordinator.run.assert_called_once_with()

        options = coordinator_class.call_args.args[2]
        assert options == SyncOptions(incremental=True, poll=True)

    def test_options(self, runner: CliRunner, config_file: Path) -> None:
        """Flags should reach the session options."""
        with (
            patch("reflectsync.cli.watch.SyncDispatcher") as dispatcher_class,
            patch("reflectsync.cli.watch.WatchCoordinator") as coordinator_class,
        ):
            coordinator_class.return_value.bindings = [MagicMock(targets=[])]
            coordinator_class.return_value.run.return_value = 0
            result = runner.invoke(
                cli,
                [
                    "watch",
                    "--config",
                    str(config_file),
                    "--no-incremental",
                    "--incremental-delete",
                    "--no-initial",
                ],
            )

        assert result.exit_code == 0
        dispatcher_class.return_value.initial_sync.assert_not_called()
        options = coordinator_class.call_args.args[2]
        assert options.incremental is False
        assert options.incremental_delete is True

    def test_nothing_to_watch(self, runner: CliRunner, tmp_path: Path) -> None:
        """Without auto folders the command should fail."""
        path = tmp_path / "reflect.json"
        path.write_text(
            json.dumps(
                {
                    "machines": [
                        {
                            "name": "default",
                            "host": "127.0.0.1",
                            "folders": [{"guestpath": "/vagrant", "auto": False}],
                        }
                    ]
                }
            )
        )
        with patch("reflectsync.cli.watch.SyncDispatcher"):
            result = runner.invoke(cli, ["watch", "--config", str(path)])

        assert result.exit_code == 1
        assert "There are no paths to watch!" in result.output

    def test_announces_folders(self, runner: CliRunner, config_file: Path) -> None:
        """Each folder and its excludes should be announced."""
        with (
            patch("reflectsync.cli.watch.SyncDispatcher"),
            patch("reflectsync.cli.watch.WatchCoordinator") as coordinator_class,
        ):
            coordinator_class.return_value.bindings = [MagicMock(targets=[])]
            coordinator_class.return_value.run.return_value = 0
            result = runner.invoke(cli, ["watch", "--config", str(config_file)])

        assert "Rsyncing folder: " in result.output
        assert "=> /vagrant" in result.output
        assert "Exclude: ['*.log']" in result.output
