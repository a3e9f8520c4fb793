"""Tests for configuration loading and validation."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from reflectsync.core.config import (
    CONFIG_FILENAME,
    ConfigError,
    find_config_file,
    load_config,
    parse_config,
)


def machine(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": "default",
        "host": "127.0.0.1",
        "port": 2222,
        "folders": [{"guestpath": "/vagrant"}],
    }
    data.update(overrides)
    return data


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a valid configuration file."""
    path = tmp_path / CONFIG_FILENAME
    path.write_text(
        json.dumps(
            {
                "show_sync_time": True,
                "machines": [
                    machine(
                        private_key_path=["~/.ssh/id_rsa"],
                        id_file=".vagrant/id",
                        folders=[
                            {"guestpath": "/vagrant", "hostpath": ".", "exclude": ["*.log"]},
                            {"guestpath": "/data", "hostpath": "data", "auto": False},
                        ],
                    )
                ],
            }
        )
    )
    return path


class TestParseConfig:
    """Tests for parse_config()."""

    def test_defaults(self, tmp_path: Path) -> None:
        """Optional keys should get their defaults."""
        config = parse_config(
            {"machines": [{"name": "m", "host": "h", "folders": [{"guestpath": "/g"}]}]},
            tmp_path,
        )
        [machine_config] = config.machines
        assert machine_config.port == 22
        assert machine_config.username == "vagrant"
        assert machine_config.private_key_path == []
        [folder] = machine_config.folders
        assert folder.hostpath == "."
        assert folder.auto is True
        assert folder.rsync_args is None
        assert config.show_sync_time is False

    def test_empty_config(self, tmp_path: Path) -> None:
        """An empty object should give no machines."""
        assert parse_config({}, tmp_path).machines == []

    def test_single_string_exclude(self, tmp_path: Path) -> None:
        """A single exclude string should be accepted."""
        data = {"machines": [machine(folders=[{"guestpath": "/g", "exclude": "*.tmp"}])]}
        assert parse_config(data, tmp_path).machines[0].folders[0].exclude == ["*.tmp"]

    @pytest.mark.parametrize(
        "data,message",
        [
            ([], "must be an object"),
            ({"machines": {}}, "'machines' must be a list"),
            ({"show_sync_time": "yes"}, "show_sync_time"),
            ({"machines": [{"host": "h"}]}, "missing required key 'name'"),
            ({"machines": [{"name": "m"}]}, "missing required key 'host'"),
            ({"machines": [machine(port="22")]}, "'port' must be of type int"),
            ({"machines": [machine(port=True)]}, "'port' must be of type int"),
            ({"machines": [machine(folders=[{}])]}, "missing required key 'guestpath'"),
            ({"machines": [machine(folders=[{"guestpath": "/g", "exclude": [1]}])]}, "list of strings"),
            ({"machines": [machine(), machine()]}, "Duplicate machine name"),
        ],
    )
    def test_invalid(self, tmp_path: Path, data: Any, message: str) -> None:
        """Invalid data should raise ConfigError with a helpful message."""
        with pytest.raises(ConfigError, match=message):
            parse_config(data, tmp_path)


class TestBuildTargets:
    """Tests for ReflectConfig.build_targets()."""

    def test_paths_resolved_against_root(self, config_file: Path) -> None:
        """Host paths should be absolute and slash-terminated."""
        config = load_config(config_file)
        first, second = config.build_targets()

        root = str(config_file.parent.resolve())
        assert first.hostpath == root + "/"
        assert second.hostpath == root + "/data/"
        assert first.exclude == ("*.log",)
        assert second.auto is False

    def test_machine_shared_by_folders(self, config_file: Path) -> None:
        """All folders of a machine should share one Machine."""
        first, second = load_config(config_file).build_targets()
        assert first.machine is second.machine
        assert first.machine.ssh_info.port == 2222
        assert first.machine.ssh_info.private_key_path == (str(Path("~/.ssh/id_rsa").expanduser()),)

    def test_id_file_resolved(self, config_file: Path) -> None:
        """The identity file should be read relative to the root."""
        id_dir = config_file.parent / ".vagrant"
        id_dir.mkdir()
        (id_dir / "id").write_text("abc\n")

        [target, _] = load_config(config_file).build_targets()

        assert target.machine.id == "abc"

    def test_unknown_machine(self, config_file: Path) -> None:
        """Selecting an unknown machine should fail."""
        with pytest.raises(ConfigError, match="Unknown machine"):
            load_config(config_file).build_targets(["nope"])

    def test_select_machine(self, tmp_path: Path) -> None:
        """Only selected machines should produce targets."""
        config = parse_config({"machines": [machine(name="a"), machine(name="b")]}, tmp_path)
        targets = config.build_targets(["b"])
        assert [t.machine.name for t in targets] == ["b"]


class TestLoadConfig:
    """Tests for finding and loading the file."""

    def test_show_sync_time(self, config_file: Path) -> None:
        """Should read the global flag."""
        assert load_config(config_file).show_sync_time is True

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing file should raise ConfigError."""
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Malformed JSON should raise ConfigError."""
        path = tmp_path / CONFIG_FILENAME
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(path)

    def test_find_in_parent(self, config_file: Path) -> None:
        """Should find the file from a subdirectory."""
        nested = config_file.parent / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == config_file.resolve()

    def test_find_from_cwd(self, config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should search from the current directory by default."""
        monkeypatch.chdir(config_file.parent)
        assert load_config().root_path == config_file.parent.resolve()
