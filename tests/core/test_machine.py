"""Tests for machines and their identity."""

from __future__ import annotations

from pathlib import Path

from reflectsync.core.machine import Machine, SSHInfo


class TestSSHInfo:
    """Tests for SSHInfo."""

    def test_remote(self) -> None:
        """Should give the user@host form."""
        assert SSHInfo(host="10.0.0.1", username="deploy").remote == "deploy@10.0.0.1"


class TestMachine:
    """Tests for Machine identity."""

    def test_no_id_file(self) -> None:
        """Without an id file the machine is always addressable."""
        machine = Machine(name="web", ssh_info=SSHInfo(host="h"))
        assert machine.id == "web"

    def test_id_from_file(self, tmp_path: Path) -> None:
        """The identity should be read from the file, stripped."""
        id_file = tmp_path / "id"
        id_file.write_text("  1234\n")
        machine = Machine(name="web", ssh_info=SSHInfo(host="h"), id_file=id_file)
        assert machine.id == "1234"

    def test_missing_or_empty_file(self, tmp_path: Path) -> None:
        """A missing or empty id file means no identity."""
        missing = Machine(name="a", ssh_info=SSHInfo(host="h"), id_file=tmp_path / "none")
        assert missing.id is None

        empty_file = tmp_path / "empty"
        empty_file.write_text("\n")
        empty = Machine(name="b", ssh_info=SSHInfo(host="h"), id_file=empty_file)
        assert empty.id is None

    def test_reload(self, tmp_path: Path) -> None:
        """Reload should pick up creation and destruction."""
        id_file = tmp_path / "id"
        machine = Machine(name="web", ssh_info=SSHInfo(host="h"), id_file=id_file)
        assert machine.id is None

        id_file.write_text("abc")
        machine.reload()
        assert machine.id == "abc"

        id_file.unlink()
        machine.reload()
        assert machine.id is None

    def test_unreadable_id_file(self, tmp_path: Path) -> None:
        """An id path that cannot be read should mean no identity."""
        machine = Machine(name="web", ssh_info=SSHInfo(host="h"), id_file=tmp_path)
        assert machine.id is None

    def test_hashable(self) -> None:
        """Machines should be usable as keys by identity."""
        a = Machine(name="web", ssh_info=SSHInfo(host="h"))
        b = Machine(name="web", ssh_info=SSHInfo(host="h"))
        assert len({a, b}) == 2

    def test_reload_keeps_connection(self, tmp_path: Path) -> None:
        """Reload should only re-read the identity, never the connection."""
        ssh_info = SSHInfo(host="h", port=2200)
        machine = Machine(name="web", ssh_info=ssh_info, id_file=tmp_path / "id")

        machine.reload()

        assert machine.ssh_info is ssh_info
