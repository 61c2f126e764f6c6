"""
Tests for the biostore-admin command line.

Each test writes a config.yaml pointing at a temporary database and runs
main() with explicit arguments.

Run with: pytest tests/test_cli.py -v
"""

import json
import time

import pytest
import yaml

from biostore.cli import build_parser, main
from tests.conftest import make_descriptor, offset_descriptor


@pytest.fixture
def config_path(temp_dir):
    path = temp_dir / "config.yaml"
    path.write_text(yaml.safe_dump({
        "storage": {"db_path": str(temp_dir / "cli.sqlite")},
        "sync": {"enabled": False},
        "matching": {"threshold": 0.45},
        "logging": {"level": "WARNING"},
    }))
    return str(path)


def run(config_path, *args):
    return main(["--config", config_path, *args])


class TestRegistryCommands:
    """list / show / update / delete."""

    def test_empty_list(self, config_path, capsys):
        """Test listing an empty registry."""
        assert run(config_path, "list") == 0
        assert "No registered users" in capsys.readouterr().out

    def test_update_then_show(self, config_path, capsys):
        """Test updating a record and showing it."""
        assert run(config_path, "update", "usr_1", "--email", "a@example.com",
                   "--display-name", "Alice", "--enrolled") == 0
        capsys.readouterr()

        assert run(config_path, "show", "usr_1") == 0
        out = capsys.readouterr().out
        assert "Alice" in out
        assert "a@example.com" in out
        assert "enrolled:     yes" in out
        assert "embedding:    none" in out

    def test_list_order(self, config_path, capsys):
        """Test that listing shows the newest record first."""
        run(config_path, "update", "usr_1", "--display-name", "First")
        time.sleep(0.01)
        run(config_path, "update", "usr_2", "--display-name", "Second")
        capsys.readouterr()

        assert run(config_path, "list") == 0
        lines = capsys.readouterr().out.strip().splitlines()
        assert [line.split("\t")[0] for line in lines] == ["usr_2", "usr_1"]

    def test_show_missing(self, config_path, capsys):
        """Test showing an unknown identity."""
        assert run(config_path, "show", "usr_missing") == 1
        assert "not found" in capsys.readouterr().err

    def test_delete(self, config_path, capsys):
        """Test deleting a record."""
        run(config_path, "update", "usr_1", "--not-enrolled")
        assert run(config_path, "delete", "usr_1") == 0
        assert run(config_path, "show", "usr_1") == 1

    def test_delete_missing(self, config_path):
        """Test deleting an unknown identity."""
        assert run(config_path, "delete", "usr_missing") == 1


class TestSessionCommands:
    """session show / clear."""

    def test_show_without_session(self, config_path, capsys):
        """Test showing the session when none is stored."""
        assert run(config_path, "session", "show") == 1
        assert "No offline session" in capsys.readouterr().out

    def test_clear(self, config_path, capsys):
        """Test clearing the session."""
        assert run(config_path, "session", "clear") == 0
        assert "cleared" in capsys.readouterr().out


class TestCompareCommand:
    """compare STORED.json LIVE.json."""

    def write(self, temp_dir, name, payload):
        path = temp_dir / name
        path.write_text(json.dumps(payload))
        return str(path)

    def test_match(self, config_path, temp_dir, capsys):
        """Test comparing two close descriptors."""
        stored = make_descriptor(1)
        stored_path = self.write(temp_dir, "stored.json", {"descriptor": stored})
        live_path = self.write(temp_dir, "live.json", offset_descriptor(stored, 0.2))

        assert run(config_path, "compare", stored_path, live_path) == 0
        assert capsys.readouterr().out.startswith("MATCH (distance 0.2000)")

    def test_threshold_override(self, config_path, temp_dir, capsys):
        """Test comparing with a tighter threshold."""
        stored = make_descriptor(1)
        stored_path = self.write(temp_dir, "stored.json", stored)
        live_path = self.write(temp_dir, "live.json", offset_descriptor(stored, 0.2))

        assert run(config_path, "compare", stored_path, live_path, "--threshold", "0.1") == 0
        assert "NO MATCH" in capsys.readouterr().out

    def test_bad_descriptor_file(self, config_path, temp_dir, capsys):
        """Test that an unreadable descriptor file exits with 2."""
        bad = self.write(temp_dir, "bad.json", {"nothing": 1})
        assert run(config_path, "compare", bad, bad) == 2
        assert "ERROR" in capsys.readouterr().err

    def test_length_mismatch(self, config_path, temp_dir):
        """Test comparing descriptors of different lengths."""
        short = self.write(temp_dir, "short.json", [0.0] * 10)
        full = self.write(temp_dir, "full.json", make_descriptor(1))
        assert run(config_path, "compare", short, full) == 2


class TestMisc:
    """sync-status and usage errors."""

    def test_sync_status(self, config_path, capsys):
        """Test printing the sync status."""
        assert run(config_path, "sync-status") == 0
        assert "pending: 0" in capsys.readouterr().out

    def test_missing_config(self, temp_dir):
        """Test that a missing config file exits with 2."""
        assert main(["--config", str(temp_dir / "absent.yaml"), "list"]) == 2

    def test_usage_error(self):
        """Test that a missing argument is a usage error."""
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(["update"])
        assert exc.value.code == 2
