"""Tests for issueflow.runner.impl.state_files module."""

import logging

import pytest

from issueflow.lib.errors import ArtifactIOError
from issueflow.runner.impl.state_files import (
    clear_exhausted_marker,
    clear_pending_commit,
    has_pending_commit,
    read_exhausted_marker,
    read_pending_commit,
    write_exhausted_marker,
    write_pending_commit,
)


class TestExhaustedMarker:
    """Test the exhausted marker lifecycle."""

    def test_absent_by_default(self, tmp_path):
        assert read_exhausted_marker(tmp_path, "bug-a") is None

    def test_write_then_read(self, tmp_path):
        path = write_exhausted_marker(tmp_path, "bug-a", 10, "exit 1")
        assert path == tmp_path / "exhausted" / "bug-a.json"

        marker = read_exhausted_marker(tmp_path, "bug-a")
        assert marker["issue"] == "bug-a"
        assert marker["cycles"] == 10
        assert marker["last_failure"] == "exit 1"
        assert "timestamp" in marker

    def test_unreadable_marker_still_blocks(self, tmp_path, caplog):
        caplog.set_level(logging.WARNING)
        (tmp_path / "exhausted").mkdir()
        (tmp_path / "exhausted" / "bug-a.json").write_text("{not json")

        assert read_exhausted_marker(tmp_path, "bug-a") == {"issue": "bug-a"}
        assert "Unreadable exhausted marker" in caplog.text

    def test_clear(self, tmp_path):
        write_exhausted_marker(tmp_path, "bug-a", 1, "")
        assert clear_exhausted_marker(tmp_path, "bug-a") is True
        assert read_exhausted_marker(tmp_path, "bug-a") is None
        assert clear_exhausted_marker(tmp_path, "bug-a") is False


class TestPendingCommit:
    """The commit an archive owes until it succeeds."""

    def test_nothing_owed_by_default(self, tmp_path):
        assert has_pending_commit(tmp_path, "bug-a") is False
        assert read_pending_commit(tmp_path, "bug-a") is None

    def test_write_then_read(self, tmp_path):
        path = write_pending_commit(tmp_path, "bug-a", ["issues/archive/bug-a"], "Resolve issue bug-a: x")
        assert path == tmp_path / "pending_commit" / "bug-a.json"
        assert has_pending_commit(tmp_path, "bug-a") is True

        pending = read_pending_commit(tmp_path, "bug-a")
        assert pending["files"] == ["issues/archive/bug-a"]
        assert pending["message"] == "Resolve issue bug-a: x"

    def test_unreadable_marker_raises(self, tmp_path):
        (tmp_path / "pending_commit").mkdir()
        (tmp_path / "pending_commit" / "bug-a.json").write_text("{not json")

        assert has_pending_commit(tmp_path, "bug-a") is True
        with pytest.raises(ArtifactIOError, match="Unreadable pending commit"):
            read_pending_commit(tmp_path, "bug-a")

    def test_marker_without_message_raises(self, tmp_path):
        (tmp_path / "pending_commit").mkdir()
        (tmp_path / "pending_commit" / "bug-a.json").write_text('{"files": []}')

        with pytest.raises(ArtifactIOError, match="lacks files or message"):
            read_pending_commit(tmp_path, "bug-a")

    def test_clear(self, tmp_path):
        write_pending_commit(tmp_path, "bug-a", [], "m")
        assert clear_pending_commit(tmp_path, "bug-a") is True
        assert has_pending_commit(tmp_path, "bug-a") is False
        assert clear_pending_commit(tmp_path, "bug-a") is False
