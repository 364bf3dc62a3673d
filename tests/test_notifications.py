"""Tests for issueflow.notifications module."""

import subprocess
from unittest.mock import MagicMock, patch

from issueflow.notifications import notify, notify_exhausted, notify_failed, notify_resolved


class TestNotify:
    """Test notify function."""

    @patch("issueflow.notifications.shutil.which", return_value=None)
    @patch("issueflow.notifications.subprocess.run")
    def test_skipped_without_notify_send(self, mock_run, mock_which):
        notify("title", "message")
        mock_run.assert_not_called()

    @patch("issueflow.notifications.shutil.which", return_value="/usr/bin/notify-send")
    @patch("issueflow.notifications.subprocess.run")
    def test_sends_with_urgency(self, mock_run, mock_which):
        mock_run.return_value = MagicMock(returncode=0, stderr="")
        notify("title", "message", "critical")
        cmd = mock_run.call_args[0][0]
        assert cmd[:3] == ["notify-send", "--urgency", "critical"]
        assert cmd[-2:] == ["title", "message"]

    @patch("issueflow.notifications.shutil.which", return_value="/usr/bin/notify-send")
    @patch("issueflow.notifications.subprocess.run")
    def test_invalid_urgency_falls_back(self, mock_run, mock_which):
        mock_run.return_value = MagicMock(returncode=0, stderr="")
        notify("title", "message", "urgent")
        assert mock_run.call_args[0][0][2] == "normal"

    @patch("issueflow.notifications.shutil.which", return_value="/usr/bin/notify-send")
    @patch("issueflow.notifications.subprocess.run")
    def test_long_message_truncated(self, mock_run, mock_which):
        mock_run.return_value = MagicMock(returncode=0, stderr="")
        notify("title", "x" * 500)
        assert len(mock_run.call_args[0][0][-1]) == 203

    @patch("issueflow.notifications.shutil.which", return_value="/usr/bin/notify-send")
    @patch("issueflow.notifications.subprocess.run")
    def test_timeout_does_not_raise(self, mock_run, mock_which):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="notify-send", timeout=5)
        notify("title", "message")


class TestNotifyHelpers:
    @patch("issueflow.notifications.notify")
    def test_resolved(self, mock_notify):
        notify_resolved("bug-a")
        mock_notify.assert_called_once_with("issueflow: bug-a", "Resolved and archived", "low")

    @patch("issueflow.notifications.notify")
    def test_rejected(self, mock_notify):
        notify_resolved("bug-a", rejected=True)
        assert mock_notify.call_args[0][1] == "Rejected and archived"

    @patch("issueflow.notifications.notify")
    def test_exhausted(self, mock_notify):
        notify_exhausted("bug-a", 10)
        assert "10 fix cycle(s)" in mock_notify.call_args[0][1]
        assert mock_notify.call_args[0][2] == "critical"

    @patch("issueflow.notifications.notify")
    def test_failed(self, mock_notify):
        notify_failed("bug-a", "implement", "agent exited 1")
        assert mock_notify.call_args[0][1] == "Failed at implement: agent exited 1"
