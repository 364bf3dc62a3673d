"""
Desktop notifications for issueflow.

Uses notify-send (freedesktop compliant) for notifications.
Works with mako, dunst, GNOME, KDE notification daemons.
"""

import logging
import shutil
import subprocess

logger = logging.getLogger(__name__)


VALID_URGENCIES = ("low", "normal", "critical")
MAX_NOTIFICATION_LENGTH = 200


def notify(title: str, message: str, urgency: str = "normal"):
    """
    Send desktop notification.

    Args:
        title: Notification title
        message: Notification body
        urgency: One of "low", "normal", "critical"
    """
    if urgency not in VALID_URGENCIES:
        logger.warning(f"Invalid urgency '{urgency}', using 'normal'")
        urgency = "normal"

    if not shutil.which("notify-send"):
        logger.debug("notify-send not found, skipping notification")
        return

    if len(message) > MAX_NOTIFICATION_LENGTH:
        message = message[:MAX_NOTIFICATION_LENGTH] + "..."

    try:
        result = subprocess.run([
            "notify-send",
            "--urgency", urgency,
            "--app-name", "issueflow",
            title,
            message
        ], capture_output=True, text=True, timeout=5)

        if result.returncode != 0:
            logger.warning(f"notify-send failed (exit {result.returncode}): {result.stderr}")
    except subprocess.TimeoutExpired:
        logger.warning("notify-send timed out")
    except OSError as e:
        logger.warning(f"Failed to run notify-send: {e}")


def notify_resolved(issue_id: str, rejected: bool = False):
    """Notify that an issue finished and was archived."""
    notify(
        f"issueflow: {issue_id}",
        "Rejected and archived" if rejected else "Resolved and archived",
        "low"
    )


def notify_exhausted(issue_id: str, cycles: int):
    """Notify that the fix loop gave up and a human is needed."""
    notify(
        f"issueflow: {issue_id}",
        f"Checks still failing after {cycles} fix cycle(s). Run with --force to retry.",
        "critical"
    )


def notify_failed(issue_id: str, phase: str, reason: str = ""):
    """Notify that a run failed."""
    notify(
        f"issueflow: {issue_id}",
        f"Failed at {phase or 'unknown'}" + (f": {reason}" if reason else ""),
        "critical"
    )
