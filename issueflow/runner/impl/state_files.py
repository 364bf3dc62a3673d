"""State file operations for issues.

Two markers live under the state dir, one JSON file per issue:

- exhausted/<id>.json: the Test+Fix loop gave up on the issue, so the next
  `run` does not loop forever on the same failure.
- pending_commit/<id>.json: the issue is being archived and its commit has
  not been made yet. Written before the archive move and removed only once
  the commit succeeds, so a failed commit is retried by the next `run`.
"""

import json
import logging
from datetime import datetime
from pathlib import Path

from issueflow.lib.errors import ArtifactIOError

logger = logging.getLogger(__name__)


def _marker_path(state_dir: Path, issue_id: str, kind: str = "exhausted") -> Path:
    return state_dir / kind / f"{issue_id}.json"


def _write_marker(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({**data, "timestamp": datetime.now().isoformat()}, indent=2))
    return path


def _clear_marker(path: Path) -> bool:
    if not path.exists():
        return False
    path.unlink()
    return True


def write_exhausted_marker(state_dir: Path, issue_id: str, cycles: int, last_failure: str) -> Path:
    """Record that the fix loop ran out of cycles for issue_id."""
    return _write_marker(_marker_path(state_dir, issue_id), {
        "issue": issue_id,
        "cycles": cycles,
        "last_failure": last_failure,
    })


def read_exhausted_marker(state_dir: Path, issue_id: str) -> dict | None:
    """Return the marker contents, or None when the issue is not exhausted.

    An unreadable marker still blocks the issue.
    """
    path = _marker_path(state_dir, issue_id)
    if not path.exists():
        return None

    try:
        return json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Unreadable exhausted marker {path}: {e}")
        return {"issue": issue_id}


def clear_exhausted_marker(state_dir: Path, issue_id: str) -> bool:
    """Remove the marker. Returns True if one was present."""
    return _clear_marker(_marker_path(state_dir, issue_id))


def write_pending_commit(state_dir: Path, issue_id: str, files: list[str], message: str) -> Path:
    """Record the commit an archive owes, before the issue is moved."""
    return _write_marker(_marker_path(state_dir, issue_id, "pending_commit"), {
        "issue": issue_id,
        "files": list(files),
        "message": message,
    })


def has_pending_commit(state_dir: Path, issue_id: str) -> bool:
    return _marker_path(state_dir, issue_id, "pending_commit").exists()


def read_pending_commit(state_dir: Path, issue_id: str) -> dict | None:
    """
    Return {"files": [...], "message": str}, or None when nothing is owed.

    Raises:
        ArtifactIOError: the marker exists but cannot be read back
    """
    path = _marker_path(state_dir, issue_id, "pending_commit")
    if not path.exists():
        return None

    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        raise ArtifactIOError(f"Unreadable pending commit marker {path}: {e}", issue_id) from e
    if not isinstance(data.get("files"), list) or not isinstance(data.get("message"), str):
        raise ArtifactIOError(f"Pending commit marker {path} lacks files or message", issue_id)
    return data


def clear_pending_commit(state_dir: Path, issue_id: str) -> bool:
    """Remove the pending commit marker. Returns True if one was present."""
    return _clear_marker(_marker_path(state_dir, issue_id, "pending_commit"))
