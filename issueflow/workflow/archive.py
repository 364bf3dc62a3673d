"""Archival of finished issues.

Moves an issue's whole directory from the active root to the archive root.
Archiving twice is a no-op, so a run interrupted after the move can resume.
"""

import logging
from pathlib import Path

from issueflow.lib.errors import AlreadyExists, NotFound, PreconditionFailed
from issueflow.lib.issue import load_issue
from issueflow.lib.store import ArtifactStore

logger = logging.getLogger(__name__)


class ArchiveManager:
    def __init__(self, store: ArtifactStore):
        self.store = store

    def is_archived(self, issue_id: str) -> bool:
        return self.store.locate(issue_id) == self.store.archive_root

    def archive(self, issue_id: str) -> Path:
        """
        Move the issue to the archive root and return its archived directory.

        Raises:
            NotFound: issue in neither root
            PreconditionFailed: status is not terminal
            AlreadyExists: an archive entry with this id is already present
        """
        root = self.store.locate(issue_id)
        if root is None:
            raise NotFound(f"Issue '{issue_id}' not found", issue_id, "archive")

        archived_dir = self.store.issue_dir(issue_id, self.store.archive_root)
        if root == self.store.archive_root:
            logger.info(f"{issue_id} already archived, nothing to do")
            return archived_dir

        if archived_dir.exists():
            raise AlreadyExists(
                f"Archive already holds {archived_dir}; rename or merge it manually",
                issue_id,
                "archive",
            )

        issue = load_issue(self.store, issue_id)
        if not issue.is_terminal:
            raise PreconditionFailed(
                f"Only RESOLVED or REJECTED issues can be archived, issue is {issue.status.value}",
                issue_id,
                "archive",
            )

        return self.store.move(issue_id, self.store.active_root, self.store.archive_root)
