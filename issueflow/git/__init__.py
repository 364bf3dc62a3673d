"""Git operations for issueflow.

GitVCS is the concrete VCS collaborator: it stages the paths a run touched
and commits them once, at the end of Document & Archive.

Return type conventions:
- Functions returning GitResult: Caller must check .success before using output.
- Functions returning bool: True on success/condition met, False otherwise.
- GitVCS raises VCSError instead, as the workflow expects.
"""

import logging
from pathlib import Path

from issueflow.git.commit import (
    commit,
    get_head_sha,
    has_staged_changes,
    is_repo,
    is_tracked,
    stage_paths,
)
from issueflow.lib.errors import VCSError

logger = logging.getLogger(__name__)


class GitVCS:
    """Stage and commit through the git CLI."""

    def __init__(self, repo_path: Path):
        self.repo_path = repo_path

    def commit(self, files: list[str], message: str) -> str:
        """
        Stage files (paths that vanished are staged as deletions) and commit.

        Returns:
            The new HEAD sha

        Raises:
            VCSError: not a repository, nothing to commit, or git failed
        """
        if not is_repo(self.repo_path):
            raise VCSError(f"{self.repo_path} is not a git repository")

        # Untracked paths that no longer exist would make `git add` fail
        paths = [f for f in files if Path(f).exists() or is_tracked(self.repo_path, f)]
        if not paths:
            raise VCSError("Nothing to commit: none of the paths exist or are tracked")

        result = stage_paths(self.repo_path, paths)
        if not result.success:
            raise VCSError(f"git add failed: {result.error}")

        if not has_staged_changes(self.repo_path):
            raise VCSError("Nothing to commit: no staged changes")

        result = commit(self.repo_path, message)
        if not result.success:
            raise VCSError(f"git commit failed: {result.error}")

        sha = get_head_sha(self.repo_path)
        logger.info(f"Committed {len(paths)} path(s) as {sha[:12]}")
        return sha


__all__ = [
    "GitVCS",
    "commit",
    "get_head_sha",
    "has_staged_changes",
    "is_repo",
    "is_tracked",
    "stage_paths",
]
