"""Git staging and commit operations."""

from pathlib import Path

from issueflow.git.runner import run_git, GitResult


def is_repo(worktree: Path) -> bool:
    return run_git(["rev-parse", "--git-dir"], worktree).success


def is_tracked(worktree: Path, path: str) -> bool:
    """True if git knows any file at or under path."""
    result = run_git(["ls-files", "--", path], worktree)
    return result.success and bool(result.stdout.strip())


def stage_paths(worktree: Path, paths: list[str]) -> GitResult:
    """Stage additions, modifications and deletions under the given paths."""
    return run_git(["add", "-A", "--"] + paths, worktree)


def has_staged_changes(worktree: Path) -> bool:
    # diff --quiet exits 1 when there are differences
    return run_git(["diff", "--cached", "--quiet"], worktree).returncode == 1


def commit(worktree: Path, message: str) -> GitResult:
    """Create a commit with the given message."""
    return run_git(["commit", "-m", message], worktree)


def get_head_sha(worktree: Path) -> str:
    """Return HEAD's sha, or an empty string on failure."""
    result = run_git(["rev-parse", "HEAD"], worktree)
    return result.stdout.strip() if result.success else ""
