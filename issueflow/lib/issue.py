"""
In-memory view of one issue.

An IssueRecord is rebuilt from disk on every load: the Status and Type
headers of problem.md plus the set of artifacts present. Nothing else is
cached, which is what makes an interrupted run safe to resume.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from .constants import ISSUE_ID_PATTERN, MAX_ISSUE_ID_LEN
from .docparse import header_value
from .errors import MalformedIssue, NotFound, PreconditionFailed
from .store import ArtifactStore
from issueflow.workflow.state_machine import IssueStatus, parse_status


class IssueKind(Enum):
    BUG = "BUG"
    FEATURE = "FEATURE"
    PERFORMANCE = "PERFORMANCE"


def parse_kind(kind_str: str | None) -> IssueKind | None:
    """Parse a Type header value. Returns None if unknown."""
    if kind_str is None:
        return None
    try:
        return IssueKind(kind_str.strip().upper())
    except ValueError:
        return None


def is_valid_issue_id(issue_id: str) -> bool:
    return bool(ISSUE_ID_PATTERN.match(issue_id)) and len(issue_id) <= MAX_ISSUE_ID_LEN


@dataclass
class IssueRecord:
    """One issue as it stands on disk."""
    id: str
    status: IssueStatus
    kind: IssueKind
    title: str
    location: Path  # The issue directory, active or archived
    archived: bool = False
    artifacts: dict[str, Path] = field(default_factory=dict)  # Ordered by workflow

    def has_artifact(self, name: str) -> bool:
        return name in self.artifacts

    def require_artifacts(self, *names: str, phase: str = "") -> None:
        """
        Raise PreconditionFailed listing every missing artifact.
        """
        missing = [name for name in names if name not in self.artifacts]
        if missing:
            raise PreconditionFailed(
                f"Missing required artifact(s): {', '.join(missing)}",
                self.id,
                phase,
                missing=missing,
            )

    @property
    def is_terminal(self) -> bool:
        return self.status in (IssueStatus.RESOLVED, IssueStatus.REJECTED)


def _title_from(content: str, fallback: str) -> str:
    for line in content.splitlines():
        stripped = line.strip()
        if stripped.startswith("# "):
            return stripped[2:].strip()
    return fallback


def load_issue(store: ArtifactStore, issue_id: str) -> IssueRecord:
    """
    Load an issue from whichever root holds it.

    Raises:
        NotFound: issue is in neither root
        MalformedIssue: problem.md missing, or Status/Type absent or unknown
    """
    root = store.locate(issue_id)
    if root is None:
        raise NotFound(f"Issue '{issue_id}' not found", issue_id)

    content, exists = store.read(issue_id, "problem", root)
    if not exists:
        raise MalformedIssue("Issue directory has no problem.md", issue_id)

    raw_status = header_value(content, "Status")
    status = parse_status(raw_status)
    if status is None:
        raise MalformedIssue(
            f"Missing or unknown Status header: {raw_status!r}", issue_id
        )

    raw_kind = header_value(content, "Type")
    kind = parse_kind(raw_kind)
    if kind is None:
        raise MalformedIssue(f"Missing or unknown Type header: {raw_kind!r}", issue_id)

    return IssueRecord(
        id=issue_id,
        status=status,
        kind=kind,
        title=_title_from(content, issue_id),
        location=store.issue_dir(issue_id, root),
        archived=root == store.archive_root,
        artifacts=store.list_artifacts(issue_id, root),
    )


def render_problem(
    title: str,
    kind: IssueKind,
    body: str = "",
    status: IssueStatus = IssueStatus.OPEN,
    extra_headers: dict[str, str] | None = None,
) -> str:
    """Render a new problem.md with the headers the workflow scans."""
    lines = [
        f"# {title}",
        "",
        f"**Status**: {status.value}",
        f"**Type**: {kind.value}",
        f"**Created**: {datetime.now().isoformat(timespec='seconds')}",
    ]
    for key, value in (extra_headers or {}).items():
        lines.append(f"**{key}**: {value}")
    lines.append("")
    if body:
        lines.append(body.rstrip())
        lines.append("")
    return "\n".join(lines)
