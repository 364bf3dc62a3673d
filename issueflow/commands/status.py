"""
issueflow status - Show one issue's status and artifact trail.
"""

from pathlib import Path

from issueflow.lib.config import WorkflowConfig
from issueflow.lib.constants import ARTIFACT_NAMES, EXIT_OK, EXIT_USAGE
from issueflow.lib.errors import MalformedIssue, NotFound
from issueflow.lib.issue import load_issue
from issueflow.lib.store import ArtifactStore
from issueflow.runner.impl.state_files import read_exhausted_marker
from issueflow.runner.locking import is_issue_locked
from issueflow.workflow.engine import next_phase


def cmd_status(args, root: Path, config: WorkflowConfig) -> int:
    """Show detailed status of an issue."""
    store = ArtifactStore(config.issues_dir, config.archive_dir)

    try:
        issue = load_issue(store, args.id)
    except (NotFound, MalformedIssue) as e:
        print(f"ERROR: {e}")
        return EXIT_USAGE

    print(f"Issue:     {issue.id}")
    print(f"Title:     {issue.title}")
    print(f"Type:      {issue.kind.value}")
    print(f"Status:    {issue.status.value}")
    print(f"Location:  {issue.location}{' (archived)' if issue.archived else ''}")
    print()
    print("Artifacts:")
    for name in ARTIFACT_NAMES:
        mark = "x" if issue.has_artifact(name) else " "
        print(f"  [{mark}] {name}.md")
    print()

    marker = read_exhausted_marker(config.state_dir, issue.id)
    if marker is not None:
        print(f"Fix loop exhausted after {marker.get('cycles', '?')} cycle(s).")
        print(f"  Retry with: issueflow run {issue.id} --force")
    elif is_issue_locked(config.state_dir, issue.id):
        print("A run is in progress.")
    else:
        phase = next_phase(issue, config.state_dir)
        print(f"Next phase: {phase or 'none (done)'}")

    return EXIT_OK
