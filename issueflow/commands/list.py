"""
issueflow list-open - List issues in the active root.
"""

from pathlib import Path

from issueflow.lib.config import WorkflowConfig
from issueflow.lib.constants import EXIT_OK
from issueflow.lib.errors import MalformedIssue, NotFound
from issueflow.lib.issue import load_issue
from issueflow.lib.store import ArtifactStore
from issueflow.runner.impl.state_files import read_exhausted_marker


def cmd_list_open(args, root: Path, config: WorkflowConfig) -> int:
    """List every issue not yet archived."""
    store = ArtifactStore(config.issues_dir, config.archive_dir)

    issues = []
    for issue_id in store.list_issue_ids():
        try:
            issues.append(load_issue(store, issue_id))
        except (NotFound, MalformedIssue) as e:
            print(f"  [WARN] Skipping {issue_id}: {e}")

    if args.status:
        wanted = {s.upper() for s in args.status}
        issues = [i for i in issues if i.status.value in wanted]

    if not issues:
        print("Open issues: none")
        return EXIT_OK

    print("Open issues")
    print("-" * 72)
    for issue in issues:
        title = issue.title[:32] + "..." if len(issue.title) > 32 else issue.title
        flag = " [exhausted]" if read_exhausted_marker(config.state_dir, issue.id) else ""
        print(f"  {issue.id:<28} {issue.status.value:<12} {issue.kind.value:<12} {title}{flag}")
    print()
    print(f"{len(issues)} issue(s)")
    return EXIT_OK
