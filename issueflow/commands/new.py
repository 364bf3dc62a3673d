"""
issueflow new - Create an issue with status OPEN.
"""

from pathlib import Path

from issueflow.lib.config import WorkflowConfig
from issueflow.lib.constants import EXIT_OK, EXIT_USAGE, MAX_ISSUE_ID_LEN
from issueflow.lib.errors import AlreadyExists
from issueflow.lib.issue import is_valid_issue_id, parse_kind, render_problem
from issueflow.lib.store import ArtifactStore


def cmd_new(args, root: Path, config: WorkflowConfig) -> int:
    """Create issues/<id>/problem.md."""
    issue_id = args.id

    if not is_valid_issue_id(issue_id):
        print(f"ERROR: Invalid issue id '{issue_id}'")
        print(f"  Use lowercase kebab-case, at most {MAX_ISSUE_ID_LEN} characters (e.g. bug-off-by-one)")
        return EXIT_USAGE

    kind = parse_kind(args.type)
    if kind is None:
        print(f"ERROR: Unknown type '{args.type}' (expected BUG, FEATURE or PERFORMANCE)")
        return EXIT_USAGE

    store = ArtifactStore(config.issues_dir, config.archive_dir)
    if store.exists(issue_id):
        print(f"ERROR: Issue '{issue_id}' already exists")
        return EXIT_USAGE

    body = args.body or ""
    if args.body_file:
        body = Path(args.body_file).read_text()

    try:
        path = store.write(issue_id, "problem", render_problem(args.title or issue_id, kind, body))
    except AlreadyExists as e:
        print(f"ERROR: {e}")
        return EXIT_USAGE

    print(f"Created {kind.value} issue '{issue_id}'")
    print(f"  {path}")
    print()
    print(f"Next: issueflow run {issue_id}")
    return EXIT_OK
