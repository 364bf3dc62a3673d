"""
issueflow archive - Move a finished issue to the archive by hand.
"""

from pathlib import Path

from issueflow.commands.run import exit_code_for
from issueflow.lib.config import WorkflowConfig
from issueflow.lib.constants import EXIT_OK
from issueflow.lib.errors import WorkflowError
from issueflow.lib.store import ArtifactStore
from issueflow.runner.locking import LockTimeout, issue_lock
from issueflow.workflow.archive import ArchiveManager


def cmd_archive(args, root: Path, config: WorkflowConfig) -> int:
    """Archive one issue. Already archived is a no-op."""
    archiver = ArchiveManager(ArtifactStore(config.issues_dir, config.archive_dir))

    if archiver.is_archived(args.id):
        print(f"Issue '{args.id}' is already archived")
        return EXIT_OK

    try:
        with issue_lock(config.state_dir, args.id, timeout=config.lock_timeout):
            dest = archiver.archive(args.id)
    except LockTimeout as e:
        print(f"ERROR: Could not acquire lock for {args.id} (timeout)")
        print("Another run may be active for this issue")
        return exit_code_for(e)
    except WorkflowError as e:
        print(f"ERROR: {e}")
        return exit_code_for(e)

    print(f"Archived '{args.id}' to {dest}")
    return EXIT_OK
