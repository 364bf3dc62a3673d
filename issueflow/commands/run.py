"""
issueflow run, run-all - Drive issues through their remaining phases.
"""

import logging
from pathlib import Path
from typing import Optional

from issueflow.agents.command import CommandAgent
from issueflow.git import GitVCS
from issueflow.lib.agents_config import load_agents_config, validate_phase_binaries
from issueflow.lib.config import WorkflowConfig
from issueflow.lib.constants import (
    EXIT_EXHAUSTED,
    EXIT_FAILED,
    EXIT_LOCKED,
    EXIT_OK,
    EXIT_USAGE,
)
from issueflow.lib.errors import (
    AlreadyExists,
    MalformedIssue,
    NotFound,
    PreconditionFailed,
    TestFixExhausted,
    WorkflowError,
)
from issueflow.lib.store import ArtifactStore
from issueflow.lib.types import Collaborators
from issueflow.runner.checks import CommandChecker
from issueflow.runner.impl.state_files import has_pending_commit, read_exhausted_marker
from issueflow.runner.locking import CONCURRENCY_WARNING_THRESHOLD, LockTimeout, count_running_issues
from issueflow.workflow.engine import RunOutcome, WorkflowOrchestrator
from issueflow.workflow.state_machine import InvalidTransition

logger = logging.getLogger(__name__)

AGENT_PHASES = [
    "validate", "propose", "review", "implement",
    "triage", "fix", "finalize_tests", "test_report", "document",
]


def build_collaborators(root: Path, config: WorkflowConfig) -> Collaborators:
    """The real agent, checker and git collaborators for this workspace."""
    agent = CommandAgent(
        load_agents_config(root),
        worktree=config.repo_path,
        timeout=config.agent_timeout,
        log_dir=config.state_dir / "transcripts",
    )
    vcs = GitVCS(config.repo_path) if config.commit_enabled else None
    return Collaborators(agent=agent, checker=CommandChecker.from_config(config), vcs=vcs)


def exit_code_for(error: Exception) -> int:
    if isinstance(error, LockTimeout):
        return EXIT_LOCKED
    if isinstance(error, TestFixExhausted):
        return EXIT_EXHAUSTED
    if isinstance(error, (PreconditionFailed, MalformedIssue, NotFound, AlreadyExists, InvalidTransition)):
        return EXIT_USAGE
    return EXIT_FAILED


def _default_collaborators(root: Path, config: WorkflowConfig) -> Optional[Collaborators]:
    """Real collaborators, or None after printing why the agents cannot run."""
    check = validate_phase_binaries(load_agents_config(root), AGENT_PHASES)
    if not check.ok:
        print(f"ERROR: {check.error_message}")
        return None
    return build_collaborators(root, config)


def _warn_if_busy(config: WorkflowConfig) -> None:
    running_count = count_running_issues(config.state_dir)
    if running_count >= CONCURRENCY_WARNING_THRESHOLD:
        print(f"WARNING: {running_count} issues already running (threshold: {CONCURRENCY_WARNING_THRESHOLD})")
        print("Consider waiting for some to complete to avoid API rate limits")


def describe_outcome(outcome: RunOutcome) -> str:
    if outcome.outcome == "noop":
        return "nothing to do"
    result = "rejected" if outcome.rejected else outcome.final_status.value.lower()
    return f"{result}{', archived' if outcome.archived else ''}"


def cmd_run(args, root: Path, config: WorkflowConfig,
            collaborators: Optional[Collaborators] = None) -> int:
    """Run an issue to RESOLVED and archive it, or stop at the first failing phase."""
    issue_id = args.id

    if collaborators is None:
        collaborators = _default_collaborators(root, config)
        if collaborators is None:
            return EXIT_USAGE

    _warn_if_busy(config)
    orchestrator = WorkflowOrchestrator.from_config(config, collaborators)

    try:
        outcome = orchestrator.run(
            issue_id,
            force=args.force,
            max_fix_attempts=args.max_fix_attempts,
            use_prefect=False if args.no_prefect else None,
        )
    except LockTimeout as e:
        print(f"ERROR: Could not acquire lock for {issue_id} (timeout)")
        print("Another run may be active for this issue")
        return exit_code_for(e)
    except TestFixExhausted as e:
        print(f"ERROR: {e}")
        print(f"  Status stays IMPLEMENTED. Inspect {config.state_dir / 'runs'}, then:")
        print(f"  issueflow run {issue_id} --force")
        return exit_code_for(e)
    except WorkflowError as e:
        print(f"ERROR: {e}")
        print("  Artifacts written by earlier phases are kept; fix the cause and run again.")
        return exit_code_for(e)

    for entry in outcome.audit:
        print(f"  {entry.phase:<10} -> {entry.resulting_status}")

    if outcome.outcome == "noop":
        where = "archived" if outcome.archived else "active"
        print(f"Nothing to do: {issue_id} is {outcome.final_status.value} ({where})")
        return EXIT_OK

    print(f"Result: {describe_outcome(outcome)}")
    print(f"Run ID: {outcome.run_id}")
    return EXIT_OK


def batch_issue_ids(store: ArtifactStore, state_dir: Path) -> list[str]:
    """Active issues, then archived issues whose commit is still owed."""
    owed = [
        issue_id for issue_id in store.list_issue_ids(store.archive_root)
        if has_pending_commit(state_dir, issue_id)
    ]
    return store.list_issue_ids() + owed


def cmd_run_all(args, root: Path, config: WorkflowConfig,
                collaborators: Optional[Collaborators] = None) -> int:
    """
    Run every unfinished issue in turn.

    Issues whose fix loop was exhausted are skipped. A failing issue is
    reported and the batch moves on; the exit code is EXIT_FAILED if any
    issue failed. Issues filed as follow-ups during the batch wait for the
    next one.
    """
    if collaborators is None:
        collaborators = _default_collaborators(root, config)
        if collaborators is None:
            return EXIT_USAGE

    store = ArtifactStore(config.issues_dir, config.archive_dir)
    issue_ids = batch_issue_ids(store, config.state_dir)
    if not issue_ids:
        print("No open issues")
        return EXIT_OK

    _warn_if_busy(config)
    orchestrator = WorkflowOrchestrator.from_config(config, collaborators)
    print(f"Found {len(issue_ids)} issue(s) to run")

    done, skipped, failed = [], [], []
    for issue_id in issue_ids:
        if read_exhausted_marker(config.state_dir, issue_id) is not None:
            print(f"[SKIP] {issue_id}: fix loop exhausted (issueflow run {issue_id} --force)")
            skipped.append(issue_id)
            continue

        print(f"=== {issue_id} ===")
        try:
            outcome = orchestrator.run(
                issue_id,
                max_fix_attempts=args.max_fix_attempts,
                use_prefect=False if args.no_prefect else None,
            )
        except (LockTimeout, WorkflowError) as e:
            logger.info(f"{issue_id}: {type(e).__name__}: {e}")
            print(f"[FAIL] {issue_id}: {e}")
            failed.append(issue_id)
            continue

        print(f"[OK]   {issue_id}: {describe_outcome(outcome)}")
        done.append(issue_id)

    print("")
    print(f"Done: {len(done)}, skipped: {len(skipped)}, failed: {len(failed)}")
    if failed:
        print(f"Failed: {', '.join(failed)}")
        return EXIT_FAILED
    return EXIT_OK
