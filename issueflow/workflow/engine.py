"""Workflow engine for issue execution.

Drives one issue through its remaining phases. The phase to run next is
derived from disk on every step (status header plus artifacts present), so
an interrupted run resumes at the first unfinished phase.

Wrapped with a Prefect @flow, with one @task per phase, when USE_PREFECT is on.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from prefect import flow

from issueflow.lib.config import WorkflowConfig
from issueflow.lib.docparse import header_value
from issueflow.lib.errors import TestFixExhausted, WorkflowError
from issueflow.lib.issue import IssueRecord, load_issue
from issueflow.lib.store import ArtifactStore
from issueflow.lib.types import AuditEntry, Collaborators
from issueflow.notifications import notify_exhausted, notify_failed, notify_resolved
from issueflow.runner.context import RunContext
from issueflow.runner.impl.phases import PHASE_FUNCTIONS
from issueflow.runner.impl.state_files import (
    clear_exhausted_marker,
    has_pending_commit,
    read_exhausted_marker,
)
from issueflow.runner.locking import issue_lock
from issueflow.runner.phases import PHASE_ORDER, run_phase
from issueflow.workflow.state_machine import IssueStatus

logger = logging.getLogger(__name__)

# validate, propose, review, implement, test_fix, document, archive
MAX_STEPS = len(PHASE_ORDER)


@dataclass
class RunOutcome:
    """Result of one successful `run` of an issue."""
    issue_id: str
    run_id: str
    outcome: str  # "completed" or "noop"
    final_status: IssueStatus
    archived: bool
    rejected: bool = False
    phases_run: list[str] = field(default_factory=list)
    audit: list[AuditEntry] = field(default_factory=list)


def next_phase(issue: IssueRecord, state_dir: Optional[Path] = None) -> Optional[str]:
    """
    The phase that moves this issue forward, or None when it is done.

    With state_dir given, an archived issue whose commit failed is sent back
    to archive so the commit is retried.
    """
    if issue.archived:
        if state_dir is not None and has_pending_commit(state_dir, issue.id):
            return "archive"
        return None

    status = issue.status
    if status == IssueStatus.OPEN:
        return "validate"
    if status == IssueStatus.CONFIRMED:
        return "review" if issue.has_artifact("proposals") else "propose"
    if status == IssueStatus.REVIEWED:
        return "implement"
    if status == IssueStatus.IMPLEMENTED:
        return "test_fix"
    if status in (IssueStatus.TESTED, IssueStatus.REJECTED):
        return "document"
    if status == IssueStatus.RESOLVED:
        return "archive"
    return None


def _was_rejected(store: ArtifactStore, issue_id: str) -> bool:
    solution, _ = store.read(issue_id, "solution", store.locate(issue_id))
    return (header_value(solution or "", "Resolution") or "").lower() == "rejected"


def _run_phase_plain(ctx: RunContext, phase: str):
    return run_phase(ctx, phase, PHASE_FUNCTIONS[phase])


def _run_phase_task(ctx: RunContext, phase: str):
    from issueflow.workflow.tasks import PHASE_TASKS
    return PHASE_TASKS[phase](ctx)


class WorkflowOrchestrator:
    """Runs issues through the workflow and keeps the audit log of every run."""

    def __init__(self, config: WorkflowConfig, store: ArtifactStore, collaborators: Collaborators):
        self.config = config
        self.store = store
        self.collaborators = collaborators
        self._audit: list[AuditEntry] = []

    @classmethod
    def from_config(cls, config: WorkflowConfig, collaborators: Collaborators) -> "WorkflowOrchestrator":
        return cls(config, ArtifactStore(config.issues_dir, config.archive_dir), collaborators)

    @property
    def audit_log(self) -> list[AuditEntry]:
        """Every successful phase transition made through this orchestrator, in order."""
        return list(self._audit)

    def run(self, issue_id: str, force: bool = False, max_fix_attempts: int | None = None,
            use_prefect: bool | None = None) -> RunOutcome:
        """
        Drive issue_id through its remaining phases under the per-issue lock.

        Raises:
            NotFound, MalformedIssue: the issue cannot be loaded
            LockTimeout: another run holds the issue
            TestFixExhausted: the fix loop gave up now, or earlier and force is False
            WorkflowError: any other phase failure, with issue and phase set
        """
        load_issue(self.store, issue_id)
        use_prefect = self.config.use_prefect if use_prefect is None else use_prefect

        with issue_lock(self.config.state_dir, issue_id, timeout=self.config.lock_timeout):
            marker = read_exhausted_marker(self.config.state_dir, issue_id)
            if marker is not None:
                if not force:
                    raise TestFixExhausted(
                        "Fix loop was exhausted on an earlier run; use --force to try again",
                        issue_id,
                        cycles=marker.get("cycles", 0),
                        last_failure=marker.get("last_failure", ""),
                    )
                clear_exhausted_marker(self.config.state_dir, issue_id)
                logger.info(f"{issue_id}: cleared exhausted marker (forced)")

            ctx = RunContext.create(
                self.config, self.store, self.collaborators, issue_id, max_fix_attempts
            )
            ctx.log(f"Starting run: {ctx.run_id}")

            if use_prefect:
                return run_issue_flow(self, ctx)
            return self.drive(ctx, _run_phase_plain)

    def drive(self, ctx: RunContext, run_one: Callable[[RunContext, str], object]) -> RunOutcome:
        """Run phases until the issue is archived or a phase fails."""
        phases_run = []
        try:
            while True:
                issue = load_issue(self.store, ctx.issue_id)
                phase = next_phase(issue, self.config.state_dir)
                if phase is None:
                    break
                if len(phases_run) >= MAX_STEPS:
                    raise WorkflowError(
                        f"No progress after {MAX_STEPS} phases, stuck at {issue.status.value}",
                        ctx.issue_id,
                        phase,
                    )
                run_one(ctx, phase)
                phases_run.append(phase)

        except WorkflowError as e:
            self._finish_failed(ctx, e)
            raise
        finally:
            self._audit.extend(ctx.audit)

        outcome = "completed" if phases_run else "noop"
        rejected = _was_rejected(self.store, ctx.issue_id)
        ctx.write_result(outcome, issue.status.value, archived=issue.archived)
        ctx.log(f"Run {outcome}: {issue.status.value}, archived={issue.archived}")

        if phases_run and issue.archived and self.config.notify:
            notify_resolved(ctx.issue_id, rejected=rejected)

        return RunOutcome(
            issue_id=ctx.issue_id,
            run_id=ctx.run_id,
            outcome=outcome,
            final_status=issue.status,
            archived=issue.archived,
            rejected=rejected,
            phases_run=phases_run,
            audit=list(ctx.audit),
        )

    def _finish_failed(self, ctx: RunContext, error: WorkflowError):
        exhausted = isinstance(error, TestFixExhausted)
        try:
            status = load_issue(self.store, ctx.issue_id).status.value
        except WorkflowError:
            status = None

        ctx.write_result(
            "exhausted" if exhausted else "failed",
            status,
            failed_phase=error.phase or None,
            error=str(error),
        )
        ctx.log(f"Run failed: {error}")

        if self.config.notify:
            if exhausted:
                notify_exhausted(ctx.issue_id, error.cycles)
            else:
                notify_failed(ctx.issue_id, error.phase, error.message)


@flow(name="issue_run", validate_parameters=False)
def run_issue_flow(orchestrator: WorkflowOrchestrator, ctx: RunContext) -> RunOutcome:
    """Prefect flow around one run: each phase becomes a task run."""
    return orchestrator.drive(ctx, _run_phase_task)
