"""
Phase execution framework for issueflow.

Defines which status each phase runs from, what it needs on disk, what it
produces, and the timing/error handling shared by every phase.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from issueflow.lib.errors import PreconditionFailed, WorkflowError
from issueflow.lib.issue import IssueRecord, load_issue
from issueflow.runner.context import RunContext
from issueflow.workflow.state_machine import IssueStatus


class PhaseResult(Enum):
    PASSED = "passed"
    RECONCILED = "reconciled"  # Artifact already on disk, only the transition was applied


class PhaseError(WorkflowError):
    """A phase body raised something that is not a workflow error."""

    def __init__(self, phase: str, message: str, issue_id: str = "",
                 cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message, issue_id, phase)


@dataclass(frozen=True)
class PhaseSpec:
    """Entry conditions and output of one phase."""
    name: str
    requires: dict[IssueStatus, tuple[str, ...]]  # Status it runs from -> artifacts it needs
    produces: Optional[str]
    description: str
    runs_archived: bool = False  # Archive finishes an owed commit after the move

    @property
    def from_statuses(self) -> tuple[IssueStatus, ...]:
        return tuple(self.requires)


PHASE_ORDER = [
    "validate",
    "propose",
    "review",
    "implement",
    "test_fix",
    "document",
    "archive",
]

PHASES = {
    "validate": PhaseSpec(
        "validate", {IssueStatus.OPEN: ("problem",)}, "validation",
        "Confirm or reject the reported problem",
    ),
    "propose": PhaseSpec(
        "propose", {IssueStatus.CONFIRMED: ("problem", "validation")}, "proposals",
        "Record candidate solutions",
    ),
    "review": PhaseSpec(
        "review", {IssueStatus.CONFIRMED: ("proposals",)}, "review",
        "Choose and refine one proposal",
    ),
    "implement": PhaseSpec(
        "implement", {IssueStatus.REVIEWED: ("review",)}, "implementation",
        "Change the code",
    ),
    "test_fix": PhaseSpec(
        "test_fix", {IssueStatus.IMPLEMENTED: ("implementation",)}, "testing",
        "Run checks and fix until green",
    ),
    "document": PhaseSpec(
        "document",
        {IssueStatus.TESTED: ("testing",), IssueStatus.REJECTED: ("validation",)},
        "solution",
        "Write the solution record and file follow-ups",
    ),
    "archive": PhaseSpec(
        "archive", {IssueStatus.RESOLVED: ("solution",)}, None,
        "Move the issue to the archive and commit",
        runs_archived=True,
    ),
}


# Phase function signature: (ctx: RunContext, issue: IssueRecord) -> PhaseResult
PhaseFn = Callable[[RunContext, IssueRecord], PhaseResult]


def check_preconditions(spec: PhaseSpec, issue: IssueRecord) -> None:
    """
    Gate phase entry on status and required artifacts.

    Raises:
        PreconditionFailed: wrong status, archived issue, or missing artifacts
    """
    if issue.archived and not spec.runs_archived:
        raise PreconditionFailed("Issue is archived", issue.id, spec.name)

    needed = spec.requires.get(issue.status)
    if needed is None:
        allowed = ", ".join(s.value for s in spec.from_statuses)
        raise PreconditionFailed(
            f"Phase {spec.name} runs from {allowed}, issue is {issue.status.value}",
            issue.id,
            spec.name,
        )
    issue.require_artifacts(*needed, phase=spec.name)


def run_phase(ctx: RunContext, phase_name: str, phase_fn: PhaseFn) -> PhaseResult:
    """
    Run a single phase with precondition checks, timing and error handling.

    Updates ctx.phases, and appends to the audit log on success.

    Raises:
        WorkflowError: any workflow error from the phase, unchanged
        PhaseError: wrapping any other exception
    """
    spec = PHASES[phase_name]
    issue = load_issue(ctx.store, ctx.issue_id)
    check_preconditions(spec, issue)

    ctx.log(f"Starting phase: {phase_name} (status {issue.status.value})")
    start = time.time()

    try:
        result = phase_fn(ctx, issue)
    except WorkflowError as e:
        duration = time.time() - start
        if not e.phase:
            e.phase = phase_name
        if not e.issue_id:
            e.issue_id = ctx.issue_id
        ctx.record_phase(phase_name, "failed", duration, e.message)
        ctx.log(f"Phase {phase_name} failed: {e}")
        raise
    except Exception as e:
        duration = time.time() - start
        ctx.record_phase(phase_name, "failed", duration, str(e))
        ctx.log(f"Phase {phase_name} error: {e}")
        raise PhaseError(phase_name, f"{type(e).__name__}: {e}", ctx.issue_id, cause=e) from e

    duration = time.time() - start
    ctx.record_phase(phase_name, result.value, duration)
    ctx.log(f"Phase {phase_name} {result.value} ({duration:.2f}s)")

    after = load_issue(ctx.store, ctx.issue_id)
    ctx.record_transition(phase_name, after.status.value)
    return result
