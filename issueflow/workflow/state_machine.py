"""Issue status state machine with explicit transitions and guards.

Thin wrapper around the FSM in fsm.py. All transition logic lives in
fsm.py - this module provides:
- IssueStatus enum for type safety
- transition() function that maps a target status to an FSM trigger

Usage:
    from issueflow.workflow.state_machine import transition, IssueStatus

    transition(store, "bug-off-by-one", IssueStatus.CONFIRMED, reason="validated")
"""

import logging
from enum import Enum

from issueflow.lib.errors import PreconditionFailed, WorkflowError

logger = logging.getLogger(__name__)


class IssueStatus(Enum):
    """All valid issue statuses.

    Values match the Status header in problem.md.
    """

    OPEN = "OPEN"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    REVIEWED = "REVIEWED"
    IMPLEMENTED = "IMPLEMENTED"
    TESTED = "TESTED"
    RESOLVED = "RESOLVED"


# Position along the workflow. REJECTED sits beside CONFIRMED: it is only
# reachable from OPEN and only leads to RESOLVED.
STATUS_RANK = {
    IssueStatus.OPEN: 0,
    IssueStatus.CONFIRMED: 1,
    IssueStatus.REJECTED: 1,
    IssueStatus.REVIEWED: 2,
    IssueStatus.IMPLEMENTED: 3,
    IssueStatus.TESTED: 4,
    IssueStatus.RESOLVED: 5,
}

TERMINAL_STATUSES = frozenset({IssueStatus.RESOLVED, IssueStatus.REJECTED})


class InvalidTransition(WorkflowError):
    """Raised when attempting a transition the state machine does not allow."""

    def __init__(self, from_state: str, to_state: IssueStatus, issue_id: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state} -> {to_state.value}", issue_id)


def parse_status(status_str: str | None) -> IssueStatus | None:
    """Parse a status string into IssueStatus.

    Returns None if status is unknown.
    """
    if status_str is None:
        return None
    try:
        return IssueStatus(status_str.strip().upper())
    except ValueError:
        return None


def transition(store, issue_id: str, to_status: IssueStatus, reason: str = "") -> None:
    """Transition an issue to a new status with validation.

    Uses the FSM for validation and persistence to problem.md.

    Raises:
        InvalidTransition: if the status graph has no such edge
        PreconditionFailed: if the transition's artifact guard is not met
    """
    from transitions import MachineError
    from issueflow.workflow.fsm import IssueFSM, TRIGGER_FOR, GUARD_ARTIFACTS

    reason_str = f" ({reason})" if reason else ""

    fsm = IssueFSM(store, issue_id)
    current = fsm.state

    if current == to_status.value:
        logger.debug(f"[STATE] {issue_id}: already {current}, no-op")
        return

    trigger = TRIGGER_FOR.get((current, to_status.value))
    if trigger is None:
        raise InvalidTransition(current, to_status, issue_id)

    logger.info(f"[STATE] {issue_id}: {current} -> {to_status.value}{reason_str}")
    try:
        moved = getattr(fsm, trigger)()
    except MachineError as e:
        raise InvalidTransition(current, to_status, issue_id) from e

    if not moved:
        needed = GUARD_ARTIFACTS.get(trigger, ())
        missing = [name for name in needed if not fsm.has_artifact(name)]
        raise PreconditionFailed(
            f"Cannot move {current} -> {to_status.value}: missing {', '.join(missing) or 'guard'}",
            issue_id,
            missing=missing,
        )
