"""Issue state machine using the transitions library.

States are the IssueStatus values. Each trigger is guarded by the artifact
the finished phase produces, so a status can never run ahead of the audit
trail on disk. Propose has no trigger: it records proposals and leaves the
status at CONFIRMED.

Usage:
    from issueflow.workflow.fsm import IssueFSM

    fsm = IssueFSM(store, "bug-off-by-one")
    fsm.confirm()    # OPEN -> CONFIRMED, needs validation.md
    fsm.review()     # CONFIRMED -> REVIEWED, needs review.md
"""

import logging
from typing import Callable

from transitions import Machine

from issueflow.lib.docparse import header_value
from issueflow.lib.errors import MalformedIssue, NotFound

logger = logging.getLogger(__name__)


STATES = [
    "OPEN",
    "CONFIRMED",
    "REJECTED",
    "REVIEWED",
    "IMPLEMENTED",
    "TESTED",
    "RESOLVED",
]

# Each trigger becomes a method on the FSM; conditions name guard methods below
TRANSITIONS = [
    {"trigger": "confirm", "source": "OPEN", "dest": "CONFIRMED",
     "conditions": ["has_validation"]},
    # Rejection short-circuit: the rejection solution is written before the flip
    {"trigger": "reject", "source": "OPEN", "dest": "REJECTED",
     "conditions": ["has_validation", "has_solution"]},
    {"trigger": "review", "source": "CONFIRMED", "dest": "REVIEWED",
     "conditions": ["has_proposals", "has_review"]},
    {"trigger": "implement", "source": "REVIEWED", "dest": "IMPLEMENTED",
     "conditions": ["has_implementation"]},
    {"trigger": "pass_tests", "source": "IMPLEMENTED", "dest": "TESTED",
     "conditions": ["has_testing"]},
    {"trigger": "resolve", "source": "TESTED", "dest": "RESOLVED",
     "conditions": ["has_solution"]},
    {"trigger": "close_rejected", "source": "REJECTED", "dest": "RESOLVED",
     "conditions": ["has_solution"]},
]


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    return {(t["source"], t["dest"]): t["trigger"] for t in TRANSITIONS}


def _build_guard_lookup() -> dict[str, tuple[str, ...]]:
    """Build lookup from trigger -> artifacts its conditions require."""
    return {
        t["trigger"]: tuple(c.removeprefix("has_") for c in t["conditions"])
        for t in TRANSITIONS
    }


TRIGGER_FOR = _build_trigger_lookup()
GUARD_ARTIFACTS = _build_guard_lookup()


class IssueFSM:
    """State machine for one issue's status.

    - Loads the initial state from the Status header in problem.md
    - Persists state changes back to that header
    - Logs all transitions
    """

    def __init__(self, store, issue_id: str,
                 on_transition: Callable[[str, str, str], None] | None = None):
        """Initialize the FSM for an issue in the active root.

        Args:
            store: ArtifactStore holding the issue
            issue_id: Issue identifier
            on_transition: Optional callback(from_state, to_state, trigger)

        Raises:
            NotFound: problem.md is absent from the active root
            MalformedIssue: Status header missing or unknown
        """
        self.store = store
        self.issue_id = issue_id
        self.on_transition = on_transition

        initial = self._load_state()

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=initial,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def _load_state(self) -> str:
        content, exists = self.store.read(self.issue_id, "problem")
        if not exists:
            raise NotFound(f"No active problem.md for '{self.issue_id}'", self.issue_id)
        value = header_value(content, "Status")
        if value is None:
            raise MalformedIssue("problem.md has no Status header", self.issue_id)
        state = value.upper()
        if state not in STATES:
            raise MalformedIssue(f"Unknown status '{value}' in problem.md", self.issue_id)
        return state

    def has_artifact(self, name: str) -> bool:
        _, exists = self.store.read(self.issue_id, name)
        return exists

    # Guards. send_event=True passes EventData to every callback.
    def has_validation(self, event) -> bool:
        return self.has_artifact("validation")

    def has_proposals(self, event) -> bool:
        return self.has_artifact("proposals")

    def has_review(self, event) -> bool:
        return self.has_artifact("review")

    def has_implementation(self, event) -> bool:
        return self.has_artifact("implementation")

    def has_testing(self, event) -> bool:
        return self.has_artifact("testing")

    def has_solution(self, event) -> bool:
        return self.has_artifact("solution")

    def on_state_change(self, event) -> None:
        """Persist the new state to problem.md and log the transition."""
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[FSM] {self.issue_id}: {from_state} -> {to_state} ({trigger})")

        self.store.update_status_header(self.issue_id, to_state)

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)
