"""Tests for issueflow.workflow.tasks module."""

import pickle

import pytest

from issueflow.lib.errors import AgentError, ArtifactIOError, TestFixExhausted
from issueflow.runner.phases import PHASE_ORDER, PhaseResult
from issueflow.workflow.state_machine import IssueStatus
from issueflow.workflow.tasks import PHASE_TASKS, retry_on_io_error, task_test_fix, task_validate


class FakeState:
    def __init__(self, error=None):
        self.error = error

    def result(self):
        if self.error is not None:
            raise self.error
        return PhaseResult.PASSED


class TestRetryCondition:
    """Only transient artifact I/O failures are retried."""

    def test_io_error_retried(self):
        assert retry_on_io_error(None, None, FakeState(ArtifactIOError("disk full")))

    def test_agent_error_not_retried(self):
        assert not retry_on_io_error(None, None, FakeState(AgentError("bad output")))

    def test_exhaustion_not_retried(self):
        assert not retry_on_io_error(None, None, FakeState(TestFixExhausted("gave up", cycles=3)))

    def test_success_not_retried(self):
        assert not retry_on_io_error(None, None, FakeState())


class TestPhaseTasks:
    def test_one_task_per_phase(self):
        assert list(PHASE_TASKS) == PHASE_ORDER

    def test_retry_settings(self):
        assert task_test_fix.retries == 1
        assert all(t.retry_condition_fn is retry_on_io_error for t in PHASE_TASKS.values())

    def test_task_body_runs_phase(self, store, make_issue, make_ctx):
        make_issue()
        ctx = make_ctx()
        assert task_validate.fn(ctx) == PhaseResult.PASSED
        assert ctx.audit[-1].resulting_status == IssueStatus.CONFIRMED.value


class TestErrorPickling:
    """Task results cross process boundaries, so errors must survive pickling."""

    @pytest.mark.parametrize("error", [
        AgentError("bad output", "bug-a", "review"),
        TestFixExhausted("gave up", "bug-a", cycles=3, last_failure="exit 1"),
        ArtifactIOError("disk full", "bug-a"),
    ])
    def test_round_trip_keeps_fields(self, error):
        restored = pickle.loads(pickle.dumps(error))
        assert type(restored) is type(error)
        assert restored.__dict__ == error.__dict__
        assert str(restored) == str(error)
