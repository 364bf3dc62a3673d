"""Prefect task wrappers for phase functions.

Wraps each phase with a @task decorator to get:
- Automatic retry on transient artifact I/O failures
- Structured logging
- Observability (when connected to Prefect server)

Only ArtifactIOError is retried. Every other failure leaves the issue where
it was and is surfaced to the caller. A retried phase reloads the issue and
reconciles, so a retry never duplicates an artifact.
"""

from typing import TYPE_CHECKING

from prefect import task
from prefect.cache_policies import NO_CACHE

from issueflow.lib.errors import ArtifactIOError
from issueflow.runner.impl.phases import PHASE_FUNCTIONS
from issueflow.runner.phases import PhaseResult, run_phase

if TYPE_CHECKING:
    from issueflow.runner.context import RunContext


def retry_on_io_error(task, task_run, state) -> bool:
    """Retry condition: only transient file-system failures."""
    try:
        state.result()
    except ArtifactIOError:
        return True
    except Exception:
        return False
    return False


@task(
    name="validate",
    retries=2,
    retry_delay_seconds=5,
    retry_condition_fn=retry_on_io_error,
    cache_policy=NO_CACHE,
    description="Confirm or reject the reported problem",
)
def task_validate(ctx: "RunContext") -> PhaseResult:
    return run_phase(ctx, "validate", PHASE_FUNCTIONS["validate"])


@task(
    name="propose",
    retries=2,
    retry_delay_seconds=5,
    retry_condition_fn=retry_on_io_error,
    cache_policy=NO_CACHE,
    description="Record candidate solutions",
)
def task_propose(ctx: "RunContext") -> PhaseResult:
    return run_phase(ctx, "propose", PHASE_FUNCTIONS["propose"])


@task(
    name="review",
    retries=2,
    retry_delay_seconds=5,
    retry_condition_fn=retry_on_io_error,
    cache_policy=NO_CACHE,
    description="Choose and refine one proposal",
)
def task_review(ctx: "RunContext") -> PhaseResult:
    return run_phase(ctx, "review", PHASE_FUNCTIONS["review"])


@task(
    name="implement",
    retries=2,
    retry_delay_seconds=5,
    retry_condition_fn=retry_on_io_error,
    cache_policy=NO_CACHE,
    description="Change the code",
)
def task_implement(ctx: "RunContext") -> PhaseResult:
    return run_phase(ctx, "implement", PHASE_FUNCTIONS["implement"])


@task(
    name="test_fix",
    retries=1,
    retry_delay_seconds=10,
    retry_condition_fn=retry_on_io_error,
    cache_policy=NO_CACHE,
    description="Run checks and fix until green",
)
def task_test_fix(ctx: "RunContext") -> PhaseResult:
    """Test+Fix with Prefect retry handling.

    The fix loop itself is bounded; a task retry only covers a failed
    testing.md write and starts a fresh loop.
    """
    return run_phase(ctx, "test_fix", PHASE_FUNCTIONS["test_fix"])


@task(
    name="document",
    retries=2,
    retry_delay_seconds=5,
    retry_condition_fn=retry_on_io_error,
    cache_policy=NO_CACHE,
    description="Write the solution record and file follow-ups",
)
def task_document(ctx: "RunContext") -> PhaseResult:
    return run_phase(ctx, "document", PHASE_FUNCTIONS["document"])


@task(
    name="archive",
    retries=2,
    retry_delay_seconds=5,
    retry_condition_fn=retry_on_io_error,
    cache_policy=NO_CACHE,
    description="Move the issue to the archive and commit",
)
def task_archive(ctx: "RunContext") -> PhaseResult:
    return run_phase(ctx, "archive", PHASE_FUNCTIONS["archive"])


PHASE_TASKS = {
    "validate": task_validate,
    "propose": task_propose,
    "review": task_review,
    "implement": task_implement,
    "test_fix": task_test_fix,
    "document": task_document,
    "archive": task_archive,
}
