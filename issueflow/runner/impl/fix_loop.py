"""
The bounded Test+Fix loop.

Checks run in order (lint, type check, tests) and the first failure starts a
fix cycle: the Agent classifies the failure, then patches. Once everything
is green, structural validation tests are finalized (converted or deleted).
The loop gives up with TestFixExhausted after max_fix_attempts cycles.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from issueflow.lib.docparse import parse_dispositions, parse_validation_tests
from issueflow.lib.errors import TestFixExhausted
from issueflow.lib.types import ArtifactRef, CheckResult
from issueflow.runner.context import RunContext

logger = logging.getLogger(__name__)

CLASSIFICATIONS = ("test", "implementation")


@dataclass
class FixCycle:
    number: int
    check: str  # "lint", "type_check", "tests", "structural_tests"
    classification: str  # "test" or "implementation"


@dataclass
class FixLoopReport:
    """What the loop did, for testing.md."""
    cycles: list[FixCycle] = field(default_factory=list)
    structural: list[str] = field(default_factory=list)
    converted: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


def first_failure(ctx: RunContext) -> CheckResult | None:
    """Run lint, type check and tests, stopping at the first failure."""
    checker = ctx.collaborators.checker
    for run_check in (checker.run_lint, checker.run_type_check, checker.run_tests):
        result = run_check()
        ctx.log(f"Check {result.check}: {'passed' if result.passed else 'FAILED'}")
        if not result.passed:
            return result
    return None


def _finalize_structural(ctx: RunContext, report: FixLoopReport, pending: list[str],
                         previous: Optional[ArtifactRef] = None) -> list[str]:
    """Ask the Agent to convert or delete pending structural tests. Returns those still pending.

    previous is the report of the last attempt that left tests unaccounted.
    """
    listing = ctx.write_run_file(
        f"structural-{len(report.cycles) + 1}.md",
        "# Structural validation tests\n\n" + "\n".join(f"- {name}" for name in pending) + "\n",
    )
    context = ctx.artifact_refs("problem", "validation", "implementation") + [listing]
    if previous is not None:
        context.append(previous)
    result = ctx.collaborators.agent.run("finalize_tests", context)

    dispositions = parse_dispositions(result.text)
    still_pending = []
    for name in pending:
        action = dispositions.get(name)
        if action == "convert":
            report.converted.append(name)
        elif action == "delete":
            report.deleted.append(name)
        else:
            still_pending.append(name)

    ctx.log(
        f"Structural tests: {len(report.converted)} converted, {len(report.deleted)} deleted, "
        f"{len(still_pending)} unaccounted"
    )
    return still_pending


def run_fix_loop(ctx: RunContext) -> FixLoopReport:
    """
    Drive checks to green within ctx.max_fix_attempts fix cycles.

    Raises:
        TestFixExhausted: a failure remains after the last allowed cycle
        AgentError, CheckerError: collaborator failures, propagated
    """
    validation, _ = ctx.store.read(ctx.issue_id, "validation")
    report = FixLoopReport()
    report.structural = [t.name for t in parse_validation_tests(validation or "") if t.structural]
    pending = list(report.structural)
    unaccounted_ref = None

    while True:
        failure = first_failure(ctx)

        if failure is None and pending:
            pending = _finalize_structural(ctx, report, pending, unaccounted_ref)
            if not pending:
                # Finalization edits tests, so the suite must be green again
                continue
            failure = CheckResult(
                check="structural_tests",
                passed=False,
                report="Structural validation tests neither converted nor deleted:\n"
                       + "\n".join(f"- {name}" for name in pending),
            )

        if failure is None:
            return report

        if len(report.cycles) >= ctx.max_fix_attempts:
            raise TestFixExhausted(
                f"Checks still failing after {len(report.cycles)} fix cycle(s): {failure.check}",
                ctx.issue_id,
                cycles=len(report.cycles),
                last_failure=failure.report,
            )

        number = len(report.cycles) + 1
        ctx.log(f"=== Fix cycle {number}/{ctx.max_fix_attempts}: {failure.check} ===")
        failure_ref = ctx.write_run_file(f"cycle-{number}-{failure.check}.md", failure.report)

        if failure.check == "structural_tests":
            # Nothing to patch; the next finalization sees this report
            unaccounted_ref = failure_ref
            report.cycles.append(FixCycle(number, failure.check, "test"))
            continue

        context = ctx.artifact_refs("problem", "validation", "review", "implementation")
        triage = ctx.collaborators.agent.run("triage", context + [failure_ref])
        classification = triage.outcome if triage.outcome in CLASSIFICATIONS else "implementation"
        triage_ref = ctx.write_run_file(
            f"cycle-{number}-triage.md",
            f"**Classification**: {classification}\n\n{triage.text}\n",
        )

        fix = ctx.collaborators.agent.run("fix", context + [failure_ref, triage_ref])
        ctx.write_run_file(f"cycle-{number}-fix.md", fix.text)
        report.cycles.append(FixCycle(number, failure.check, classification))
        logger.info(f"{ctx.issue_id}: fix cycle {number} ({failure.check}, {classification})")
