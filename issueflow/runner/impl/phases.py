"""
Phase implementations for issueflow.

Each phase function takes a RunContext and the freshly loaded IssueRecord,
writes its artifact, applies its status transition and returns a
PhaseResult. If the artifact is already on disk (a previous run stopped
between the write and the transition) only the transition is applied.
"""

import logging
from datetime import datetime

from issueflow.lib.docparse import (
    header_value,
    parse_followup_ids,
    parse_refactorings,
)
from issueflow.lib.errors import AgentError, PreconditionFailed, TestFixExhausted, WorkflowError
from issueflow.lib.issue import IssueRecord
from issueflow.lib.types import FollowUpResult
from issueflow.runner.context import RunContext
from issueflow.runner.impl.fix_loop import FixLoopReport, run_fix_loop
from issueflow.runner.impl.followups import create_followups
from issueflow.runner.impl.state_files import (
    clear_pending_commit,
    read_pending_commit,
    write_exhausted_marker,
    write_pending_commit,
)
from issueflow.runner.phases import PhaseResult
from issueflow.workflow.archive import ArchiveManager
from issueflow.workflow.state_machine import IssueStatus, transition

logger = logging.getLogger(__name__)

CONFIRMED_OUTCOMES = {"confirmed", "valid", "reproduced"}
REJECTED_OUTCOMES = {"rejected", "not_a_bug", "not_reproducible", "invalid"}


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def classify_validation(outcome: str) -> str:
    """Map the validate outcome tag to "confirmed" or "rejected"."""
    tag = outcome.strip().lower().replace("-", "_").replace(" ", "_")
    if tag in CONFIRMED_OUTCOMES:
        return "confirmed"
    if tag in REJECTED_OUTCOMES:
        return "rejected"
    raise AgentError(f"Unrecognised validation outcome: {outcome!r}", phase="validate")


# --- documents ---------------------------------------------------------------

def render_validation(issue: IssueRecord, outcome: str, tag: str, text: str) -> str:
    return (
        f"# Validation: {issue.title}\n\n"
        f"**Outcome**: {outcome}\n"
        f"**Agent outcome**: {tag}\n"
        f"**Date**: {_now()}\n\n"
        f"{text.strip()}\n"
    )


def render_rejection_solution(issue: IssueRecord, tag: str) -> str:
    return (
        f"# Solution: {issue.title}\n\n"
        f"**Resolution**: rejected\n"
        f"**Date**: {_now()}\n\n"
        f"## Rejection\n\n"
        f"Validation rejected this {issue.kind.value.lower()} report (outcome: {tag}).\n"
        f"No proposal, review, implementation or testing was carried out.\n"
        f"The evidence is in validation.md.\n"
    )


def render_phase_doc(heading: str, issue: IssueRecord, text: str) -> str:
    return f"# {heading}: {issue.title}\n\n**Date**: {_now()}\n\n{text.strip()}\n"


def render_testing(issue: IssueRecord, loop: FixLoopReport, text: str) -> str:
    n = len(loop.cycles)
    lines = [
        f"# Testing: {issue.title}",
        "",
        f"**Fix cycles**: {n}",
        "**Result**: all checks passed",
        f"**Date**: {_now()}",
        "",
        f"{_plural(n, 'fix cycle')} before lint, type check and tests passed.",
        "",
        "## Fix Cycles",
        "",
    ]
    if loop.cycles:
        for cycle in loop.cycles:
            lines.append(
                f"- Cycle {cycle.number}: {cycle.check} failed, classified as {cycle.classification}"
            )
    else:
        lines.append("- none")

    lines += [
        "",
        "## Structural Validation Tests",
        "",
        f"- Converted: {len(loop.converted)}",
        f"- Deleted: {len(loop.deleted)}",
    ]
    lines += [f"- converted: {name}" for name in loop.converted]
    lines += [f"- deleted: {name}" for name in loop.deleted]
    lines += ["", "## Report", "", text.strip(), ""]
    return "\n".join(lines)


def render_solution(issue: IssueRecord, text: str, followups: FollowUpResult) -> str:
    lines = [
        f"# Solution: {issue.title}",
        "",
        "**Resolution**: resolved",
        f"**Date**: {_now()}",
        "",
        text.strip(),
        "",
        "## Follow-up Issues",
        "",
    ]
    filed = followups.created + followups.reused
    if filed:
        for issue_id, opportunity in filed:
            lines.append(f"- `{issue_id}` ({opportunity.priority}: {opportunity.title})")
    else:
        lines.append("- none")

    if followups.not_filed:
        lines += ["", "## Not Filed", ""]
        for opportunity in followups.not_filed:
            detail = f": {opportunity.detail}" if opportunity.detail else ""
            lines.append(f"- [{opportunity.priority}] {opportunity.title}{detail}")

    lines.append("")
    return "\n".join(lines)


# --- phases ------------------------------------------------------------------

def phase_validate(ctx: RunContext, issue: IssueRecord) -> PhaseResult:
    """Confirm the issue, or short-circuit to REJECTED with a rejection solution."""
    store = ctx.store
    existing, exists = store.read(issue.id, "validation")

    if exists:
        outcome = (header_value(existing, "Outcome") or "").lower()
        if outcome not in ("confirmed", "rejected"):
            raise AgentError(
                f"validation.md has no usable Outcome header: {outcome!r}", issue.id, "validate"
            )
        tag = header_value(existing, "Agent outcome") or outcome
        result = PhaseResult.RECONCILED
    else:
        agent_result = ctx.collaborators.agent.run("validate", ctx.artifact_refs("problem"))
        tag = agent_result.outcome
        outcome = classify_validation(tag)
        store.write(issue.id, "validation", render_validation(issue, outcome, tag, agent_result.text))
        result = PhaseResult.PASSED

    if outcome == "rejected":
        _, has_solution = store.read(issue.id, "solution")
        if not has_solution:
            store.write(issue.id, "solution", render_rejection_solution(issue, tag))
        transition(store, issue.id, IssueStatus.REJECTED, reason=f"validation: {tag}")
    else:
        transition(store, issue.id, IssueStatus.CONFIRMED, reason="validated")
    return result


def phase_propose(ctx: RunContext, issue: IssueRecord) -> PhaseResult:
    """Record proposals. Status stays CONFIRMED."""
    if issue.has_artifact("proposals"):
        return PhaseResult.RECONCILED

    agent_result = ctx.collaborators.agent.run("propose", ctx.artifact_refs("problem", "validation"))
    ctx.store.write(issue.id, "proposals", render_phase_doc("Proposals", issue, agent_result.text))
    return PhaseResult.PASSED


def phase_review(ctx: RunContext, issue: IssueRecord) -> PhaseResult:
    result = PhaseResult.RECONCILED
    if not issue.has_artifact("review"):
        agent_result = ctx.collaborators.agent.run(
            "review", ctx.artifact_refs("problem", "validation", "proposals")
        )
        ctx.store.write(issue.id, "review", render_phase_doc("Review", issue, agent_result.text))
        result = PhaseResult.PASSED

    transition(ctx.store, issue.id, IssueStatus.REVIEWED, reason="proposal reviewed")
    return result


def phase_implement(ctx: RunContext, issue: IssueRecord) -> PhaseResult:
    result = PhaseResult.RECONCILED
    if not issue.has_artifact("implementation"):
        agent_result = ctx.collaborators.agent.run(
            "implement", ctx.artifact_refs("problem", "validation", "review")
        )
        ctx.store.write(
            issue.id, "implementation", render_phase_doc("Implementation", issue, agent_result.text)
        )
        result = PhaseResult.PASSED

    transition(ctx.store, issue.id, IssueStatus.IMPLEMENTED, reason="implemented")
    return result


def phase_test_fix(ctx: RunContext, issue: IssueRecord) -> PhaseResult:
    """Run the fix loop, then record testing.md. On exhaustion nothing is written."""
    result = PhaseResult.RECONCILED
    if not issue.has_artifact("testing"):
        try:
            loop = run_fix_loop(ctx)
        except TestFixExhausted as e:
            marker = write_exhausted_marker(ctx.config.state_dir, issue.id, e.cycles, e.last_failure)
            ctx.log(f"Fix loop exhausted, marker written to {marker}")
            raise

        summary = ctx.write_run_file(
            "fix-cycles.md",
            "# Fix cycles\n\n" + "\n".join(
                f"- Cycle {c.number}: {c.check}, {c.classification}" for c in loop.cycles
            ) + "\n",
        )
        agent_result = ctx.collaborators.agent.run(
            "test_report", ctx.artifact_refs("problem", "validation", "implementation") + [summary]
        )
        ctx.store.write(issue.id, "testing", render_testing(issue, loop, agent_result.text))
        result = PhaseResult.PASSED

    transition(ctx.store, issue.id, IssueStatus.TESTED, reason="all checks pass")
    return result


def phase_document(ctx: RunContext, issue: IssueRecord) -> PhaseResult:
    """Write solution.md (filing follow-ups first) and resolve the issue."""
    store = ctx.store
    result = PhaseResult.RECONCILED

    if issue.status == IssueStatus.REJECTED:
        if not issue.has_artifact("solution"):
            validation, _ = store.read(issue.id, "validation")
            tag = header_value(validation or "", "Agent outcome") or "rejected"
            store.write(issue.id, "solution", render_rejection_solution(issue, tag))
            result = PhaseResult.PASSED
        transition(store, issue.id, IssueStatus.RESOLVED, reason="closed as rejected")
        return result

    if not issue.has_artifact("solution"):
        testing, _ = store.read(issue.id, "testing")
        followups = create_followups(store, issue.id, parse_refactorings(testing or ""))
        for followup_id, _ in followups.created:
            ctx.log(f"Filed follow-up issue {followup_id}")

        agent_result = ctx.collaborators.agent.run(
            "document",
            ctx.artifact_refs("problem", "validation", "proposals", "review", "implementation", "testing"),
        )
        store.write(issue.id, "solution", render_solution(issue, agent_result.text, followups))
        result = PhaseResult.PASSED

    transition(store, issue.id, IssueStatus.RESOLVED, reason="documented")
    return result


def _commit_request(store, issue: IssueRecord) -> tuple[list[str], str]:
    """Paths and message for the archive commit, computed before the move."""
    solution, _ = store.read(issue.id, "solution")
    resolution = (header_value(solution or "", "Resolution") or "resolved").lower()
    followup_ids = parse_followup_ids(solution or "")

    files = [str(store.issue_dir(issue.id, store.archive_root)), str(store.issue_dir(issue.id))]
    for followup_id in followup_ids:
        root = store.locate(followup_id)
        if root is not None:
            files.append(str(store.artifact_path(followup_id, "problem", root)))

    verb = "Reject" if resolution == "rejected" else "Resolve"
    message = f"{verb} issue {issue.id}: {issue.title}"
    if followup_ids:
        message += "\n\nFollow-ups: " + ", ".join(followup_ids)
    return files, message


def phase_archive(ctx: RunContext, issue: IssueRecord) -> PhaseResult:
    """
    Move the issue to the archive, then make the single commit of the run.

    The commit is recorded as pending before the move and the record is
    removed only after the commit succeeds. An archived issue that still
    owes its commit re-enters here and only commits.
    """
    state_dir = ctx.config.state_dir
    vcs = ctx.collaborators.vcs if ctx.config.commit_enabled else None

    if issue.archived:
        pending = read_pending_commit(state_dir, issue.id)
        if pending is None:
            raise PreconditionFailed("Issue is archived and owes no commit", issue.id, "archive")
        files, message = pending["files"], pending["message"]
        ctx.log("Retrying the commit of an earlier archive")
    else:
        files, message = _commit_request(ctx.store, issue)
        if vcs is not None:
            write_pending_commit(state_dir, issue.id, files, message)
        try:
            archived_dir = ArchiveManager(ctx.store).archive(issue.id)
        except WorkflowError:
            # Not moved, so nothing is owed yet
            clear_pending_commit(state_dir, issue.id)
            raise
        ctx.log(f"Archived to {archived_dir}")

    if vcs is None:
        clear_pending_commit(state_dir, issue.id)
        ctx.log("Commit disabled, skipping")
        return PhaseResult.PASSED

    sha = vcs.commit(files, message)
    clear_pending_commit(state_dir, issue.id)
    ctx.log(f"Committed {sha}")
    return PhaseResult.PASSED


PHASE_FUNCTIONS = {
    "validate": phase_validate,
    "propose": phase_propose,
    "review": phase_review,
    "implement": phase_implement,
    "test_fix": phase_test_fix,
    "document": phase_document,
    "archive": phase_archive,
}
