"""
Follow-up issues from refactoring opportunities.

HIGH and MEDIUM entries each become a new FEATURE issue in the active root,
id "refactor-<slug>" with a numeric suffix when taken. LOW entries are only
listed in the originating solution.
"""

import logging

from issueflow.lib.docparse import header_value, slugify
from issueflow.lib.errors import AlreadyExists, MalformedIssue
from issueflow.lib.issue import IssueKind, load_issue, render_problem
from issueflow.lib.store import ArtifactStore
from issueflow.lib.types import FollowUpResult, RefactoringOpportunity

logger = logging.getLogger(__name__)

FILED_PRIORITIES = ("HIGH", "MEDIUM")
FOLLOW_UP_HEADER = "Follow-up of"
MAX_SUFFIX = 100


def _is_same_followup(store: ArtifactStore, candidate: str, origin_id: str, title: str) -> bool:
    """True if candidate was already filed for this origin and title (earlier, interrupted run)."""
    try:
        issue = load_issue(store, candidate)
    except MalformedIssue:
        return False
    content, _ = store.read(candidate, "problem", store.locate(candidate))
    return (
        issue.title == title
        and header_value(content or "", FOLLOW_UP_HEADER) == origin_id
    )


def _render_followup(origin_id: str, opportunity: RefactoringOpportunity) -> str:
    body = (
        f"Refactoring opportunity found while testing `{origin_id}`.\n\n"
        f"{opportunity.detail or opportunity.title}"
    )
    return render_problem(
        opportunity.title,
        IssueKind.FEATURE,
        body,
        extra_headers={
            "Priority": opportunity.priority,
            FOLLOW_UP_HEADER: origin_id,
        },
    )


def file_followup(store: ArtifactStore, origin_id: str,
                  opportunity: RefactoringOpportunity) -> tuple[str, bool]:
    """
    Create (or find) the follow-up issue for one opportunity.

    Returns:
        (issue_id, created) where created is False if an earlier run filed it
    """
    base = f"refactor-{slugify(opportunity.title)}"

    for n in range(1, MAX_SUFFIX + 1):
        candidate = base if n == 1 else f"{base}-{n}"

        if store.exists(candidate):
            if _is_same_followup(store, candidate, origin_id, opportunity.title):
                return candidate, False
            continue

        try:
            store.write(candidate, "problem", _render_followup(origin_id, opportunity))
        except AlreadyExists:
            # Lost a race with another run creating the same id
            continue

        logger.info(f"Filed follow-up {candidate} for {origin_id}")
        return candidate, True

    raise AlreadyExists(f"No free id for follow-up '{base}' after {MAX_SUFFIX} tries", origin_id)


def create_followups(store: ArtifactStore, origin_id: str,
                     opportunities: list[RefactoringOpportunity]) -> FollowUpResult:
    """File HIGH/MEDIUM opportunities as issues, set LOW aside."""
    result = FollowUpResult()
    for opportunity in opportunities:
        if opportunity.priority not in FILED_PRIORITIES:
            result.not_filed.append(opportunity)
            continue

        issue_id, created = file_followup(store, origin_id, opportunity)
        if created:
            result.created.append((issue_id, opportunity))
        else:
            result.reused.append((issue_id, opportunity))
    return result
