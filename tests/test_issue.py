"""Tests for issueflow.lib.issue module."""

import pytest

from issueflow.lib.errors import MalformedIssue, NotFound, PreconditionFailed
from issueflow.lib.issue import (
    IssueKind,
    is_valid_issue_id,
    load_issue,
    parse_kind,
    render_problem,
)
from issueflow.workflow.state_machine import IssueStatus


class TestIssueIds:
    """Test is_valid_issue_id()."""

    def test_kebab_case_accepted(self):
        assert is_valid_issue_id("bug-off-by-one")
        assert is_valid_issue_id("perf2")

    def test_rejects_unsafe_ids(self):
        for bad in ("Bug", "bug_one", "-bug", "bug-", "bug--one", "../etc", ""):
            assert not is_valid_issue_id(bad), bad

    def test_length_limit(self):
        assert not is_valid_issue_id("a" * 65)


class TestParseKind:
    def test_known(self):
        assert parse_kind(" feature ") == IssueKind.FEATURE

    def test_unknown(self):
        assert parse_kind("chore") is None
        assert parse_kind(None) is None


class TestLoadIssue:
    """Test load_issue()."""

    def test_loads_fields_and_artifacts(self, store, make_issue):
        make_issue(status=IssueStatus.CONFIRMED, artifacts=("validation",))
        issue = load_issue(store, "bug-off-by-one")

        assert issue.status == IssueStatus.CONFIRMED
        assert issue.kind == IssueKind.BUG
        assert issue.title == "Off by one in calc"
        assert not issue.archived
        assert list(issue.artifacts) == ["problem", "validation"]

    def test_archived_issue(self, store, make_issue):
        make_issue(status=IssueStatus.RESOLVED)
        store.move("bug-off-by-one", store.active_root, store.archive_root)
        issue = load_issue(store, "bug-off-by-one")
        assert issue.archived
        assert issue.location == store.archive_root / "bug-off-by-one"

    def test_not_found(self, store):
        with pytest.raises(NotFound):
            load_issue(store, "missing")

    def test_directory_without_problem(self, store):
        (store.active_root / "bug-empty").mkdir(parents=True)
        with pytest.raises(MalformedIssue):
            load_issue(store, "bug-empty")

    def test_missing_status(self, store):
        store.write("bug-a", "problem", "# A\n\n**Type**: BUG\n")
        with pytest.raises(MalformedIssue, match="Status"):
            load_issue(store, "bug-a")

    def test_unknown_status(self, store):
        store.write("bug-a", "problem", "# A\n\n**Status**: DONE\n**Type**: BUG\n")
        with pytest.raises(MalformedIssue, match="Status"):
            load_issue(store, "bug-a")

    def test_unknown_type(self, store):
        store.write("bug-a", "problem", "# A\n\n**Status**: OPEN\n**Type**: CHORE\n")
        with pytest.raises(MalformedIssue, match="Type"):
            load_issue(store, "bug-a")

    def test_title_falls_back_to_id(self, store):
        store.write("bug-a", "problem", "**Status**: OPEN\n**Type**: BUG\n")
        assert load_issue(store, "bug-a").title == "bug-a"


class TestRequireArtifacts:
    def test_lists_every_missing_artifact(self, store, make_issue):
        make_issue()
        issue = load_issue(store, "bug-off-by-one")
        with pytest.raises(PreconditionFailed) as exc_info:
            issue.require_artifacts("problem", "validation", "review", phase="implement")
        assert exc_info.value.missing == ["validation", "review"]
        assert exc_info.value.phase == "implement"


class TestRenderProblem:
    def test_headers_are_loadable(self, store):
        content = render_problem(
            "Slow query", IssueKind.PERFORMANCE, "Takes 5s.", extra_headers={"Priority": "HIGH"}
        )
        store.write("perf-slow-query", "problem", content)
        issue = load_issue(store, "perf-slow-query")

        assert issue.status == IssueStatus.OPEN
        assert issue.kind == IssueKind.PERFORMANCE
        assert issue.title == "Slow query"
        assert "**Priority**: HIGH" in content
        assert content.rstrip().endswith("Takes 5s.")
