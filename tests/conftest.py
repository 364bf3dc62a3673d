"""Shared fixtures: a throwaway workspace and scripted collaborators."""

from pathlib import Path

import pytest

from issueflow.lib.config import load_config
from issueflow.lib.errors import VCSError
from issueflow.lib.issue import IssueKind, render_problem
from issueflow.lib.store import ArtifactStore
from issueflow.lib.types import AgentResult, CheckResult, Collaborators
from issueflow.runner.context import RunContext
from issueflow.workflow.engine import WorkflowOrchestrator
from issueflow.workflow.state_machine import IssueStatus


DEFAULT_REPLIES = {
    "validate": AgentResult(
        "Reproduced with a failing test.\n\n## Validation Tests\n\n- tests/test_calc.py::test_off_by_one\n",
        "confirmed",
    ),
    "propose": AgentResult("## Option A\n\nClamp the index.\n", "proposed"),
    "review": AgentResult("Go with option A.\n", "approved"),
    "implement": AgentResult("Clamped the index in calc.py.\n", "implemented"),
    "triage": AgentResult("The code is wrong, not the test.\n", "implementation"),
    "fix": AgentResult("Patched calc.py.\n", "fixed"),
    "finalize_tests": AgentResult("Nothing to finalize.\n", "done"),
    "test_report": AgentResult("All checks pass.\n\n## Refactoring Opportunities\n\n- none\n", "tested"),
    "document": AgentResult("Root cause: off-by-one in calc.py.\n", "documented"),
}


class ScriptedAgent:
    """Agent fake. Replies come from a per-phase queue, then from DEFAULT_REPLIES.

    A queued item may be an AgentResult, an exception to raise, or a callable
    taking the context list. Every call is recorded as (phase, [ref names]).
    """

    def __init__(self, script: dict | None = None):
        self.script = {phase: list(items) for phase, items in (script or {}).items()}
        self.calls: list[tuple[str, list[str]]] = []

    def run(self, phase, context):
        self.calls.append((phase, [ref.name for ref in context]))
        queue = self.script.get(phase)
        item = queue.pop(0) if queue else DEFAULT_REPLIES[phase]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(context)
        return item

    def phases(self) -> list[str]:
        return [phase for phase, _ in self.calls]

    def count(self, phase: str) -> int:
        return self.phases().count(phase)


class ScriptedChecker:
    """Checker fake. Each check walks its plan of booleans; the last entry repeats."""

    def __init__(self, lint=(True,), type_check=(True,), tests=(True,)):
        self.plans = {"lint": list(lint), "type_check": list(type_check), "tests": list(tests)}
        self.calls: list[str] = []

    def _next(self, check: str) -> CheckResult:
        self.calls.append(check)
        plan = self.plans[check]
        item = plan.pop(0) if len(plan) > 1 else plan[0]
        if isinstance(item, Exception):
            raise item
        return CheckResult(check=check, passed=item, report="" if item else f"{check} failed")

    def run_lint(self):
        return self._next("lint")

    def run_type_check(self):
        return self._next("type_check")

    def run_tests(self):
        return self._next("tests")


class RecordingVCS:
    """VCS fake that records commits instead of making them."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.commits: list[tuple[list[str], str]] = []

    def commit(self, files, message):
        if self.fail:
            raise VCSError("git commit failed: simulated")
        self.commits.append((list(files), message))
        return f"{len(self.commits):040x}"


def write_env(root: Path, **values) -> None:
    lines = ["USE_PREFECT=false", "NOTIFY=false"]
    lines += [f"{key}={value}" for key, value in values.items()]
    (root / "issueflow.env").write_text("\n".join(lines) + "\n")


@pytest.fixture
def workspace(tmp_path):
    """A workspace root with issueflow.env and the default layout."""
    write_env(tmp_path)
    return tmp_path


@pytest.fixture
def config(workspace):
    return load_config(workspace)


@pytest.fixture
def store(config):
    return ArtifactStore(config.issues_dir, config.archive_dir)


@pytest.fixture
def make_issue(store):
    """Create an issue, optionally with a status and artifacts already on disk."""

    def _make(issue_id="bug-off-by-one", kind=IssueKind.BUG, title="Off by one in calc",
              status=IssueStatus.OPEN, artifacts=(), body="Index is one too high."):
        store.write(issue_id, "problem", render_problem(title, kind, body, status=status))
        for name in artifacts:
            store.write(issue_id, name, f"# {name}\n\nExisting {name}.\n")
        return issue_id

    return _make


@pytest.fixture
def agent():
    return ScriptedAgent()


@pytest.fixture
def checker():
    return ScriptedChecker()


@pytest.fixture
def vcs():
    return RecordingVCS()


@pytest.fixture
def orchestrator(config, store, agent, checker, vcs):
    return WorkflowOrchestrator(config, store, Collaborators(agent=agent, checker=checker, vcs=vcs))


@pytest.fixture
def make_ctx(config, store):
    """Build a RunContext around scripted collaborators."""

    def _make(issue_id="bug-off-by-one", agent=None, checker=None, vcs=None, max_fix_attempts=None):
        collaborators = Collaborators(
            agent=agent or ScriptedAgent(),
            checker=checker or ScriptedChecker(),
            vcs=vcs,
        )
        return RunContext.create(config, store, collaborators, issue_id, max_fix_attempts)

    return _make
