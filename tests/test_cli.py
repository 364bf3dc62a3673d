"""Tests for the issueflow CLI and command modules."""

from types import SimpleNamespace

import pytest

from conftest import RecordingVCS, ScriptedAgent, ScriptedChecker, write_env
from issueflow.cli import main
from issueflow.commands.run import cmd_run, cmd_run_all, exit_code_for
from issueflow.lib.constants import EXIT_EXHAUSTED, EXIT_FAILED, EXIT_LOCKED, EXIT_OK, EXIT_USAGE
from issueflow.lib.errors import AgentError, NotFound, PreconditionFailed, TestFixExhausted
from issueflow.lib.issue import load_issue
from issueflow.lib.types import AgentResult, Collaborators
from issueflow.runner.impl.state_files import write_exhausted_marker, write_pending_commit
from issueflow.runner.locking import LockTimeout, issue_lock
from issueflow.workflow.state_machine import IssueStatus

ISSUE = "bug-off-by-one"


def cli(workspace, *args):
    return main(["--root", str(workspace), *args])


def run_args(issue_id=ISSUE, force=False, max_fix_attempts=None):
    return SimpleNamespace(id=issue_id, force=force, max_fix_attempts=max_fix_attempts, no_prefect=True)


class TestNew:
    """Tests for `issueflow new`."""

    def test_creates_open_issue(self, workspace, store, capsys):
        code = cli(workspace, "new", ISSUE, "--type", "bug", "--title", "Off by one", "--body", "Index too high.")

        assert code == EXIT_OK
        issue = load_issue(store, ISSUE)
        assert issue.status == IssueStatus.OPEN
        assert issue.title == "Off by one"
        assert "Next: issueflow run bug-off-by-one" in capsys.readouterr().out

    def test_body_from_file(self, workspace, store, tmp_path):
        body = tmp_path / "report.txt"
        body.write_text("Steps to reproduce.\n")
        cli(workspace, "new", "feat-export", "-t", "FEATURE", "--body-file", str(body))
        content, _ = store.read("feat-export", "problem")
        assert "Steps to reproduce." in content

    def test_invalid_id(self, workspace, capsys):
        assert cli(workspace, "new", "Bad_ID", "--type", "bug") == EXIT_USAGE
        assert "Invalid issue id" in capsys.readouterr().out

    def test_unknown_type(self, workspace):
        assert cli(workspace, "new", ISSUE, "--type", "chore") == EXIT_USAGE

    def test_duplicate(self, workspace, make_issue, capsys):
        make_issue()
        assert cli(workspace, "new", ISSUE, "--type", "bug") == EXIT_USAGE
        assert "already exists" in capsys.readouterr().out

    def test_duplicate_of_archived(self, workspace, store, make_issue):
        make_issue(status=IssueStatus.RESOLVED)
        store.move(ISSUE, store.active_root, store.archive_root)
        assert cli(workspace, "new", ISSUE, "--type", "bug") == EXIT_USAGE


class TestStatus:
    """Tests for `issueflow status`."""

    def test_shows_status_and_next_phase(self, workspace, make_issue, capsys):
        make_issue(status=IssueStatus.CONFIRMED, artifacts=("validation",))
        assert cli(workspace, "status", ISSUE) == EXIT_OK

        out = capsys.readouterr().out
        assert "Status:    CONFIRMED" in out
        assert "[x] validation.md" in out
        assert "[ ] proposals.md" in out
        assert "Next phase: propose" in out

    def test_exhausted_hint(self, workspace, config, make_issue, capsys):
        make_issue(status=IssueStatus.IMPLEMENTED, artifacts=("implementation",))
        write_exhausted_marker(config.state_dir, ISSUE, 10, "exit 1")
        cli(workspace, "status", ISSUE)
        assert "--force" in capsys.readouterr().out

    def test_archived(self, workspace, store, make_issue, capsys):
        make_issue(status=IssueStatus.RESOLVED)
        store.move(ISSUE, store.active_root, store.archive_root)
        cli(workspace, "status", ISSUE)
        out = capsys.readouterr().out
        assert "(archived)" in out
        assert "Next phase: none (done)" in out

    def test_unknown_issue(self, workspace):
        assert cli(workspace, "status", "missing") == EXIT_USAGE


class TestListOpen:
    """Tests for `issueflow list-open`."""

    def test_lists_active_issues_only(self, workspace, store, make_issue, capsys):
        make_issue()
        make_issue("feat-export", title="Export to CSV", status=IssueStatus.CONFIRMED)
        make_issue("bug-done", status=IssueStatus.RESOLVED)
        store.move("bug-done", store.active_root, store.archive_root)

        assert cli(workspace, "list-open") == EXIT_OK
        out = capsys.readouterr().out
        assert ISSUE in out and "feat-export" in out
        assert "bug-done" not in out
        assert "2 issue(s)" in out

    def test_status_filter(self, workspace, make_issue, capsys):
        make_issue()
        make_issue("feat-export", status=IssueStatus.CONFIRMED)
        cli(workspace, "list-open", "--status", "confirmed")
        out = capsys.readouterr().out
        assert "feat-export" in out and ISSUE not in out

    def test_malformed_issue_warned(self, workspace, store, capsys):
        store.write("bug-broken", "problem", "# Broken\n")
        cli(workspace, "list-open")
        out = capsys.readouterr().out
        assert "[WARN] Skipping bug-broken" in out
        assert "Open issues: none" in out


class TestArchive:
    """Tests for `issueflow archive`."""

    def test_archives_resolved(self, workspace, store, make_issue):
        make_issue(status=IssueStatus.RESOLVED, artifacts=("solution",))
        assert cli(workspace, "archive", ISSUE) == EXIT_OK
        assert store.locate(ISSUE) == store.archive_root

    def test_refuses_open(self, workspace, store, make_issue, capsys):
        make_issue()
        assert cli(workspace, "archive", ISSUE) == EXIT_USAGE
        assert store.locate(ISSUE) == store.active_root

    def test_already_archived(self, workspace, store, make_issue, capsys):
        make_issue(status=IssueStatus.RESOLVED)
        store.move(ISSUE, store.active_root, store.archive_root)
        assert cli(workspace, "archive", ISSUE) == EXIT_OK
        assert "already archived" in capsys.readouterr().out

    def test_locked(self, workspace, config, make_issue):
        write_env(workspace, LOCK_TIMEOUT=0)
        make_issue(status=IssueStatus.RESOLVED)
        with issue_lock(config.state_dir, ISSUE, timeout=0):
            assert cli(workspace, "archive", ISSUE) == EXIT_LOCKED

    def test_malformed_issue_reported(self, workspace, store, capsys):
        store.write(ISSUE, "problem", "# Broken\n")
        assert cli(workspace, "archive", ISSUE) == EXIT_USAGE
        assert "ERROR:" in capsys.readouterr().out
        assert store.locate(ISSUE) == store.active_root


class TestRun:
    """Tests for `issueflow run` with scripted collaborators."""

    def collaborators(self, agent=None, checker=None):
        return Collaborators(agent=agent or ScriptedAgent(), checker=checker or ScriptedChecker())

    def test_resolves(self, workspace, config, make_issue, capsys):
        make_issue()
        code = cmd_run(run_args(), workspace, config, self.collaborators())

        assert code == EXIT_OK
        out = capsys.readouterr().out
        assert "Result: resolved, archived" in out
        assert "validate   -> CONFIRMED" in out

    def test_rejected(self, workspace, config, make_issue, capsys):
        make_issue()
        agent = ScriptedAgent({"validate": [AgentResult("Not a bug.", "not_a_bug")]})
        assert cmd_run(run_args(), workspace, config, self.collaborators(agent)) == EXIT_OK
        assert "Result: rejected, archived" in capsys.readouterr().out

    def test_exhausted(self, workspace, config, make_issue, capsys):
        make_issue()
        checker = ScriptedChecker(tests=(False,))
        code = cmd_run(run_args(max_fix_attempts=1), workspace, config, self.collaborators(checker=checker))
        assert code == EXIT_EXHAUSTED
        assert f"issueflow run {ISSUE} --force" in capsys.readouterr().out

    def test_agent_failure(self, workspace, config, make_issue, capsys):
        make_issue()
        agent = ScriptedAgent({"propose": [AgentError("agent exited 1")]})
        assert cmd_run(run_args(), workspace, config, self.collaborators(agent)) == EXIT_FAILED
        assert "[bug-off-by-one/propose] agent exited 1" in capsys.readouterr().out

    def test_locked(self, workspace, config, make_issue):
        make_issue()
        config.lock_timeout = 0
        with issue_lock(config.state_dir, ISSUE, timeout=0):
            assert cmd_run(run_args(), workspace, config, self.collaborators()) == EXIT_LOCKED

    def test_nothing_to_do(self, workspace, config, store, make_issue, capsys):
        make_issue(status=IssueStatus.RESOLVED, artifacts=("solution",))
        store.move(ISSUE, store.active_root, store.archive_root)
        assert cmd_run(run_args(), workspace, config, self.collaborators()) == EXIT_OK
        assert "Nothing to do" in capsys.readouterr().out

    def test_unknown_issue(self, workspace, config):
        assert cmd_run(run_args("missing"), workspace, config, self.collaborators()) == EXIT_USAGE

    def test_missing_agent_binary(self, workspace, make_issue, capsys):
        make_issue()
        (workspace / "agents.yaml").write_text(
            "phases:\n"
            + "".join(f"  {phase}: no-such-agent-cli -p\n" for phase in (
                "validate", "propose", "review", "implement", "triage",
                "fix", "finalize_tests", "test_report", "document",
            ))
        )
        assert cli(workspace, "run", ISSUE, "--no-prefect") == EXIT_USAGE
        assert "no-such-agent-cli" in capsys.readouterr().out


class TestRunAll:
    """Tests for `issueflow run-all`."""

    def run_all(self, workspace, config, agent=None, vcs=None):
        collaborators = Collaborators(agent=agent or ScriptedAgent(), checker=ScriptedChecker(), vcs=vcs)
        args = SimpleNamespace(max_fix_attempts=None, no_prefect=True)
        return cmd_run_all(args, workspace, config, collaborators)

    def test_runs_every_issue(self, workspace, config, store, make_issue, capsys):
        make_issue()
        make_issue("feat-export", title="Export to CSV")

        assert self.run_all(workspace, config) == EXIT_OK

        assert store.list_issue_ids() == []
        out = capsys.readouterr().out
        assert "[OK]   bug-off-by-one: resolved, archived" in out
        assert "Done: 2, skipped: 0, failed: 0" in out

    def test_continues_past_a_failure(self, workspace, config, store, make_issue, capsys):
        make_issue()
        make_issue("feat-export", title="Export to CSV")
        agent = ScriptedAgent({"validate": [AgentError("agent exited 1")]})

        assert self.run_all(workspace, config, agent) == EXIT_FAILED

        assert load_issue(store, ISSUE).status == IssueStatus.OPEN
        assert store.locate("feat-export") == store.archive_root
        out = capsys.readouterr().out
        assert "[FAIL] bug-off-by-one" in out
        assert "Failed: bug-off-by-one" in out

    def test_skips_exhausted(self, workspace, config, store, make_issue, capsys):
        make_issue(status=IssueStatus.IMPLEMENTED, artifacts=("validation", "proposals", "review", "implementation"))
        make_issue("feat-export", title="Export to CSV")
        write_exhausted_marker(config.state_dir, ISSUE, 3, "tests failed")
        agent = ScriptedAgent()

        assert self.run_all(workspace, config, agent) == EXIT_OK

        assert load_issue(store, ISSUE).status == IssueStatus.IMPLEMENTED
        assert store.locate("feat-export") == store.archive_root
        assert "[SKIP] bug-off-by-one" in capsys.readouterr().out

    def test_malformed_issue_counts_as_failure(self, workspace, config, store, make_issue, capsys):
        store.write("bug-broken", "problem", "# Broken\n")
        make_issue()

        assert self.run_all(workspace, config) == EXIT_FAILED

        assert store.locate(ISSUE) == store.archive_root
        assert "[FAIL] bug-broken" in capsys.readouterr().out

    def test_finishes_an_owed_commit(self, workspace, config, store, make_issue):
        make_issue(status=IssueStatus.RESOLVED, artifacts=("solution",))
        store.move(ISSUE, store.active_root, store.archive_root)
        write_pending_commit(config.state_dir, ISSUE, ["issues/archive/bug-off-by-one"], "Resolve issue")
        vcs = RecordingVCS()

        assert self.run_all(workspace, config, vcs=vcs) == EXIT_OK
        assert vcs.commits == [(["issues/archive/bug-off-by-one"], "Resolve issue")]

    def test_no_issues(self, workspace, config, capsys):
        assert self.run_all(workspace, config) == EXIT_OK
        assert "No open issues" in capsys.readouterr().out


class TestExitCodes:
    @pytest.mark.parametrize("error, code", [
        (LockTimeout("busy"), EXIT_LOCKED),
        (TestFixExhausted("gave up"), EXIT_EXHAUSTED),
        (PreconditionFailed("missing"), EXIT_USAGE),
        (NotFound("missing"), EXIT_USAGE),
        (AgentError("bad"), EXIT_FAILED),
    ])
    def test_mapping(self, error, code):
        assert exit_code_for(error) == code


class TestMain:
    def test_bad_config_exits(self, workspace, capsys):
        (workspace / "issueflow.env").write_text("MAX_FIX_ATTEMPTS=lots\n")
        with pytest.raises(SystemExit) as exc_info:
            cli(workspace, "list-open")
        assert exc_info.value.code == EXIT_USAGE
        assert "MAX_FIX_ATTEMPTS" in capsys.readouterr().out

    def test_negative_fix_attempts_rejected(self, workspace):
        with pytest.raises(SystemExit):
            cli(workspace, "run", ISSUE, "--max-fix-attempts", "-1")

    def test_subcommand_required(self, workspace):
        with pytest.raises(SystemExit):
            main(["--root", str(workspace)])

    def test_run_all_rejects_negative_fix_attempts(self, workspace):
        with pytest.raises(SystemExit):
            cli(workspace, "run-all", "--max-fix-attempts", "-1")
