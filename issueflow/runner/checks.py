"""
Lint, type-check and test execution.

CommandChecker runs the commands configured in issueflow.env inside the
repository. An empty command means the check is not set up for this
workspace and is reported as passed.
"""

import logging
import shlex
import subprocess
import time
from pathlib import Path

from issueflow.lib.check_parser import format_parsed_output, parse_check_output
from issueflow.lib.config import WorkflowConfig
from issueflow.lib.errors import CheckerError
from issueflow.lib.types import CheckResult

logger = logging.getLogger(__name__)


class CommandChecker:
    """Checker that shells out to the configured commands."""

    def __init__(self, repo_path: Path, lint_command: str = "", type_check_command: str = "",
                 test_command: str = "", timeout: int = 900):
        self.repo_path = repo_path
        self.commands = {
            "lint": lint_command,
            "type_check": type_check_command,
            "tests": test_command,
        }
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: WorkflowConfig) -> "CommandChecker":
        return cls(
            repo_path=config.repo_path,
            lint_command=config.lint_command,
            type_check_command=config.type_check_command,
            test_command=config.test_command,
            timeout=config.check_timeout,
        )

    def run_lint(self) -> CheckResult:
        return self._run("lint")

    def run_type_check(self) -> CheckResult:
        return self._run("type_check")

    def run_tests(self) -> CheckResult:
        return self._run("tests")

    def _run(self, check: str) -> CheckResult:
        command = self.commands[check].strip()
        if not command:
            return CheckResult(check=check, passed=True, report="skipped: no command configured")

        cmd = shlex.split(command)
        logger.info(f"Running {check}: {command}")
        start = time.time()

        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.repo_path),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise CheckerError(f"{check} timed out after {self.timeout}s") from e
        except FileNotFoundError as e:
            raise CheckerError(f"{check} command not found: {cmd[0]}") from e

        duration = time.time() - start
        logger.info(f"{check} exited {result.returncode} ({duration:.1f}s)")

        if result.returncode == 0:
            return CheckResult(check=check, passed=True, report=f"$ {command}\nexit 0")

        parsed = parse_check_output(check, result.stdout, result.stderr)
        report = (
            f"$ {command}\nexit {result.returncode}\n\n"
            f"{format_parsed_output(parsed)}\n"
        )
        return CheckResult(check=check, passed=False, report=report)
