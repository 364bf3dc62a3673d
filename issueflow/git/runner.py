"""Runs git as a subprocess. Failures come back as a GitResult, never raised."""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

# Never block on a credential or editor prompt
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_EDITOR": "true"}


@dataclass
class GitResult:
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def error(self) -> str:
        """The most useful failure text; git prints some errors on stdout."""
        return self.stderr.strip() or self.stdout.strip() or f"exit {self.returncode}"


def run_git(args: list[str], cwd: Path, timeout: int = DEFAULT_TIMEOUT) -> GitResult:
    """Run `git -C cwd <args>` and capture its output."""
    cmd = ["git", "-C", str(cwd)] + args
    logger.debug(f"git {' '.join(args)} (in {cwd})")
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env={**os.environ, **_GIT_ENV},
        )
    except subprocess.TimeoutExpired:
        return GitResult(-1, "", f"git {args[0]} timed out after {timeout}s", timed_out=True)
    except FileNotFoundError:
        return GitResult(-1, "", "git executable not found")
    return GitResult(proc.returncode, proc.stdout, proc.stderr)
