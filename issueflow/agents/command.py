"""
Command-line agent integration for issueflow.

Runs the CLI configured for each phase in agents.yaml, hands it the rendered
prompt, and parses the JSON reply into an AgentResult.
"""

import json
import logging
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Optional

from issueflow.lib.agents_config import AgentsConfig, get_phase_command
from issueflow.lib.errors import AgentError
from issueflow.lib.prompts import PromptError, render_prompt
from issueflow.lib.types import AgentResult, ArtifactRef
from issueflow.lib.validate import ValidationError, validate

logger = logging.getLogger(__name__)


def _strip_fence(text: str) -> str:
    """Return the body of the first ``` block, or the text unchanged."""
    if "```" not in text:
        return text

    start = text.find("```json")
    if start == -1:
        start = text.find("```")
    newline_after_open = text.find("\n", start)
    if newline_after_open == -1:
        return text
    close = text.find("\n```", newline_after_open)
    if close == -1:
        return text
    return text[newline_after_open + 1:close].strip()


def _loads(text: str):
    # Markdown in the content may itself contain fences, so try plain JSON first
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return json.loads(_strip_fence(text))


def parse_agent_output(stdout: str) -> AgentResult:
    """
    Parse an agent's stdout into an AgentResult.

    Accepts the bare object {"outcome": ..., "content": ...}, or the same
    object as a string inside the CLI's {"type": "result", "result": "..."}
    envelope, with or without a ```json fence around it.

    Raises:
        AgentError: output is not JSON or does not match the agent_result schema
    """
    try:
        data = _loads(stdout)

        # Claude CLI with --output-format json wraps the reply
        if isinstance(data, dict) and "outcome" not in data and "result" in data:
            inner = data["result"]
            if isinstance(inner, str):
                inner = _loads(inner)
            data = inner

        if not isinstance(data, dict):
            raise AgentError(f"Agent output is not a JSON object: {type(data).__name__}")

        validate(data, "agent_result")

    except json.JSONDecodeError as e:
        raise AgentError(f"Invalid JSON from agent: {e}") from e
    except ValidationError as e:
        raise AgentError(f"Schema validation failed: {e}") from e

    return AgentResult(text=data["content"], outcome=data["outcome"].strip().lower())


class CommandAgent:
    """Agent backed by an external CLI, one command template per phase."""

    def __init__(self, config: AgentsConfig, worktree: Path, timeout: int = 600,
                 log_dir: Optional[Path] = None):
        self.config = config
        self.worktree = worktree
        self.timeout = timeout
        self.log_dir = log_dir

    def run(self, phase: str, context: list[ArtifactRef]) -> AgentResult:
        """
        Run the agent for one phase.

        Raises:
            AgentError: unknown phase, timeout, non-zero exit, or unusable output
        """
        try:
            prompt = render_prompt(phase, context, worktree=str(self.worktree))
            phase_cmd = get_phase_command(
                self.config, phase, {"prompt": prompt, "worktree": str(self.worktree)}
            )
        except (PromptError, ValueError) as e:
            raise AgentError(str(e), phase=phase) from e

        logger.info(f"Running agent for {phase}: {phase_cmd.cmd[0]}")

        try:
            result = subprocess.run(
                phase_cmd.cmd,
                cwd=str(self.worktree),
                input=phase_cmd.get_stdin_input(prompt),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise AgentError(f"Agent timed out after {self.timeout}s", phase=phase) from e
        except FileNotFoundError as e:
            raise AgentError(f"Agent binary not found: {phase_cmd.cmd[0]}", phase=phase) from e

        self._write_transcript(phase, phase_cmd.cmd, result)

        if result.returncode != 0:
            raise AgentError(
                f"Agent exited {result.returncode}: {result.stderr.strip()[:500]}", phase=phase
            )

        try:
            return parse_agent_output(result.stdout)
        except AgentError as e:
            e.phase = phase
            raise

    def _write_transcript(self, phase: str, cmd: list[str], result: subprocess.CompletedProcess):
        if self.log_dir is None:
            return
        self.log_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        (self.log_dir / f"{stamp}_{phase}.log").write_text(
            f"=== COMMAND ===\n{cmd[0]} ({len(cmd) - 1} args)\n\n"
            f"=== EXIT CODE ===\n{result.returncode}\n\n"
            f"=== STDOUT ===\n{result.stdout}\n\n"
            f"=== STDERR ===\n{result.stderr}\n"
        )
