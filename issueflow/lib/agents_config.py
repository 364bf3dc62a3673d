"""
Agent command configuration.

Loads agents.yaml to determine which CLI command runs the Agent for each
phase. If no config file exists, returns the defaults below.

PHASE COMMAND TEMPLATES
=======================

Each agent phase maps to a CLI command template. Templates support variable
substitution using {variable_name} syntax. The caller provides a context dict
with values.

Variable Handling:
- {prompt}: The prompt text. If present in the template, passed as a CLI arg.
  If absent, the prompt is passed via stdin (for multi-line or special
  character handling).
- {worktree}: Path to the repository where code changes happen.

agents.yaml example:

    phases:
      implement: codex exec --dangerously-bypass-approvals-and-sandbox -C {worktree} {prompt}
      review: claude -p --output-format json
"""

import logging
import re
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .constants import AGENTS_FILE_NAME

logger = logging.getLogger(__name__)


# Ordered by workflow sequence. Every command must print a JSON object
# {"outcome": ..., "content": ...}, optionally inside the CLI's own envelope.
DEFAULT_PHASE_COMMANDS = {
    # ─────────────────────────────────────────────────────────────────────────
    # ANALYSIS
    # Read-only phases: the agent reads the repo and writes prose.
    # ─────────────────────────────────────────────────────────────────────────
    "validate": "claude -p --output-format json",
    # problem.md -> validation report, outcome confirmed|rejected

    "propose": "claude -p --output-format json",
    # problem + validation -> candidate solutions

    "review": "claude -p --output-format json",
    # proposals -> chosen approach

    # ─────────────────────────────────────────────────────────────────────────
    # CHANGE
    # These phases edit files in the worktree.
    # ─────────────────────────────────────────────────────────────────────────
    "implement": "claude -p --output-format json --permission-mode acceptEdits --add-dir {worktree}",
    # review -> code changes + implementation notes

    "triage": "claude -p --output-format json",
    # failing check report -> outcome test|implementation

    "fix": "claude -p --output-format json --permission-mode acceptEdits --add-dir {worktree}",
    # failing check report + classification -> patch

    "finalize_tests": "claude -p --output-format json --permission-mode acceptEdits --add-dir {worktree}",
    # structural validation tests -> convert:/delete: lines

    # ─────────────────────────────────────────────────────────────────────────
    # WRAP-UP
    # ─────────────────────────────────────────────────────────────────────────
    "test_report": "claude -p --output-format json",
    # green suite -> refactoring opportunities

    "document": "claude -p --output-format json",
    # full trail -> solution body
}

# Phases that require specific variables in context (beyond prompt)
PHASE_REQUIRED_VARIABLES = {
    "implement": ["worktree"],
    "fix": ["worktree"],
    "finalize_tests": ["worktree"],
}


@dataclass
class AgentsConfig:
    """Agent configuration from agents.yaml."""
    phases: dict[str, str] = field(default_factory=lambda: DEFAULT_PHASE_COMMANDS.copy())


def load_agents_config(root: Optional[Path]) -> AgentsConfig:
    """Load agents.yaml and return AgentsConfig.

    If root is None or the file doesn't exist, returns defaults.
    """
    if root is None:
        return AgentsConfig()

    config_path = root / AGENTS_FILE_NAME
    if not config_path.exists():
        return AgentsConfig()

    try:
        data = yaml.safe_load(config_path.read_text())
        phases = DEFAULT_PHASE_COMMANDS.copy()
        if data and "phases" in data:
            phases.update({str(k): str(v) for k, v in data["phases"].items()})
        return AgentsConfig(phases=phases)
    except (yaml.YAMLError, AttributeError) as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return AgentsConfig()


@dataclass
class PhaseCommand:
    """Result of building a phase command."""
    cmd: list[str]  # Command ready for subprocess
    prompt_via_stdin: bool  # True if prompt should be passed via stdin

    def get_stdin_input(self, prompt: str) -> str | None:
        """Return prompt if it should be passed via stdin, else None."""
        return prompt if self.prompt_via_stdin else None


def get_phase_command(
    config: AgentsConfig,
    phase: str,
    context: dict[str, str] | None = None,
) -> PhaseCommand:
    """Build the command list for a phase with variable substitution.

    Args:
        config: AgentsConfig instance
        phase: Agent phase name (e.g., "validate", "fix")
        context: Variables for substitution (e.g., {"worktree": "/repo", "prompt": "..."})

    Returns:
        PhaseCommand with cmd list and prompt_via_stdin flag

    Raises:
        ValueError: If phase is unknown or required variables are missing from context.

    Example:
        >>> config = AgentsConfig(phases={"fix": "agent -C {worktree} {prompt}"})
        >>> get_phase_command(config, "fix", {"worktree": "/repo", "prompt": "do it"}).cmd
        ['agent', '-C', '/repo', 'do it']
    """
    if phase not in config.phases:
        raise ValueError(f"Unknown phase: {phase}")

    required_vars = PHASE_REQUIRED_VARIABLES.get(phase, [])
    if required_vars and "{worktree}" in config.phases[phase]:
        context_keys = set(context.keys()) if context else set()
        missing = [v for v in required_vars if v not in context_keys]
        if missing:
            raise ValueError(
                f"Phase '{phase}' requires variables {required_vars} in context, "
                f"but missing: {missing}"
            )

    cmd_template = config.phases[phase]
    prompt_via_stdin = "{prompt}" not in cmd_template

    # Swap the prompt out before shlex parsing to avoid quote issues
    prompt_value = None
    if context and "prompt" in context:
        prompt_value = context["prompt"]
        cmd_template = cmd_template.replace("{prompt}", "__PROMPT_PLACEHOLDER__")

    if context:
        for key, value in context.items():
            if key != "prompt":
                cmd_template = cmd_template.replace(f"{{{key}}}", value)

    remaining_vars = re.findall(r'\{(\w+)\}', cmd_template)
    if remaining_vars:
        raise ValueError(f"Phase '{phase}' has unsubstituted variables: {remaining_vars}")

    cmd = shlex.split(cmd_template)

    if prompt_value is not None:
        cmd = [prompt_value if arg == "__PROMPT_PLACEHOLDER__" else arg for arg in cmd]

    return PhaseCommand(cmd=cmd, prompt_via_stdin=prompt_via_stdin)


def get_phase_binary(config: AgentsConfig, phase: str) -> str:
    """Get the binary name for a phase (first element of command)."""
    if phase not in config.phases:
        raise ValueError(f"Unknown phase: {phase}")

    parts = shlex.split(config.phases[phase])
    return parts[0] if parts else ""


@dataclass
class BinaryCheckResult:
    """Result of checking phase binaries."""
    ok: bool
    missing_binary: str | None = None
    phases_affected: list[str] = field(default_factory=list)
    error_message: str | None = None


def validate_phase_binaries(config: AgentsConfig, phases: list[str]) -> BinaryCheckResult:
    """Check that the binaries for the given phases are on PATH."""
    binary_to_phases: dict[str, list[str]] = {}
    for phase in phases:
        if phase not in config.phases:
            continue
        binary_to_phases.setdefault(get_phase_binary(config, phase), []).append(phase)

    for binary, affected in binary_to_phases.items():
        if shutil.which(binary) is None:
            error_lines = [
                f"Required tool '{binary}' is not installed.",
                "",
                f"Phases that need it: {', '.join(affected)}",
                "",
                "Install it, or create agents.yaml in the workspace to use a different tool:",
                "",
                "     phases:",
            ]
            for phase in affected:
                error_lines.append(f"       {phase}: claude -p --output-format json")

            return BinaryCheckResult(
                ok=False,
                missing_binary=binary,
                phases_affected=affected,
                error_message="\n".join(error_lines),
            )

    return BinaryCheckResult(ok=True)
