"""
Configuration loader for issueflow.

Reads issueflow.env from the workspace root. Every key is optional; the
defaults describe a workspace with issues/ and archive/ beside the env file.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from . import envparse
from .constants import CONFIG_FILE_NAME, DEFAULT_MAX_FIX_ATTEMPTS, STATE_DIR_NAME

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


class ConfigError(Exception):
    """issueflow.env is unreadable or holds an invalid value."""


@dataclass
class WorkflowConfig:
    """Workspace configuration from issueflow.env"""
    root: Path
    issues_dir: Path  # Active root
    archive_dir: Path  # Archive root
    state_dir: Path  # Locks, runs, exhaustion markers
    repo_path: Path  # Git worktree the VCS commits into
    max_fix_attempts: int = DEFAULT_MAX_FIX_ATTEMPTS
    agent_timeout: int = 600
    check_timeout: int = 900
    lock_timeout: int = 60
    lint_command: str = ""  # Empty command means the check is skipped
    type_check_command: str = ""
    test_command: str = ""
    commit_enabled: bool = True
    notify: bool = False
    use_prefect: bool = True


def _resolve(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path


def _get_int(env: dict, key: str, default: int, minimum: int = 0) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got '{raw}'") from None
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def _get_bool(env: dict, key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigError(f"{key} must be true or false, got '{raw}'")


def load_config(root: Path) -> WorkflowConfig:
    """Load issueflow.env from root and return WorkflowConfig."""
    root = root.resolve()
    try:
        env = envparse.load_env(root / CONFIG_FILE_NAME)
    except ValueError as e:
        raise ConfigError(str(e)) from None
    except OSError as e:
        raise ConfigError(f"Cannot read {root / CONFIG_FILE_NAME}: {e}") from None

    known = {
        "ISSUES_DIR", "ARCHIVE_DIR", "STATE_DIR", "REPO_PATH", "MAX_FIX_ATTEMPTS",
        "AGENT_TIMEOUT", "CHECK_TIMEOUT", "LOCK_TIMEOUT", "LINT_COMMAND",
        "TYPE_CHECK_COMMAND", "TEST_COMMAND", "COMMIT_ENABLED", "NOTIFY", "USE_PREFECT",
    }
    for key in sorted(set(env) - known):
        logger.warning(f"Ignoring unknown key {key} in {CONFIG_FILE_NAME}")

    config = WorkflowConfig(
        root=root,
        issues_dir=_resolve(root, env.get("ISSUES_DIR", "issues")),
        archive_dir=_resolve(root, env.get("ARCHIVE_DIR", "archive")),
        state_dir=_resolve(root, env.get("STATE_DIR", STATE_DIR_NAME)),
        repo_path=_resolve(root, env.get("REPO_PATH", ".")),
        max_fix_attempts=_get_int(env, "MAX_FIX_ATTEMPTS", DEFAULT_MAX_FIX_ATTEMPTS),
        agent_timeout=_get_int(env, "AGENT_TIMEOUT", 600, minimum=1),
        check_timeout=_get_int(env, "CHECK_TIMEOUT", 900, minimum=1),
        lock_timeout=_get_int(env, "LOCK_TIMEOUT", 60),
        lint_command=env.get("LINT_COMMAND", ""),
        type_check_command=env.get("TYPE_CHECK_COMMAND", ""),
        test_command=env.get("TEST_COMMAND", ""),
        commit_enabled=_get_bool(env, "COMMIT_ENABLED", True),
        notify=_get_bool(env, "NOTIFY", False),
        use_prefect=_get_bool(env, "USE_PREFECT", True),
    )

    if config.issues_dir.resolve() == config.archive_dir.resolve():
        raise ConfigError("ISSUES_DIR and ARCHIVE_DIR must differ")

    return config
