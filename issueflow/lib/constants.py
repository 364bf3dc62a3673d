"""Shared constants for issueflow."""

import re

# Issue IDs are kebab-case so they are safe as directory names
ISSUE_ID_PATTERN = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')
MAX_ISSUE_ID_LEN = 64

# Artifact names in workflow order. problem.md is the only one written before validation.
ARTIFACT_NAMES = (
    "problem",
    "validation",
    "proposals",
    "review",
    "implementation",
    "testing",
    "solution",
)
ARTIFACT_SUFFIX = ".md"

# Header fields are only scanned in the first lines of an artifact
HEADER_SCAN_LINES = 20

STATE_DIR_NAME = ".issueflow"
CONFIG_FILE_NAME = "issueflow.env"
AGENTS_FILE_NAME = "agents.yaml"

DEFAULT_MAX_FIX_ATTEMPTS = 10

# CLI exit codes
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_EXHAUSTED = 3
EXIT_LOCKED = 4
