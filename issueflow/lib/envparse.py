"""
Safe KEY=value parser for issueflow.env.

Values are never passed through a shell. Anything that looks like command
substitution, variable expansion or chaining is rejected outright.
"""

import re
from pathlib import Path

FORBIDDEN_PATTERNS = [
    re.compile(r'`'),
    re.compile(r'\$\('),
    re.compile(r'\$\{'),
    re.compile(r';'),
    re.compile(r'&&'),
    re.compile(r'\|'),
]

KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*$')


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_env(text: str, source: str = "<string>") -> dict[str, str]:
    """
    Parse KEY=value lines.

    Blank lines and lines starting with '#' are ignored. An optional
    leading 'export ' is accepted so the file can be sourced by hand.

    Raises:
        ValueError: on bad syntax, bad keys, or forbidden patterns
    """
    result: dict[str, str] = {}

    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith('#'):
            continue
        if line.startswith('export '):
            line = line[len('export '):].lstrip()

        key, sep, value = line.partition('=')
        if not sep:
            raise ValueError(f"{source}:{lineno}: expected KEY=value")

        key = key.strip()
        if not KEY_PATTERN.match(key):
            raise ValueError(f"{source}:{lineno}: invalid key '{key}'")

        value = _unquote(value.strip())
        if any(p.search(value) for p in FORBIDDEN_PATTERNS):
            raise ValueError(f"{source}:{lineno}: forbidden pattern in value of {key}")

        result[key] = value

    return result


def load_env(path: Path) -> dict[str, str]:
    """
    Load an env file. A missing file yields an empty dict.

    Raises:
        ValueError: if the file content is invalid
    """
    if not path.exists():
        return {}
    return parse_env(path.read_text(), source=str(path))
