"""
Parse lint, type-check and test output into structured failure information.

Supports:
- pytest output (FAILED lines, assertion details, collection errors)
- ruff / flake8 style lint output (path:line:col: CODE message)
- mypy / pyright style type-check output (path:line: error: message)

The formatted result goes into the check report handed to the Agent.
"""

import re
from dataclasses import dataclass, field


@dataclass
class FailureInfo:
    """A single test, lint or type failure."""
    name: str  # Test name, rule code or file
    file: str | None = None
    line: int | None = None
    message: str = ""
    failure_type: str = "test"  # "test", "collection", "lint", "type"


@dataclass
class ParsedCheckOutput:
    """Structured check output."""
    failures: list[FailureInfo] = field(default_factory=list)
    summary: str = ""  # One-line summary
    raw_output: str = ""  # Original output (truncated)

    def is_empty(self) -> bool:
        return len(self.failures) == 0


def parse_check_output(check: str, stdout: str, stderr: str) -> ParsedCheckOutput:
    """
    Parse output of one check and extract structured failure info.

    Uses the parser matching the check, falls back to raw output.
    """
    combined = f"{stdout}\n{stderr}"

    parser = {
        "lint": _parse_lint,
        "type_check": _parse_type_check,
        "tests": _parse_pytest,
    }.get(check)

    if parser is not None:
        result = parser(combined)
        if not result.is_empty():
            return result

    return ParsedCheckOutput(
        raw_output=_truncate(combined, 2000),
        summary=f"{check} failed (unparsed output)",
    )


def _parse_pytest(combined: str) -> ParsedCheckOutput:
    failures = []

    # FAILED tests/test_x.py::test_name - message
    failed_pattern = re.compile(
        r'^FAILED\s+([^:\s]+)::(\S+)(?:\s+-\s+(.+))?$',
        re.MULTILINE
    )

    # Last traceback location per file is usually the assertion line
    location_pattern = re.compile(r'^([^\s:]+\.py):(\d+):', re.MULTILINE)
    file_to_line: dict[str, int] = {}
    for match in location_pattern.finditer(combined):
        file_to_line[match.group(1)] = int(match.group(2))

    # E   AssertionError: message / E   assert x == y
    assertion_pattern = re.compile(r'^E\s+(?:AssertionError:\s*)?(.+)$', re.MULTILINE)
    assertion_messages = [m.group(1).strip() for m in assertion_pattern.finditer(combined)]

    for match in failed_pattern.finditer(combined):
        filepath, test_name, message = match.groups()

        if not message and assertion_messages:
            message = assertion_messages.pop(0)

        failures.append(FailureInfo(
            name=test_name,
            file=filepath,
            line=file_to_line.get(filepath),
            message=message or "",
            failure_type="test",
        ))

    if not failures and ("ERROR collecting" in combined or "ModuleNotFoundError" in combined):
        import_error_match = re.search(
            r"ModuleNotFoundError: No module named ['\"]([^'\"]+)['\"]",
            combined
        )
        msg = f"Missing module: {import_error_match.group(1)}" if import_error_match else "Import error"
        failures.append(FailureInfo(name="collection", message=msg, failure_type="collection"))

    if not failures:
        return ParsedCheckOutput()

    return ParsedCheckOutput(
        failures=failures,
        summary=f"{len(failures)} test(s) failed",
        raw_output=_truncate(combined, 1000),
    )


def _parse_lint(combined: str) -> ParsedCheckOutput:
    # src/x.py:12:5: F401 `os` imported but unused
    pattern = re.compile(r'^([^\s:]+\.py):(\d+):(\d+):\s*([A-Z]+\d+)\s+(.+)$', re.MULTILINE)

    failures = [
        FailureInfo(
            name=match.group(4),
            file=match.group(1),
            line=int(match.group(2)),
            message=match.group(5).strip(),
            failure_type="lint",
        )
        for match in pattern.finditer(combined)
    ]

    if not failures:
        return ParsedCheckOutput()

    return ParsedCheckOutput(
        failures=failures,
        summary=f"{len(failures)} lint error(s)",
        raw_output=_truncate(combined, 1000),
    )


def _parse_type_check(combined: str) -> ParsedCheckOutput:
    # src/x.py:12: error: Incompatible return value type  [return-value]
    pattern = re.compile(r'^([^\s:]+\.py):(\d+)(?::\d+)?:\s*error:\s*(.+)$', re.MULTILINE)

    # Identical errors are reported once per import path by some checkers
    seen: set[tuple[str, int, str]] = set()
    failures = []
    for match in pattern.finditer(combined):
        filepath, line, message = match.group(1), int(match.group(2)), match.group(3).strip()
        key = (filepath, line, message)
        if key in seen:
            continue
        seen.add(key)
        failures.append(FailureInfo(
            name=filepath, file=filepath, line=line, message=message, failure_type="type"
        ))

    if not failures:
        return ParsedCheckOutput()

    return ParsedCheckOutput(
        failures=failures,
        summary=f"{len(failures)} type error(s)",
        raw_output=_truncate(combined, 1000),
    )


def format_parsed_output(parsed: ParsedCheckOutput) -> str:
    """
    Format parsed check output for LLM consumption.

    Returns markdown-formatted string with structured failure info.
    """
    if parsed.is_empty():
        if parsed.raw_output:
            return f"```\n{parsed.raw_output}\n```"
        return "No check output available."

    parts = [f"**{parsed.summary}**\n"]

    located = [f for f in parsed.failures if f.failure_type in ("lint", "type")]
    collection = [f for f in parsed.failures if f.failure_type == "collection"]
    tests = [f for f in parsed.failures if f.failure_type == "test"]

    if located:
        parts.append("\n**Errors:**")
        for err in located[:10]:
            loc = f"{err.file}:{err.line}" if err.file and err.line else err.name
            code = f" {err.name}" if err.failure_type == "lint" else ""
            parts.append(f"- `{loc}`{code}: {err.message}")
        if len(located) > 10:
            parts.append(f"- ... and {len(located) - 10} more")

    if collection:
        parts.append("\n**Collection failed:**")
        for err in collection:
            parts.append(f"- {err.message}")

    if tests:
        parts.append("\n**Failed tests:**")
        for err in tests[:10]:
            loc = f"{err.file}:{err.line}" if err.file and err.line else ""
            parts.append(f"- `{err.name}` at `{loc}`" if loc else f"- `{err.name}`")
            if err.message:
                msg = err.message[:150] + "..." if len(err.message) > 150 else err.message
                parts.append(f"  {msg}")
        if len(tests) > 10:
            parts.append(f"- ... and {len(tests) - 10} more")

    if parsed.raw_output:
        parts.append("\n**Raw output (truncated):**")
        parts.append(f"```\n{parsed.raw_output}\n```")

    return "\n".join(parts)


def _truncate(s: str, max_len: int) -> str:
    """Truncate string, keeping the end (most relevant for errors)."""
    if len(s) <= max_len:
        return s.strip()
    return "...(truncated)\n" + s[-max_len:].strip()
