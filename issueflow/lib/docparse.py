"""
Markdown helpers for the few fields the workflow reads out of artifacts.

Artifacts are free-form markdown. The orchestrator only looks at:
- header lines near the top ("**Status**: OPEN", "**Type**: BUG", ...)
- a "## Validation Tests" list in validation.md
- a "## Refactoring Opportunities" list in testing.md
- "convert: <test>" / "delete: <test>" lines from test finalization
"""

import re

from .constants import HEADER_SCAN_LINES
from .types import RefactoringOpportunity, ValidationTest

PRIORITIES = ("HIGH", "MEDIUM", "LOW")

_SECTION_PATTERN = re.compile(r'^(#{1,6})\s+(.+?)\s*#*\s*$')

# - [structural] tests/test_x.py::test_y
_VALIDATION_TEST_PATTERN = re.compile(
    r'^\s*[-*]\s+(?:\[(?P<tag>[A-Za-z_ -]+)\]\s+)?`?(?P<name>[^`\s]+)`?'
)

# - [HIGH] Extract helper: detail
_REFACTORING_PATTERN = re.compile(
    r'^\s*[-*]\s+\[(?P<priority>HIGH|MEDIUM|LOW)\]\s+(?P<title>[^:]+?)\s*(?::\s*(?P<detail>.*))?$',
    re.IGNORECASE,
)

# convert: tests/test_x.py::test_y
_DISPOSITION_PATTERN = re.compile(
    r'^\s*(?:[-*]\s+)?(?P<action>convert|convert(?:ed)|delete|deleted)\s*:\s*`?(?P<name>[^`\s]+)`?',
    re.IGNORECASE,
)


def _header_pattern(field: str) -> re.Pattern:
    # Accepts "**Status**: X", "**Status:** X", "Status: X" and "- **Status**: X"
    name = re.escape(field)
    return re.compile(
        rf'^\s*(?:[-*]\s+)?\**{name}\**\s*:\s*\**\s*(?P<value>[^*\n]*?)\s*\**\s*$',
        re.IGNORECASE,
    )


def header_value(content: str, field: str) -> str | None:
    """Return the value of a header line near the top of a document, or None."""
    pattern = _header_pattern(field)
    for line in content.splitlines()[:HEADER_SCAN_LINES]:
        match = pattern.match(line)
        if match and match.group("value"):
            return match.group("value").strip()
    return None


def replace_header(content: str, field: str, value: str) -> str | None:
    """
    Rewrite the first header line for field, keeping the rest untouched.

    Returns None if the header is not present.
    """
    pattern = _header_pattern(field)
    lines = content.splitlines(keepends=True)
    for i, line in enumerate(lines[:HEADER_SCAN_LINES]):
        if pattern.match(line.rstrip("\n")):
            ending = "\n" if line.endswith("\n") else ""
            lines[i] = f"**{field}**: {value}{ending}"
            return "".join(lines)
    return None


def section(content: str, title: str) -> str | None:
    """Return the body of the first section with the given heading, or None."""
    lines = content.splitlines()
    start = None
    level = 0
    for i, line in enumerate(lines):
        match = _SECTION_PATTERN.match(line)
        if not match:
            continue
        if start is None:
            if match.group(2).strip().lower() == title.lower():
                start = i + 1
                level = len(match.group(1))
        elif len(match.group(1)) <= level:
            return "\n".join(lines[start:i])
    if start is None:
        return None
    return "\n".join(lines[start:])


def parse_validation_tests(content: str) -> list[ValidationTest]:
    """Parse the "Validation Tests" section of validation.md."""
    body = section(content, "Validation Tests")
    if body is None:
        return []

    tests = []
    for line in body.splitlines():
        match = _VALIDATION_TEST_PATTERN.match(line)
        if not match or match.group("name").lower() in ("none", "n/a"):
            continue
        tag = (match.group("tag") or "").strip().lower()
        tests.append(ValidationTest(name=match.group("name"), structural=tag == "structural"))
    return tests


def parse_refactorings(content: str) -> list[RefactoringOpportunity]:
    """
    Parse refactoring opportunities.

    Restricted to the "Refactoring Opportunities" section when the document
    has one, otherwise every matching list line counts.
    """
    body = section(content, "Refactoring Opportunities")
    if body is None:
        body = content

    entries = []
    for line in body.splitlines():
        match = _REFACTORING_PATTERN.match(line)
        if match:
            entries.append(RefactoringOpportunity(
                priority=match.group("priority").upper(),
                title=match.group("title").strip(),
                detail=(match.group("detail") or "").strip(),
            ))
    return entries


def parse_dispositions(content: str) -> dict[str, str]:
    """Map test name -> "convert" or "delete" from finalization output."""
    dispositions = {}
    for line in content.splitlines():
        match = _DISPOSITION_PATTERN.match(line)
        if match:
            action = match.group("action").lower()
            dispositions[match.group("name")] = "convert" if action.startswith("convert") else "delete"
    return dispositions


def slugify(text: str, max_len: int = 40) -> str:
    """Kebab-case slug for issue ids."""
    slug = re.sub(r'[^a-z0-9]+', '-', text.lower()).strip('-')
    slug = slug[:max_len].rstrip('-')
    return slug or "item"


# - `refactor-extract-helper` (HIGH: Extract helper)
_FOLLOWUP_ID_PATTERN = re.compile(r'^\s*[-*]\s+`?(?P<id>[a-z0-9]+(?:-[a-z0-9]+)*)`?(?:\s|$)')


def parse_followup_ids(content: str) -> list[str]:
    """Issue ids listed under "Follow-up Issues" in solution.md."""
    body = section(content, "Follow-up Issues")
    if body is None:
        return []

    ids = []
    for line in body.splitlines():
        match = _FOLLOWUP_ID_PATTERN.match(line)
        if match and match.group("id") not in ("none", "n-a"):
            ids.append(match.group("id"))
    return ids
