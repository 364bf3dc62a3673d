"""
Shared data types for issueflow.

This module contains the dataclasses and collaborator protocols used across
the runner and workflow packages, kept here to avoid circular imports.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class ArtifactRef:
    """A document handed to an agent as context."""
    name: str  # Artifact name ("problem", "validation", ...) or a run file label
    path: Path


@dataclass
class AgentResult:
    """Structured result of one agent call."""
    text: str
    outcome: str = ""  # Phase-specific branching tag, e.g. "rejected" for validate


@dataclass
class CheckResult:
    """Result of one lint, type-check or test run."""
    check: str  # "lint", "type_check", "tests"
    passed: bool
    report: str = ""


@dataclass
class ValidationTest:
    """A test created during validation to prove the defect or missing capability."""
    name: str
    structural: bool = False  # Provisional marker, must not survive TESTED


@dataclass
class RefactoringOpportunity:
    """An entry from the testing artifact's refactoring list."""
    priority: str  # "HIGH", "MEDIUM", "LOW"
    title: str
    detail: str = ""


@dataclass
class AuditEntry:
    """One successful phase transition."""
    phase: str
    timestamp: str
    resulting_status: str

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "timestamp": self.timestamp,
            "resulting_status": self.resulting_status,
        }


@runtime_checkable
class Agent(Protocol):
    """Reasoning collaborator. Raises AgentError on failure."""

    def run(self, phase: str, context: list[ArtifactRef]) -> AgentResult:
        ...


@runtime_checkable
class Checker(Protocol):
    """Lint/type/test collaborator. Raises CheckerError if a check cannot run."""

    def run_lint(self) -> CheckResult:
        ...

    def run_type_check(self) -> CheckResult:
        ...

    def run_tests(self) -> CheckResult:
        ...


@runtime_checkable
class VCS(Protocol):
    """Version control collaborator. Raises VCSError on failure."""

    def commit(self, files: list[str], message: str) -> str:
        ...


@dataclass
class Collaborators:
    """The external capabilities a run drives."""
    agent: Agent
    checker: Checker
    vcs: Optional[VCS] = None  # None disables the final commit


@dataclass
class FollowUpResult:
    """Outcome of follow-up issue creation."""
    created: list[tuple[str, RefactoringOpportunity]] = field(default_factory=list)
    reused: list[tuple[str, RefactoringOpportunity]] = field(default_factory=list)
    not_filed: list[RefactoringOpportunity] = field(default_factory=list)
