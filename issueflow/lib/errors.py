"""
Workflow error taxonomy.

Every error raised while driving an issue carries the issue id and the phase
it happened in, so the CLI can report it without extra context.
"""


class WorkflowError(Exception):
    """Base class for errors raised while driving an issue."""

    def __init__(self, message: str, issue_id: str = "", phase: str = ""):
        self.message = message
        self.issue_id = issue_id
        self.phase = phase
        super().__init__(message)

    def __str__(self):
        scope = "/".join(part for part in (self.issue_id, self.phase) if part)
        return f"[{scope}] {self.message}" if scope else self.message

    def __reduce__(self):
        # Subclasses take different constructor arguments; rebuild from attributes
        return _restore, (type(self), self.__dict__.copy())


class PreconditionFailed(WorkflowError):
    """A required artifact or status is missing before a phase. Not retriable."""

    def __init__(self, message: str, issue_id: str = "", phase: str = "",
                 missing: list[str] | None = None):
        self.missing = list(missing or [])
        super().__init__(message, issue_id, phase)


class MalformedIssue(WorkflowError):
    """The problem artifact has no parsable Status/Type header."""


class ArtifactIOError(WorkflowError):
    """Transient file-system failure. Retriable by the caller."""


class AlreadyExists(WorkflowError):
    """Attempted overwrite of an immutable artifact or duplicate archive entry."""


class NotFound(WorkflowError):
    """Issue directory or artifact is absent."""


class TestFixExhausted(WorkflowError):
    """The Test+Fix loop ran out of fix cycles. Issue stays IMPLEMENTED."""

    __test__ = False  # not a pytest test class

    def __init__(self, message: str, issue_id: str = "", phase: str = "test_fix",
                 cycles: int = 0, last_failure: str = ""):
        self.cycles = cycles
        self.last_failure = last_failure
        super().__init__(message, issue_id, phase)


class AgentError(WorkflowError):
    """The agent collaborator failed or returned unusable output."""


class CheckerError(WorkflowError):
    """A lint/type/test check could not be executed."""


class VCSError(WorkflowError):
    """Staging or committing failed."""


def _restore(cls, state: dict) -> WorkflowError:
    err = cls.__new__(cls)
    Exception.__init__(err, state.get("message", ""))
    err.__dict__.update(state)
    return err
