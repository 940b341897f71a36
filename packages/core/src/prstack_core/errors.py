"""Classified failures raised by prstack_core.

The CLI boundary maps each class to a user-facing outcome, so components
raise the most specific class they can and never wrap them in a generic
Exception.
"""

from __future__ import annotations


class PRStackError(Exception):
    """Base class for every classified prstack failure."""


class APIError(PRStackError):
    """A non-retryable forge failure (4xx other than rate limiting, malformed data)."""

    def __init__(self, operation: str, status: int | None = None, message: str = ""):
        self.operation = operation
        self.status = status
        self.message = message
        detail = f" (HTTP {status})" if status else ""
        super().__init__(f"{operation} failed{detail}: {message}" if message else f"{operation} failed{detail}")


class MaxRetriesExceededError(PRStackError):
    """A retryable failure that kept failing until the retry budget ran out."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException | None = None):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation}: max retries exceeded after {attempts} attempts: {last_error}")


class CircuitOpenError(PRStackError):
    """Raised locally, without touching the network, while the breaker is open."""

    def __init__(self, operation: str = ""):
        self.operation = operation
        target = f" ({operation})" if operation else ""
        super().__init__(f"GitHub API temporarily unavailable{target}: circuit breaker is open")


class OperationCancelled(PRStackError):
    """The user (or a caller) cancelled the operation. Not a failure."""


class EditorCancelled(OperationCancelled):
    """The editor exited without a usable document."""


class NoEditorError(PRStackError):
    """No interactive editor could be found."""


class NoSavedTemplateError(PRStackError):
    """--continue was requested but no saved document exists for this branch."""


class TemplateValidationError(PRStackError):
    """The edited document is missing required fields.

    ``saved_path`` points at the persisted document so ``--continue`` can
    reopen it instead of regenerating from scratch. ``context`` is the
    StackingContext the document was validated against, if any.
    """

    def __init__(self, errors: list[str], saved_path: str | None = None, context=None):
        self.errors = list(errors)
        self.saved_path = saved_path
        self.context = context
        super().__init__("; ".join(self.errors))


class DetectionError(PRStackError):
    """Ancestry or the default branch could not be resolved."""


class GitError(PRStackError):
    """A local git command failed."""

    def __init__(self, command: list[str], returncode: int, stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr.strip()
        super().__init__(f"git {' '.join(command)} exited with {returncode}: {self.stderr}")
