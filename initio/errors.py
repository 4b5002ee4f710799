"""
Error taxonomy for package operations.

Process-level errors are raised by the process runner and turned into
per-item outcomes by the installer. Only OperationCancelled is allowed to
abort a whole run.
"""

from __future__ import annotations


class InitioError(Exception):
    """
    Base exception for package operation errors.

    Attributes:
        message: Human-readable error message
        retryable: Whether the failed attempt may be retried
        remediation: Suggested fix for the error
    """
    retryable_default = False

    def __init__(
        self,
        message: str,
        retryable: bool | None = None,
        remediation: str | None = None,
    ):
        self.message = message
        self.retryable = self.retryable_default if retryable is None else retryable
        self.remediation = remediation
        super().__init__(message)


class ValidationError(InitioError):
    """Malformed identifier. Never retried."""


class ProcessLaunchFailure(InitioError):
    """The executable is missing or could not be started."""

    def __init__(self, executable: str, reason: str = ""):
        message = f"Could not start {executable}"
        if reason:
            message += f": {reason}"
        super().__init__(
            message,
            remediation=f"Check that {executable} is installed and on PATH",
        )
        self.executable = executable


class ProcessTimeout(InitioError):
    """The process did not exit before its deadline. Scoped to one attempt."""
    retryable_default = True

    def __init__(self, executable: str, timeout: float, stdout: str = "", stderr: str = ""):
        super().__init__(f"{executable} timed out after {timeout:g}s")
        self.executable = executable
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr


class TransientExternalFailure(InitioError):
    """Tool output matches the transient-failure keywords."""
    retryable_default = True


class TerminalExternalFailure(InitioError):
    """Non-zero exit without any transient signal."""


class OperationCancelled(InitioError):
    """User-initiated cancellation. Halts the entire run."""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


class CatalogSourceUnavailable(InitioError):
    """A catalog tier could not supply entries."""

    def __init__(self, source: str, reason: str = ""):
        message = f"Catalog source '{source}' unavailable"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.source = source
