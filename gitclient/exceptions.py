"""
Exception classes for the git client.

Both backends translate their native failures (exit codes on one side,
dulwich exceptions on the other) into this hierarchy before control returns
to the caller.
"""

from typing import Optional, Sequence


class GitClientError(Exception):
    """Base exception for all git client errors."""

    pass


class InvalidArgumentError(GitClientError, ValueError):
    """Raised when an operation receives a malformed identifier."""

    def __init__(self, argument: str, value: object = None, reason: str = ""):
        self.argument = argument
        self.value = value
        detail = reason or "must be a non-empty string"
        super().__init__(f"Invalid {argument} {value!r}: {detail}")


class UnsupportedOperationError(GitClientError, NotImplementedError):
    """Raised when the selected backend has no equivalent for an operation."""

    def __init__(self, operation: str, backend: str):
        self.operation = operation
        self.backend = backend
        super().__init__(f"{operation} is not supported by the {backend} backend")


class OperationFailedError(GitClientError):
    """Raised when git exits non-zero or the library backend fails internally."""

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        output: Optional[str] = None,
        status: Optional[int] = None,
    ):
        self.command = command
        self.output = output
        self.status = status
        super().__init__(message)

    @classmethod
    def from_command(
        cls, command: str, status: int, output: str, error: str = ""
    ) -> "OperationFailedError":
        """Build the error for a failed command.

        The message carries everything the command printed so a failure can be
        diagnosed without re-running it. When nothing was printed the command
        line itself is used instead.
        """
        captured = "\n".join(part for part in (output, error) if part and part.strip())
        if not captured:
            captured = command
        return cls(
            f"Command \"{command}\" returned status code {status}:\n{captured}",
            command=command,
            output=captured,
            status=status,
        )


class ReferenceIntegrityError(OperationFailedError):
    """Raised when a concrete reference name matches several distinct objects."""

    def __init__(self, pattern: str, candidates: Sequence[str]):
        self.pattern = pattern
        self.candidates = list(candidates)
        super().__init__(
            f"Reference '{pattern}' unexpectedly matched {len(self.candidates)} "
            f"distinct objects: {', '.join(self.candidates)}"
        )


class ReferenceNotFoundError(GitClientError):
    """Raised when no reference matches a resolution query."""

    def __init__(self, pattern: str, location: str = ""):
        self.pattern = pattern
        self.location = location
        where = f" in {location}" if location else ""
        super().__init__(f"No reference matching '{pattern}' found{where}")


class AmbiguousReferenceError(GitClientError):
    """Raised when a single-result query matches several distinct object ids."""

    def __init__(self, pattern: str, candidates: Sequence[str]):
        self.pattern = pattern
        self.candidates = list(candidates)
        super().__init__(
            f"Reference '{pattern}' is ambiguous (matches {len(self.candidates)} "
            f"references: {', '.join(self.candidates)})"
        )


class GitTimeoutError(GitClientError):
    """Raised after a git process was killed for exceeding its deadline."""

    def __init__(self, command: str, timeout: int, output: str = ""):
        self.command = command
        self.timeout = timeout
        self.output = output
        message = f"Command \"{command}\" timed out after {timeout} seconds"
        if output and output.strip():
            message += f":\n{output}"
        super().__init__(message)
