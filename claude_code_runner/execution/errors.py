"""Exception hierarchy for Claude Code invocations and conversation sessions."""

from __future__ import annotations


class ClaudeCodeError(RuntimeError):
    """Base class for every error raised by the runner."""


class ClaudeCodeValidationError(ClaudeCodeError, ValueError):
    """Raised when arguments are rejected before any process is spawned."""


class ClaudeCodeConfigurationError(ClaudeCodeError):
    """Raised when the executor cannot be configured (missing CLI path or credentials)."""


class ClaudeCodeLaunchError(ClaudeCodeError):
    """Raised when the CLI executable cannot be started at all."""


class ClaudeCodeExecutionError(ClaudeCodeError):
    """Raised when the CLI started but did not complete successfully."""

    def __init__(self, message: str, *, exit_code: int | None = None, output: str = "") -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output


class ClaudeCodeTimeoutError(ClaudeCodeExecutionError, TimeoutError):
    """Raised when the CLI exceeded its time budget and was forcibly terminated."""

    def __init__(self, message: str, *, timeout: float, output: str = "") -> None:
        super().__init__(message, exit_code=None, output=output)
        self.timeout = timeout


class ExecutorShutdownError(ClaudeCodeError):
    """Raised when a ClaudeCodeExecutor is used after ``shutdown()``."""


class SessionStateError(ClaudeCodeError):
    """Raised when an operation is not allowed in the session's current state."""


class SessionNotFoundError(SessionStateError, KeyError):
    """Raised when a session id is unknown, closed, failed, or expired."""

    def __init__(self, session_id: str, reason: str = "not found") -> None:
        super().__init__(f"Session {reason}: {session_id}")
        self.session_id = session_id

    def __str__(self) -> str:
        # KeyError.__str__ would wrap the message in quotes.
        return str(self.args[0])


class SessionManagerShutdownError(SessionStateError):
    """Raised when the session manager is used after ``shutdown()``."""


class ConversationSessionError(ClaudeCodeError):
    """Raised when a conversational turn fails; the session is left FAILED."""

    def __init__(self, message: str, *, session_id: str, cause: ClaudeCodeError) -> None:
        super().__init__(message)
        self.session_id = session_id
        self.cause = cause

    @property
    def timed_out(self) -> bool:
        return isinstance(self.cause, ClaudeCodeTimeoutError)

    @property
    def exit_code(self) -> int | None:
        return getattr(self.cause, "exit_code", None)


__all__ = [
    "ClaudeCodeConfigurationError",
    "ClaudeCodeError",
    "ClaudeCodeExecutionError",
    "ClaudeCodeLaunchError",
    "ClaudeCodeTimeoutError",
    "ClaudeCodeValidationError",
    "ConversationSessionError",
    "ExecutorShutdownError",
    "SessionManagerShutdownError",
    "SessionNotFoundError",
    "SessionStateError",
]
