"""Public package interface for the Claude Code runner."""

from __future__ import annotations

from importlib import metadata as _metadata

try:
    __version__ = _metadata.version("claude-code-runner")
except _metadata.PackageNotFoundError:  # pragma: no cover - fallback when not installed
    __version__ = "0.1.0"

from .core import Settings, configure_logging, get_logger, load_settings
from .execution import (
    ClaudeCodeConfigurationError,
    ClaudeCodeError,
    ClaudeCodeExecutionError,
    ClaudeCodeLaunchError,
    ClaudeCodeTimeoutError,
    ClaudeCodeValidationError,
    ConversationSessionError,
    ExecutionOptions,
    ExecutorShutdownError,
    ProcessExecutor,
    ProcessHandle,
    ProcessTimeoutGuard,
    SessionManagerShutdownError,
    SessionNotFoundError,
    SessionStateError,
    StreamingOutput,
)
from .executor import ClaudeCodeExecutor
from .sessions import (
    ConversationSession,
    ConversationSessionManager,
    SessionState,
    SessionStatistics,
)

__all__ = [
    "ClaudeCodeConfigurationError",
    "ClaudeCodeError",
    "ClaudeCodeExecutionError",
    "ClaudeCodeExecutor",
    "ClaudeCodeLaunchError",
    "ClaudeCodeTimeoutError",
    "ClaudeCodeValidationError",
    "ConversationSession",
    "ConversationSessionError",
    "ConversationSessionManager",
    "ExecutionOptions",
    "ExecutorShutdownError",
    "ProcessExecutor",
    "ProcessHandle",
    "ProcessTimeoutGuard",
    "SessionManagerShutdownError",
    "SessionNotFoundError",
    "SessionState",
    "SessionStateError",
    "SessionStatistics",
    "Settings",
    "StreamingOutput",
    "__version__",
    "configure_logging",
    "get_logger",
    "load_settings",
]
