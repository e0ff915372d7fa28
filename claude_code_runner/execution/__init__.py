"""Process execution layer: options, timeout guard, and the CLI executor."""

from .environment import build_base_environment, has_credentials, mask_path, merge_environment
from .errors import (
    ClaudeCodeConfigurationError,
    ClaudeCodeError,
    ClaudeCodeExecutionError,
    ClaudeCodeLaunchError,
    ClaudeCodeTimeoutError,
    ClaudeCodeValidationError,
    ConversationSessionError,
    ExecutorShutdownError,
    SessionManagerShutdownError,
    SessionNotFoundError,
    SessionStateError,
)
from .options import ExecutionOptions
from .process_executor import ProcessExecutor, StreamingOutput
from .timeout_guard import ProcessHandle, ProcessTimeoutGuard

__all__ = [
    "ClaudeCodeConfigurationError",
    "ClaudeCodeError",
    "ClaudeCodeExecutionError",
    "ClaudeCodeLaunchError",
    "ClaudeCodeTimeoutError",
    "ClaudeCodeValidationError",
    "ConversationSessionError",
    "ExecutionOptions",
    "ExecutorShutdownError",
    "ProcessExecutor",
    "ProcessHandle",
    "ProcessTimeoutGuard",
    "SessionManagerShutdownError",
    "SessionNotFoundError",
    "SessionStateError",
    "StreamingOutput",
    "build_base_environment",
    "has_credentials",
    "mask_path",
    "merge_environment",
]
