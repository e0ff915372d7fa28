"""Per-call options shared by one-shot executions and conversation sessions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from claude_code_runner.core.utils.constants import (
    DEFAULT_EXECUTION_TIMEOUT,
    DEFAULT_SESSION_TURN_TIMEOUT,
)

from .errors import ClaudeCodeValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True)
class ExecutionOptions:
    """Immutable configuration for a single CLI invocation or session turn.

    ``timeout`` is expressed in seconds. ``env`` is overlaid on top of the base
    environment, so it may override credentials when that is intended.
    """

    timeout: float = DEFAULT_EXECUTION_TIMEOUT
    model: str | None = None
    skip_permissions: bool = True
    env: Mapping[str, str] = field(default_factory=dict)
    working_directory: str | None = None
    session_inactivity_timeout: timedelta | None = None

    def __post_init__(self) -> None:
        if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)):
            raise ClaudeCodeValidationError("Timeout must be a number of seconds")
        if self.timeout <= 0:
            raise ClaudeCodeValidationError("Timeout must be positive")
        if self.env is None:
            raise ClaudeCodeValidationError("Environment overlay cannot be None")
        for key, value in self.env.items():
            if key is None or value is None:
                raise ClaudeCodeValidationError("Environment variable names and values cannot be None")
        if self.working_directory is not None and not str(self.working_directory).strip():
            raise ClaudeCodeValidationError("Working directory cannot be empty")
        if self.session_inactivity_timeout is not None and (
            self.session_inactivity_timeout <= timedelta(0)
        ):
            raise ClaudeCodeValidationError("Session inactivity timeout must be positive")
        # Freeze the overlay so options can be shared between threads.
        frozen_env = MappingProxyType({str(k): str(v) for k, v in self.env.items()})
        object.__setattr__(self, "timeout", float(self.timeout))
        object.__setattr__(self, "env", frozen_env)
        if self.working_directory is not None:
            object.__setattr__(self, "working_directory", str(self.working_directory))

    @classmethod
    def defaults(cls) -> ExecutionOptions:
        return cls()

    @classmethod
    def session_defaults(cls) -> ExecutionOptions:
        """Options used for sessions created without explicit configuration."""
        return cls(timeout=DEFAULT_SESSION_TURN_TIMEOUT)

    def with_overrides(self, **changes: Any) -> ExecutionOptions:
        """Return a validated copy with ``changes`` applied."""
        return replace(self, **changes)

    def describe(self) -> dict[str, Any]:
        """Return a log-safe summary (environment values are omitted)."""
        return {
            "timeout": self.timeout,
            "model": self.model,
            "skip_permissions": self.skip_permissions,
            "env_keys": sorted(self.env),
            "working_directory": self.working_directory,
            "session_inactivity_timeout": (
                self.session_inactivity_timeout.total_seconds()
                if self.session_inactivity_timeout
                else None
            ),
        }


__all__ = ["ExecutionOptions"]
