"""A single multi-turn conversation with the Claude Code CLI.

The CLI has no notion of a live connection. Each turn spawns a fresh
``claude -p`` process; continuity comes from a correlation token the CLI
persists on disk. The first turn passes ``--session-id <id>`` to create the
conversation and later turns pass ``--resume <id>``. The session object holds
only that token plus turn sequencing, never conversation content.
"""

from __future__ import annotations

import threading
import time
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from claude_code_runner.core.utils.constants import LOG_PREVIEW_CHARS, RESUME_FLAG, SESSION_ID_FLAG
from claude_code_runner.core.utils.logger import correlation_scope, get_logger
from claude_code_runner.execution.errors import (
    ClaudeCodeError,
    ConversationSessionError,
    SessionStateError,
)
from claude_code_runner.execution.options import ExecutionOptions
from claude_code_runner.execution.process_executor import validate_options, validate_prompt

if TYPE_CHECKING:
    from claude_code_runner.execution.process_executor import ProcessExecutor

LOGGER = get_logger(__name__)


class SessionState(Enum):
    """Lifecycle states of a conversation session."""

    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionState.ACTIVE


class ConversationSession:
    """Owns one logical conversation: its token, state, and turn lock."""

    def __init__(
        self,
        executor: ProcessExecutor,
        options: ExecutionOptions | None = None,
        *,
        session_id: str | None = None,
    ) -> None:
        self._executor = executor
        self._options = validate_options(
            ExecutionOptions.session_defaults() if options is None else options
        )
        self._id = session_id or str(uuid.uuid4())
        # Wall clock for display; idle and age arithmetic uses the monotonic clock.
        self._created_at = datetime.now()
        self._created_monotonic = time.monotonic()
        self._last_activity = self._created_monotonic
        self._state = SessionState.ACTIVE
        self._is_first_turn = True
        self._turn_count = 0
        # Serialises turns; never held while waiting on another session.
        self._turn_lock = threading.Lock()
        # Guards state transitions only, so close() never waits on a running turn.
        self._state_lock = threading.Lock()
        LOGGER.info("Created conversation session: %s", self._id)

    @property
    def id(self) -> str:
        return self._id

    @property
    def options(self) -> ExecutionOptions:
        return self._options

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def last_activity_at(self) -> datetime:
        """Wall-clock estimate of the last turn start or finish."""
        return datetime.now() - self.idle_time

    @property
    def idle_time(self) -> timedelta:
        return timedelta(seconds=time.monotonic() - self._last_activity)

    @property
    def age(self) -> timedelta:
        return timedelta(seconds=time.monotonic() - self._created_monotonic)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_first_turn(self) -> bool:
        return self._is_first_turn

    @property
    def turn_count(self) -> int:
        """Number of turns that completed successfully."""
        return self._turn_count

    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    def is_expired(self, inactivity_threshold: timedelta) -> bool:
        """Return True when the session has been idle for longer than the threshold."""

        if inactivity_threshold is None or inactivity_threshold < timedelta(0):
            raise ValueError("Inactivity threshold must be zero or positive")
        return self.idle_time > inactivity_threshold

    def touch(self) -> None:
        self._last_activity = time.monotonic()

    def build_session_args(self) -> list[str]:
        """Return the correlation flag for the next turn."""
        flag = SESSION_ID_FLAG if self._is_first_turn else RESUME_FLAG
        return [flag, self._id]

    def send_message(self, text: str) -> str:
        """Run one conversational turn and return the CLI's response text."""

        self._ensure_active()
        validate_prompt(text, label="Message")

        with self._turn_lock, correlation_scope(self._id):
            # A close() may have landed while this caller waited for the lock.
            self._ensure_active()
            self.touch()
            session_args = self.build_session_args()
            LOGGER.debug(
                "Sending message to session %s (%d chars, flag %s)",
                self._id,
                len(text),
                session_args[0],
            )
            try:
                output = self._executor.run_to_completion(
                    text, self._options, session_args=session_args
                )
            except ClaudeCodeError as exc:
                self._transition(SessionState.FAILED)
                LOGGER.error("Message failed for session %s: %s", self._id, exc)
                raise ConversationSessionError(
                    f"Failed to execute Claude CLI for session {self._id}: {exc}",
                    session_id=self._id,
                    cause=exc,
                ) from exc

            if self._is_first_turn:
                self._is_first_turn = False
                LOGGER.debug("First turn completed, subsequent turns will use %s", RESUME_FLAG)
            self._turn_count += 1
            self.touch()

        response = output.strip()
        LOGGER.info("Response received for session %s: %d chars", self._id, len(response))
        LOGGER.debug(
            "Response preview: %s",
            response if len(response) <= LOG_PREVIEW_CHARS else f"{response[:LOG_PREVIEW_CHARS]}...",
        )
        return response

    def close(self) -> None:
        """Mark the session CLOSED. Idempotent; terminal states are left untouched."""

        if self._transition(SessionState.CLOSED):
            LOGGER.info("Conversation session closed: %s", self._id)
        else:
            LOGGER.debug("Session %s already %s", self._id, self._state.value)

    def _transition(self, target: SessionState) -> bool:
        with self._state_lock:
            if self._state.is_terminal:
                return False
            self._state = target
            return True

    def _ensure_active(self) -> None:
        if self._state is not SessionState.ACTIVE:
            raise SessionStateError(
                f"Session {self._id} is not active (state: {self._state.value})"
            )

    def __enter__(self) -> ConversationSession:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"ConversationSession(id={self._id!r}, state={self._state.value}, "
            f"created={self._created_at.isoformat()}, "
            f"last_activity={self.last_activity_at.isoformat()})"
        )


__all__ = ["ConversationSession", "SessionState"]
