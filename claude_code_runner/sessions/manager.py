"""Registry of live conversation sessions with periodic inactivity cleanup."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import timedelta
from threading import Timer
from typing import TYPE_CHECKING, Any

from claude_code_runner.core.utils.constants import (
    CLEANUP_THREAD_NAME,
    DEFAULT_SESSION_CLEANUP_INTERVAL,
    DEFAULT_SESSION_INACTIVITY_TIMEOUT,
)
from claude_code_runner.core.utils.logger import get_logger
from claude_code_runner.execution.errors import (
    ClaudeCodeValidationError,
    SessionManagerShutdownError,
    SessionNotFoundError,
)

from .session import ConversationSession

if TYPE_CHECKING:
    from claude_code_runner.execution.options import ExecutionOptions
    from claude_code_runner.execution.process_executor import ProcessExecutor

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class SessionStatistics:
    """Point-in-time summary of the manager's sessions."""

    active_sessions: int
    inactivity_timeout: timedelta
    average_session_age: timedelta

    def as_dict(self) -> dict[str, Any]:
        return {
            "active_sessions": self.active_sessions,
            "inactivity_timeout_seconds": self.inactivity_timeout.total_seconds(),
            "average_session_age_seconds": self.average_session_age.total_seconds(),
        }


def _validate_session_id(session_id: str | None) -> str:
    if session_id is None or not isinstance(session_id, str) or not session_id.strip():
        raise ClaudeCodeValidationError("Session ID cannot be null or empty")
    return session_id


class ConversationSessionManager:
    """Creates, looks up and expires :class:`ConversationSession` objects.

    The registry lock only protects the session map. Turns run outside it, so a
    long turn in one session never blocks lookups or turns in another.
    """

    def __init__(
        self,
        executor: ProcessExecutor,
        *,
        inactivity_timeout: timedelta = timedelta(seconds=DEFAULT_SESSION_INACTIVITY_TIMEOUT),
        cleanup_interval: float = DEFAULT_SESSION_CLEANUP_INTERVAL,
        start_cleanup: bool = True,
    ) -> None:
        if inactivity_timeout is None or inactivity_timeout <= timedelta(0):
            raise ClaudeCodeValidationError("Inactivity timeout must be positive")
        if cleanup_interval is None or cleanup_interval <= 0:
            raise ClaudeCodeValidationError("Cleanup interval must be positive")

        self._executor = executor
        self._inactivity_timeout = inactivity_timeout
        self._cleanup_interval = float(cleanup_interval)
        self._sessions: dict[str, ConversationSession] = {}
        self._lock = threading.Lock()
        self._shutdown = False
        self._cleanup_timer: Timer | None = None
        if start_cleanup:
            self._start_cleanup_timer()

        LOGGER.info(
            "Session manager initialized with inactivity timeout: %s, cleanup interval: %.0fs",
            inactivity_timeout,
            self._cleanup_interval,
        )

    @property
    def inactivity_timeout(self) -> timedelta:
        return self._inactivity_timeout

    @property
    def cleanup_interval(self) -> float:
        return self._cleanup_interval

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    @property
    def active_session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def create_session(self, options: ExecutionOptions | None = None) -> str:
        """Create and register a new ACTIVE session, returning its id."""

        self._ensure_running()
        session = ConversationSession(self._executor, options)
        with self._lock:
            # Re-check under the lock so a concurrent shutdown cannot miss it.
            if self._shutdown:
                raise SessionManagerShutdownError("Session manager has been shut down")
            self._sessions[session.id] = session
        LOGGER.info("Created session: %s", session.id)
        return session.id

    def get_session(self, session_id: str) -> ConversationSession:
        """Return the ACTIVE session for ``session_id``.

        Sessions found CLOSED or FAILED are dropped from the registry and
        reported as not found.
        """

        _validate_session_id(session_id)
        self._ensure_running()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if not session.is_active():
                del self._sessions[session_id]
                raise SessionNotFoundError(
                    session_id, f"is {session.state.value.lower()}"
                )
        return session

    def close_session(self, session_id: str) -> None:
        """Close and forget ``session_id``. Unknown ids are ignored."""

        _validate_session_id(session_id)
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            LOGGER.debug("Attempted to close non-existent session: %s", session_id)
            return
        session.close()
        LOGGER.info("Closed session: %s", session_id)

    def is_session_active(self, session_id: str | None) -> bool:
        if not session_id:
            return False
        with self._lock:
            session = self._sessions.get(session_id)
        return session is not None and session.is_active()

    def active_session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def _start_cleanup_timer(self) -> None:
        """Start the background cleanup timer."""
        if self._cleanup_timer:
            self._cleanup_timer.cancel()

        self._cleanup_timer = Timer(self._cleanup_interval, self._run_cleanup)
        self._cleanup_timer.name = CLEANUP_THREAD_NAME
        self._cleanup_timer.daemon = True
        self._cleanup_timer.start()

    def _run_cleanup(self) -> None:
        """Run periodic cleanup of expired sessions."""
        try:
            self.cleanup_expired_sessions()
        except Exception:  # noqa: BLE001 - the sweep must keep running
            LOGGER.exception("Error during session cleanup")
        finally:
            with self._lock:
                if not self._shutdown:
                    self._start_cleanup_timer()

    def cleanup_expired_sessions(self) -> int:
        """Close and remove idle or terminal sessions. Returns the number removed."""

        with self._lock:
            stale = [
                (session_id, session)
                for session_id, session in self._sessions.items()
                if not session.is_active() or session.is_expired(self._inactivity_timeout)
            ]
            for session_id, _session in stale:
                del self._sessions[session_id]

        for session_id, session in stale:
            session.close()
            LOGGER.info("Cleaned up expired session: %s", session_id)

        if stale:
            LOGGER.info("Cleaned up %d expired session(s)", len(stale))
        return len(stale)

    # ------------------------------------------------------------------
    # Introspection and shutdown
    # ------------------------------------------------------------------

    def get_statistics(self) -> SessionStatistics:
        with self._lock:
            sessions = list(self._sessions.values())
        if sessions:
            total = sum((s.age for s in sessions), timedelta(0))
            average = total / len(sessions)
        else:
            average = timedelta(0)
        return SessionStatistics(
            active_sessions=len(sessions),
            inactivity_timeout=self._inactivity_timeout,
            average_session_age=average,
        )

    def shutdown(self) -> None:
        """Stop the sweep and close every session. Safe to call more than once."""

        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
            sessions = list(self._sessions.values())
            self._sessions.clear()
            timer, self._cleanup_timer = self._cleanup_timer, None

        LOGGER.info("Shutting down session manager")
        if timer:
            timer.cancel()
        for session in sessions:
            session.close()
        LOGGER.info("Session manager shutdown complete, closed %d session(s)", len(sessions))

    def _ensure_running(self) -> None:
        if self._shutdown:
            raise SessionManagerShutdownError("Session manager has been shut down")

    def __enter__(self) -> ConversationSessionManager:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.shutdown()


__all__ = ["ConversationSessionManager", "SessionStatistics"]
