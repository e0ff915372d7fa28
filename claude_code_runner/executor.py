"""Public entry point bundling one-shot, async, streaming and session calls."""

from __future__ import annotations

import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import timedelta
from typing import TYPE_CHECKING

from claude_code_runner.core.utils.constants import (
    CLI_PATH_ENV,
    DEFAULT_ASYNC_WORKERS,
    DEFAULT_SESSION_CLEANUP_INTERVAL,
    DEFAULT_SESSION_INACTIVITY_TIMEOUT,
)
from claude_code_runner.core.utils.logger import get_logger
from claude_code_runner.execution.environment import (
    build_base_environment,
    mask_path,
    require_credentials,
)
from claude_code_runner.execution.errors import (
    ClaudeCodeConfigurationError,
    ClaudeCodeValidationError,
    ExecutorShutdownError,
    SessionNotFoundError,
)
from claude_code_runner.execution.options import ExecutionOptions
from claude_code_runner.execution.process_executor import (
    ProcessExecutor,
    StreamingOutput,
    validate_options,
)
from claude_code_runner.execution.timeout_guard import ProcessTimeoutGuard
from claude_code_runner.sessions.manager import ConversationSessionManager, SessionStatistics

if TYPE_CHECKING:
    from collections.abc import Mapping

    from claude_code_runner.core.utils.config import Settings

LOGGER = get_logger(__name__)


class ClaudeCodeExecutor:
    """Run prompts through the Claude Code CLI and manage conversations.

    Stateless calls go straight to a :class:`ProcessExecutor`. Conversation
    calls go through a :class:`ConversationSessionManager` that is created on
    first use; its inactivity timeout comes from the options of the first
    ``create_session`` call (30 minutes when those options leave it unset).

    Call :meth:`shutdown` (or use the executor as a context manager) to close
    sessions, stop the async pool and reap any outstanding processes.
    After shutdown, execute and session calls raise :class:`ExecutorShutdownError`.
    """

    def __init__(
        self,
        cli_path: str | os.PathLike[str],
        *,
        api_key: str | None = None,
        oauth_token: str | None = None,
        environ: Mapping[str, str] | None = None,
        default_options: ExecutionOptions | None = None,
        async_workers: int = DEFAULT_ASYNC_WORKERS,
        session_cleanup_interval: float = DEFAULT_SESSION_CLEANUP_INTERVAL,
        inherit_environment: bool = True,
    ) -> None:
        if not cli_path or not str(cli_path).strip():
            raise ClaudeCodeConfigurationError("Claude CLI path cannot be null or empty")
        if async_workers < 1:
            raise ClaudeCodeValidationError("async_workers must be at least 1")

        base_environment = build_base_environment(
            api_key=api_key, oauth_token=oauth_token, environ=environ
        )
        self._guard = ProcessTimeoutGuard()
        self._process_executor = ProcessExecutor(
            cli_path,
            base_environment,
            guard=self._guard,
            inherit_environment=inherit_environment,
        )
        self._default_options = default_options or ExecutionOptions.defaults()
        self._async_pool = ThreadPoolExecutor(
            max_workers=async_workers, thread_name_prefix="claude-code-async"
        )
        self._session_cleanup_interval = session_cleanup_interval
        self._session_manager: ConversationSessionManager | None = None
        self._manager_lock = threading.Lock()
        self._closed = False

        LOGGER.info("ClaudeCodeExecutor initialized with CLI path: %s", mask_path(cli_path))

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] | None = None) -> ClaudeCodeExecutor:
        """Build an executor from ``CLAUDE_CLI_PATH`` and the credential variables."""

        environ = os.environ if environ is None else environ
        cli_path = environ.get(CLI_PATH_ENV)
        if not cli_path:
            raise ClaudeCodeConfigurationError(f"{CLI_PATH_ENV} environment variable not set")
        require_credentials(build_base_environment(environ=environ))
        return cls(cli_path, environ=environ)

    @classmethod
    def from_settings(
        cls, settings: Settings, environ: Mapping[str, str] | None = None
    ) -> ClaudeCodeExecutor:
        """Build an executor from loaded :class:`Settings`."""

        if settings.cli_path is None:
            raise ClaudeCodeConfigurationError(
                f"Claude CLI path is not configured (set {CLI_PATH_ENV} or cli_path)"
            )
        environ = dict(os.environ if environ is None else environ)
        # Explicit settings win over inherited values.
        if settings.home is not None:
            environ["HOME"] = str(settings.home)
        if settings.extra_ca_certs is not None:
            environ["NODE_EXTRA_CA_CERTS"] = str(settings.extra_ca_certs)
        require_credentials(
            build_base_environment(
                api_key=settings.api_key, oauth_token=settings.oauth_token, environ=environ
            )
        )
        return cls(
            settings.cli_path,
            api_key=settings.api_key,
            oauth_token=settings.oauth_token,
            environ=environ,
            default_options=settings.to_options(),
            async_workers=settings.async_workers,
            session_cleanup_interval=settings.session_cleanup_interval,
        )

    @property
    def cli_path(self) -> str:
        return self._process_executor.cli_path

    @property
    def default_options(self) -> ExecutionOptions:
        return self._default_options

    @property
    def process_executor(self) -> ProcessExecutor:
        return self._process_executor

    @property
    def session_manager(self) -> ConversationSessionManager | None:
        """The session manager, or None until the first session is created."""
        return self._session_manager

    # ------------------------------------------------------------------
    # Stateless execution
    # ------------------------------------------------------------------

    def execute(self, prompt: str, options: ExecutionOptions | None = None) -> str:
        """Run ``prompt`` to completion and return the CLI output."""
        self._ensure_open()
        return self._process_executor.run_to_completion(prompt, self._resolve(options))

    def execute_async(
        self, prompt: str, options: ExecutionOptions | None = None
    ) -> Future[str]:
        """Submit :meth:`execute` to the worker pool.

        Errors, including argument validation errors and calls made after
        :meth:`shutdown`, surface through the returned future.
        """

        if self._closed:
            return _failed_future(ExecutorShutdownError("Executor has been shut down"))
        try:
            return self._async_pool.submit(self.execute, prompt, options)
        except RuntimeError as exc:
            # The pool refuses work once shutdown() has reached it.
            error = ExecutorShutdownError("Executor has been shut down")
            error.__cause__ = exc
            return _failed_future(error)

    def execute_streaming(
        self, prompt: str, options: ExecutionOptions | None = None
    ) -> StreamingOutput:
        """Start the CLI and return its live output lines.

        Use the result as a context manager so the process is always released::

            with executor.execute_streaming("explain this repo") as lines:
                for line in lines:
                    print(line)
        """

        self._ensure_open()
        return self._process_executor.run_streaming(prompt, self._resolve(options))

    def is_available(self) -> bool:
        return self._process_executor.is_available()

    def version(self) -> str | None:
        return self._process_executor.version()

    # ------------------------------------------------------------------
    # Conversation sessions
    # ------------------------------------------------------------------

    def create_session(self, options: ExecutionOptions | None = None) -> str:
        if options is not None:
            validate_options(options)
        self._ensure_open()
        manager = self._get_or_create_session_manager(options)
        session_id = manager.create_session(options)
        LOGGER.info("Created conversation session: %s", session_id)
        return session_id

    def send_message(self, session_id: str, message: str) -> str:
        if not session_id or not str(session_id).strip():
            raise ClaudeCodeValidationError("Session ID cannot be null or empty")
        if message is None or not str(message).strip():
            raise ClaudeCodeValidationError("Message cannot be null or empty")
        self._ensure_open()

        manager = self._session_manager
        if manager is None:
            raise SessionNotFoundError(session_id, "not found (no sessions created)")
        session = manager.get_session(session_id)
        return session.send_message(message)

    def close_session(self, session_id: str) -> None:
        if not session_id or not str(session_id).strip():
            raise ClaudeCodeValidationError("Session ID cannot be null or empty")
        manager = self._session_manager
        if manager is None:
            LOGGER.debug("Session manager not initialized, session %s may not exist", session_id)
            return
        manager.close_session(session_id)

    def is_session_active(self, session_id: str | None) -> bool:
        manager = self._session_manager
        if manager is None or not session_id or not str(session_id).strip():
            return False
        return manager.is_session_active(session_id)

    def get_session_statistics(self) -> SessionStatistics | None:
        manager = self._session_manager
        return manager.get_statistics() if manager is not None else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shutdown(self, *, wait: bool = True) -> None:
        """Close every session, stop the async pool and reap live processes."""

        with self._manager_lock:
            if self._closed:
                return
            self._closed = True
            manager = self._session_manager

        LOGGER.info("Shutting down ClaudeCodeExecutor")
        if manager is not None:
            manager.shutdown()
        self._async_pool.shutdown(wait=wait, cancel_futures=True)
        self._guard.shutdown()
        LOGGER.info("ClaudeCodeExecutor shutdown complete")

    def __enter__(self) -> ClaudeCodeExecutor:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise ExecutorShutdownError("Executor has been shut down")

    def _resolve(self, options: ExecutionOptions | None) -> ExecutionOptions:
        return self._default_options if options is None else validate_options(options)

    def _get_or_create_session_manager(
        self, options: ExecutionOptions | None
    ) -> ConversationSessionManager:
        manager = self._session_manager
        if manager is not None:
            return manager
        with self._manager_lock:
            if self._closed:
                raise ExecutorShutdownError("Executor has been shut down")
            if self._session_manager is None:
                source = options or self._default_options
                timeout = source.session_inactivity_timeout
                if timeout is None:
                    timeout = timedelta(seconds=DEFAULT_SESSION_INACTIVITY_TIMEOUT)
                    LOGGER.info(
                        "Initializing conversation session manager with default timeout: %s",
                        timeout,
                    )
                else:
                    LOGGER.info(
                        "Initializing conversation session manager with custom timeout: %s",
                        timeout,
                    )
                self._session_manager = ConversationSessionManager(
                    self._process_executor,
                    inactivity_timeout=timeout,
                    cleanup_interval=self._session_cleanup_interval,
                )
            return self._session_manager



def _failed_future(error: BaseException) -> Future[str]:
    future: Future[str] = Future()
    future.set_exception(error)
    return future


__all__ = ["ClaudeCodeExecutor"]
