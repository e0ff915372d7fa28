"""Unit tests for ConversationSessionManager."""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from claude_code_runner.execution.errors import (
    ClaudeCodeExecutionError,
    ClaudeCodeValidationError,
    ConversationSessionError,
    SessionManagerShutdownError,
    SessionNotFoundError,
)
from claude_code_runner.execution.options import ExecutionOptions
from claude_code_runner.execution.process_executor import ProcessExecutor
from claude_code_runner.sessions.manager import ConversationSessionManager
from claude_code_runner.sessions.session import SessionState


@pytest.fixture
def stub_executor() -> MagicMock:
    executor = MagicMock(spec=ProcessExecutor)
    executor.run_to_completion.return_value = "ok"
    return executor


@pytest.fixture
def manager(stub_executor: MagicMock):
    registry = ConversationSessionManager(stub_executor, start_cleanup=False)
    yield registry
    registry.shutdown()


def test_create_and_get_session(manager: ConversationSessionManager) -> None:
    options = ExecutionOptions(timeout=30)
    session_id = manager.create_session(options)

    session = manager.get_session(session_id)
    assert session.id == session_id
    assert session.options is options
    assert manager.is_session_active(session_id)
    assert manager.active_session_count == 1
    assert manager.active_session_ids() == [session_id]


def test_create_without_options_uses_session_defaults(manager: ConversationSessionManager) -> None:
    session = manager.get_session(manager.create_session())
    assert session.options.timeout == 300.0


def test_unknown_session_raises_not_found(manager: ConversationSessionManager) -> None:
    with pytest.raises(SessionNotFoundError) as excinfo:
        manager.get_session("never-created")

    assert excinfo.value.session_id == "never-created"
    assert "never-created" in str(excinfo.value)
    assert isinstance(excinfo.value, KeyError)


def test_blank_session_id_rejected(manager: ConversationSessionManager) -> None:
    with pytest.raises(ClaudeCodeValidationError):
        manager.get_session("  ")
    with pytest.raises(ClaudeCodeValidationError):
        manager.close_session("")


def test_close_session_is_idempotent_and_tolerates_unknown_ids(
    manager: ConversationSessionManager,
) -> None:
    session_id = manager.create_session()
    session = manager.get_session(session_id)

    manager.close_session(session_id)
    manager.close_session(session_id)
    manager.close_session("unknown-id")

    assert session.state is SessionState.CLOSED
    assert not manager.is_session_active(session_id)
    with pytest.raises(SessionNotFoundError):
        manager.get_session(session_id)


def test_is_session_active_never_raises(manager: ConversationSessionManager) -> None:
    assert manager.is_session_active("missing") is False
    assert manager.is_session_active("") is False
    assert manager.is_session_active(None) is False


def test_failed_session_is_dropped_on_lookup(
    manager: ConversationSessionManager, stub_executor: MagicMock
) -> None:
    session_id = manager.create_session()
    stub_executor.run_to_completion.side_effect = ClaudeCodeExecutionError("x", exit_code=1)
    with pytest.raises(ConversationSessionError):
        manager.get_session(session_id).send_message("hello")

    assert not manager.is_session_active(session_id)
    with pytest.raises(SessionNotFoundError, match="failed"):
        manager.get_session(session_id)
    assert manager.active_session_count == 0


def test_cleanup_removes_expired_and_terminal_sessions(manager: ConversationSessionManager) -> None:
    stale_id = manager.create_session()
    fresh_id = manager.create_session()
    closed_id = manager.create_session()

    now = time.monotonic()
    manager.get_session(stale_id)._last_activity = now - 45 * 60
    manager.get_session(fresh_id)._last_activity = now - 20 * 60
    closed_session = manager.get_session(closed_id)
    closed_session.close()

    stale_session = manager.get_session(stale_id)
    removed = manager.cleanup_expired_sessions()

    assert removed == 2
    assert stale_session.state is SessionState.CLOSED
    assert manager.active_session_ids() == [fresh_id]
    with pytest.raises(SessionNotFoundError):
        manager.get_session(stale_id)


def test_background_sweep_runs_periodically(stub_executor: MagicMock, wait_until) -> None:
    registry = ConversationSessionManager(
        stub_executor,
        inactivity_timeout=timedelta(seconds=1),
        cleanup_interval=0.05,
    )
    try:
        session_id = registry.create_session()
        registry.get_session(session_id)._last_activity = time.monotonic() - 5 * 60

        assert wait_until(lambda: not registry.is_session_active(session_id), timeout=5)
        assert registry.active_session_count == 0
    finally:
        registry.shutdown()


def test_shutdown_closes_everything_and_rejects_new_work(stub_executor: MagicMock) -> None:
    registry = ConversationSessionManager(stub_executor, cleanup_interval=60)
    sessions = [registry.get_session(registry.create_session()) for _ in range(3)]

    registry.shutdown()
    registry.shutdown()

    assert registry.is_shutdown
    assert all(session.state is SessionState.CLOSED for session in sessions)
    assert registry.active_session_count == 0
    with pytest.raises(SessionManagerShutdownError):
        registry.create_session()
    with pytest.raises(SessionManagerShutdownError):
        registry.get_session(sessions[0].id)


def test_invalid_configuration_rejected(stub_executor: MagicMock) -> None:
    with pytest.raises(ClaudeCodeValidationError):
        ConversationSessionManager(stub_executor, inactivity_timeout=timedelta(0), start_cleanup=False)
    with pytest.raises(ClaudeCodeValidationError):
        ConversationSessionManager(stub_executor, cleanup_interval=0, start_cleanup=False)


def test_statistics(manager: ConversationSessionManager) -> None:
    empty = manager.get_statistics()
    assert empty.active_sessions == 0
    assert empty.average_session_age == timedelta(0)

    manager.create_session()
    manager.create_session()
    stats = manager.get_statistics()

    assert stats.active_sessions == 2
    assert stats.inactivity_timeout == timedelta(minutes=30)
    assert stats.average_session_age >= timedelta(0)
    assert stats.as_dict()["inactivity_timeout_seconds"] == 1800.0


def test_statistics_average_age_uses_session_age(manager: ConversationSessionManager) -> None:
    older = manager.get_session(manager.create_session())
    manager.create_session()
    older._created_monotonic = time.monotonic() - 600

    stats = manager.get_statistics()

    assert timedelta(minutes=5) <= stats.average_session_age < timedelta(minutes=6)


def test_concurrent_creation_is_safe(manager: ConversationSessionManager) -> None:
    created: list[str] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(20):
            session_id = manager.create_session()
            with lock:
                created.append(session_id)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(set(created)) == 160
    assert manager.active_session_count == 160
