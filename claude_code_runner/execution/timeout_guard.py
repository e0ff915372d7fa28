"""Hard lifetime ceilings for spawned CLI processes.

Every process the runner starts is registered with a :class:`ProcessTimeoutGuard`
before the caller blocks on it. Registration arms an independent daemon timer;
if the timer fires while the handle is still open and anything in the process
tree is still running, the process (and, on POSIX, its whole process group) is
killed. Closing the handle cancels the timer and shuts the process down in two
phases: SIGTERM, a short grace period, then SIGKILL.

Processes spawned with ``start_new_session=True`` lead their own process group,
so ``pgid == pid``. The group stays addressable after the leader exits for as
long as any member is alive, which is how helpers that inherited the CLI's
output pipe are reached once the CLI itself is gone.
"""

from __future__ import annotations

import os
import signal
import subprocess
import threading
from typing import Callable

from claude_code_runner.core.utils.constants import GRACEFUL_TERMINATION_WAIT, TIMEOUT_THREAD_NAME
from claude_code_runner.core.utils.logger import get_logger

from .errors import ClaudeCodeValidationError

LOGGER = get_logger(__name__)

USE_PROCESS_GROUPS = os.name == "posix"


def _owns_process_group(process: subprocess.Popen) -> bool:
    if not USE_PROCESS_GROUPS:
        return False
    try:
        return os.getpgid(process.pid) == process.pid
    except (ProcessLookupError, PermissionError):
        return False


def group_alive(pgid: int) -> bool:
    """Return True while any member of process group ``pgid`` exists."""

    if not USE_PROCESS_GROUPS:
        return False
    try:
        os.killpg(pgid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _signal_process(process: subprocess.Popen, sig: int, *, group: bool) -> None:
    """Deliver ``sig`` to the process group when ``group`` is set, else to the child."""

    try:
        if group:
            os.killpg(process.pid, sig)
        elif sig == getattr(signal, "SIGKILL", None):
            process.kill()
        elif sig == signal.SIGTERM:
            process.terminate()
        else:
            process.send_signal(sig)
    except ProcessLookupError:
        pass


def terminate_process(process: subprocess.Popen, *, group: bool = False) -> None:
    _signal_process(process, signal.SIGTERM, group=group)


def kill_process(process: subprocess.Popen, *, group: bool = False) -> None:
    _signal_process(process, getattr(signal, "SIGKILL", signal.SIGTERM), group=group)


class ProcessHandle:
    """Owns one live process and the timer that bounds its lifetime."""

    def __init__(
        self,
        process: subprocess.Popen,
        timeout: float,
        *,
        grace_period: float = GRACEFUL_TERMINATION_WAIT,
        process_group: bool = False,
        on_release: Callable[[ProcessHandle], None] | None = None,
    ) -> None:
        self._process = process
        self._timeout = timeout
        self._grace_period = grace_period
        self._process_group = process_group and USE_PROCESS_GROUPS
        self._on_release = on_release
        self._lock = threading.Lock()
        self._closed = False
        self._timed_out = False
        self._timer = threading.Timer(timeout, self._expire)
        self._timer.name = f"{TIMEOUT_THREAD_NAME}-{process.pid}"
        self._timer.daemon = True

    @property
    def process(self) -> subprocess.Popen:
        return self._process

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def process_group(self) -> bool:
        """True when signals go to the child's whole process group."""
        return self._process_group

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def timed_out(self) -> bool:
        """True once the guard has forcibly terminated the process."""
        return self._timed_out

    def _arm(self) -> None:
        self._timer.start()
        LOGGER.debug("Guarding process %s with timeout %.1fs", self._process.pid, self._timeout)

    def _leftovers_alive(self) -> bool:
        return self._process_group and group_alive(self._process.pid)

    def _expire(self) -> None:
        with self._lock:
            if self._closed:
                return
            if self._process.poll() is not None and not self._leftovers_alive():
                return
            self._timed_out = True
        LOGGER.warning(
            "Process %s exceeded timeout of %.1fs, forcibly destroying",
            self._process.pid,
            self._timeout,
        )
        kill_process(self._process, group=self._process_group)

    def close(self) -> None:
        """Cancel the timer and make sure the process is gone. Safe to call repeatedly."""

        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._timer.cancel()
        try:
            if self._process.poll() is None:
                LOGGER.debug("Process %s still alive, terminating gracefully", self._process.pid)
                terminate_process(self._process, group=self._process_group)
                try:
                    self._process.wait(timeout=self._grace_period)
                except subprocess.TimeoutExpired:
                    LOGGER.warning(
                        "Process %s did not terminate within %.1fs, forcing",
                        self._process.pid,
                        self._grace_period,
                    )
                    kill_process(self._process, group=self._process_group)
                    self._process.wait()
            else:
                LOGGER.debug(
                    "Process %s already terminated with exit code %s",
                    self._process.pid,
                    self._process.returncode,
                )
            if self._leftovers_alive():
                LOGGER.debug("Killing leftover members of process group %s", self._process.pid)
                kill_process(self._process, group=True)
        finally:
            if self._on_release is not None:
                self._on_release(self)

    def __enter__(self) -> ProcessHandle:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


class ProcessTimeoutGuard:
    """Shared registry of timers enforcing a maximum lifetime on spawned processes."""

    def __init__(self, *, grace_period: float = GRACEFUL_TERMINATION_WAIT) -> None:
        self._grace_period = grace_period
        self._handles: set[ProcessHandle] = set()
        self._lock = threading.Lock()

    def register(
        self,
        process: subprocess.Popen,
        timeout: float,
        *,
        process_group: bool | None = None,
    ) -> ProcessHandle:
        """Arm a termination timer for ``process`` and return its handle.

        Pass ``process_group=True`` when the process was started with
        ``start_new_session=True``. When omitted, group leadership is probed,
        which only works while the process has not been reaped yet.
        """

        if timeout is None or timeout <= 0:
            raise ClaudeCodeValidationError("Timeout must be positive")
        if process_group is None:
            process_group = _owns_process_group(process)

        handle = ProcessHandle(
            process,
            timeout,
            grace_period=self._grace_period,
            process_group=process_group,
            on_release=self._release,
        )
        with self._lock:
            self._handles.add(handle)
        handle._arm()
        return handle

    @property
    def outstanding(self) -> int:
        with self._lock:
            return len(self._handles)

    def shutdown(self) -> None:
        """Close every outstanding handle."""

        with self._lock:
            handles = list(self._handles)
        if handles:
            LOGGER.info("Closing %d outstanding process handle(s)", len(handles))
        for handle in handles:
            try:
                handle.close()
            except OSError as exc:  # pragma: no cover - platform dependent
                LOGGER.error("Failed to close process %s: %s", handle.pid, exc)

    def _release(self, handle: ProcessHandle) -> None:
        with self._lock:
            self._handles.discard(handle)


__all__ = [
    "USE_PROCESS_GROUPS",
    "ProcessHandle",
    "ProcessTimeoutGuard",
    "group_alive",
    "kill_process",
    "terminate_process",
]
