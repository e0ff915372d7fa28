"""One-shot and streaming invocations of the Claude Code CLI."""

from __future__ import annotations

import os
import subprocess
import time
from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING

from claude_code_runner.core.utils.constants import (
    LOG_PREVIEW_CHARS,
    MODEL_FLAG,
    PROMPT_FLAG,
    SKIP_PERMISSIONS_FLAG,
    STREAM_TAIL_LINES,
    VERSION_FLAG,
    VERSION_TIMEOUT,
)
from claude_code_runner.core.utils.logger import get_logger

from .environment import has_credentials, mask_path, merge_environment
from .errors import (
    ClaudeCodeError,
    ClaudeCodeExecutionError,
    ClaudeCodeLaunchError,
    ClaudeCodeTimeoutError,
    ClaudeCodeValidationError,
)
from .options import ExecutionOptions
from .timeout_guard import USE_PROCESS_GROUPS, ProcessHandle, ProcessTimeoutGuard, kill_process

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

LOGGER = get_logger(__name__)


def validate_prompt(prompt: str | None, *, label: str = "Prompt") -> str:
    if prompt is None or not isinstance(prompt, str) or not prompt.strip():
        raise ClaudeCodeValidationError(f"{label} cannot be null or empty")
    return prompt


def validate_options(options: ExecutionOptions | None) -> ExecutionOptions:
    if options is None:
        raise ClaudeCodeValidationError("Options cannot be null")
    if not isinstance(options, ExecutionOptions):
        raise ClaudeCodeValidationError(
            f"Expected ExecutionOptions, got {type(options).__name__}"
        )
    return options


def _preview(text: str, limit: int = LOG_PREVIEW_CHARS) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."


class StreamingOutput:
    """Single-pass iterator over the live output lines of one CLI process.

    Lines are yielded without their trailing newline as soon as the CLI writes
    them. The iterator is not restartable. Use it as a context manager (or call
    :meth:`close`) so the process is released on every exit path; the timeout
    guard only acts as a backstop for callers that forget.

    When the output ends, the process is reaped; a non-zero exit raises
    :class:`ClaudeCodeExecutionError` and a guard-enforced kill raises
    :class:`ClaudeCodeTimeoutError` from the final ``next()`` call.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        handle: ProcessHandle,
        *,
        tail_lines: int = STREAM_TAIL_LINES,
    ) -> None:
        self._process = process
        self._handle = handle
        self._tail: deque[str] = deque(maxlen=tail_lines)
        self._exhausted = False
        self._closed = False

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        if self._closed or self._exhausted:
            raise StopIteration
        stdout = self._process.stdout
        try:
            line = stdout.readline() if stdout is not None else ""
        except ValueError:
            # Reader closed underneath us by a concurrent close().
            self._exhausted = True
            raise StopIteration from None
        if line == "":
            self._finish()
            raise StopIteration
        text = line.rstrip("\r\n")
        self._tail.append(text)
        return text

    def _finish(self) -> None:
        self._exhausted = True
        try:
            exit_code = self._process.wait()
            if self._handle.timed_out:
                raise ClaudeCodeTimeoutError(
                    f"Claude Code streaming execution timed out after {self._handle.timeout:.1f}s",
                    timeout=self._handle.timeout,
                    output="\n".join(self._tail),
                )
            if exit_code != 0:
                output = "\n".join(self._tail)
                LOGGER.error("Claude Code stream ended with exit code %s", exit_code)
                raise ClaudeCodeExecutionError(
                    f"Claude Code failed with exit code: {exit_code}",
                    exit_code=exit_code,
                    output=output,
                )
            LOGGER.debug("Claude Code stream completed (pid=%s)", self._process.pid)
        finally:
            self.close()

    def close(self) -> None:
        """Release the line reader and the process. Idempotent."""

        if self._closed:
            return
        self._closed = True
        LOGGER.debug("Stream closed, cleaning up resources (pid=%s)", self._process.pid)
        try:
            self._handle.close()
        finally:
            if self._process.stdout is not None:
                try:
                    self._process.stdout.close()
                except OSError as exc:
                    LOGGER.warning("Error closing reader: %s", exc)

    def __enter__(self) -> StreamingOutput:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


class ProcessExecutor:
    """Runs the CLI once per prompt, either to completion or as a live stream."""

    def __init__(
        self,
        cli_path: str | os.PathLike[str],
        base_environment: Mapping[str, str],
        *,
        guard: ProcessTimeoutGuard | None = None,
        inherit_environment: bool = True,
    ) -> None:
        if not cli_path or not str(cli_path).strip():
            raise ClaudeCodeValidationError("Claude CLI path cannot be null or empty")
        self._cli_path = os.fspath(cli_path)
        self._base_environment = dict(base_environment)
        self._guard = guard or ProcessTimeoutGuard()
        self._inherit_environment = inherit_environment

    @property
    def cli_path(self) -> str:
        return self._cli_path

    @property
    def guard(self) -> ProcessTimeoutGuard:
        return self._guard

    @property
    def base_environment(self) -> dict[str, str]:
        return dict(self._base_environment)

    # ------------------------------------------------------------------
    # Command and environment construction
    # ------------------------------------------------------------------

    def build_command(
        self,
        prompt: str,
        options: ExecutionOptions,
        session_args: Sequence[str] = (),
    ) -> list[str]:
        command = [self._cli_path, PROMPT_FLAG, prompt]
        if options.skip_permissions:
            command.append(SKIP_PERMISSIONS_FLAG)
        if options.model:
            command.extend([MODEL_FLAG, options.model])
        command.extend(session_args)
        return command

    def build_environment(self, options: ExecutionOptions) -> dict[str, str]:
        return merge_environment(
            self._base_environment, options.env, inherit=self._inherit_environment
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run_to_completion(
        self,
        prompt: str,
        options: ExecutionOptions,
        *,
        session_args: Sequence[str] = (),
    ) -> str:
        """Execute the CLI and return its combined stdout/stderr text."""

        validate_prompt(prompt)
        validate_options(options)
        LOGGER.debug(
            "Executing Claude Code with prompt length: %d, options: %s",
            len(prompt),
            options.describe(),
        )

        command = self.build_command(prompt, options, session_args)
        exit_code, output = self._run_guarded(
            command,
            timeout=options.timeout,
            env=self.build_environment(options),
            cwd=options.working_directory,
        )
        if exit_code != 0:
            LOGGER.error(
                "Claude Code failed with exit code: %s, output: %s", exit_code, _preview(output)
            )
            raise ClaudeCodeExecutionError(
                f"Claude Code failed with exit code: {exit_code}",
                exit_code=exit_code,
                output=output,
            )
        LOGGER.info("Claude Code executed successfully, output length: %d", len(output))
        return output

    def run_streaming(self, prompt: str, options: ExecutionOptions) -> StreamingOutput:
        """Start the CLI and return a closable iterator over its output lines."""

        validate_prompt(prompt)
        validate_options(options)
        LOGGER.debug(
            "Starting streaming execution with prompt length: %d, options: %s",
            len(prompt),
            options.describe(),
        )

        command = self.build_command(prompt, options)
        process = self._spawn(
            command, env=self.build_environment(options), cwd=options.working_directory
        )
        handle = self._guard.register(
            process, options.timeout, process_group=USE_PROCESS_GROUPS
        )
        return StreamingOutput(process, handle)

    def is_available(self) -> bool:
        """Return True when the CLI exists on disk and a credential is configured."""

        try:
            if not Path(self._cli_path).exists():
                LOGGER.warning("Claude CLI executable not found at: %s", self._cli_path)
                return False
            if not has_credentials(self._base_environment):
                LOGGER.warning("Neither ANTHROPIC_API_KEY nor CLAUDE_CODE_OAUTH_TOKEN is set")
                return False
        except OSError as exc:
            LOGGER.error("Error checking Claude Code availability: %s", exc)
            return False
        LOGGER.debug("Claude Code CLI is available")
        return True

    def version(self) -> str | None:
        """Return ``claude --version`` output, or None when it cannot be determined."""

        try:
            exit_code, output = self._run_guarded(
                [self._cli_path, VERSION_FLAG],
                timeout=VERSION_TIMEOUT,
                env=merge_environment(
                    self._base_environment, {}, inherit=self._inherit_environment
                ),
                cwd=None,
            )
        except ClaudeCodeError as exc:
            LOGGER.error("Failed to get Claude Code version: %s", exc)
            return None
        if exit_code != 0:
            LOGGER.debug("Version probe exited with code %s", exit_code)
            return None
        return output.strip() or None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _spawn(
        self, command: list[str], *, env: Mapping[str, str], cwd: str | None
    ) -> subprocess.Popen:
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                cwd=cwd,
                env=dict(env),
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                start_new_session=USE_PROCESS_GROUPS,
            )
        except OSError as exc:
            raise ClaudeCodeLaunchError(
                f"Failed to launch Claude Code CLI '{mask_path(command[0])}': {exc}"
            ) from exc

        # The CLI probes stdin even in print mode; leaving it open makes it hang.
        try:
            if process.stdin is not None:
                process.stdin.close()
        except OSError as exc:
            LOGGER.warning("Failed to close stdin (non-fatal): %s", exc)
        LOGGER.debug("Started Claude Code process %s", process.pid)
        return process

    def _run_guarded(
        self,
        command: list[str],
        *,
        timeout: float,
        env: Mapping[str, str],
        cwd: str | None,
    ) -> tuple[int, str]:
        started = time.monotonic()
        process = self._spawn(command, env=env, cwd=cwd)
        handle = self._guard.register(process, timeout, process_group=USE_PROCESS_GROUPS)
        chunks: list[str] = []
        try:
            # Drain output before waiting so a full pipe can never block the child.
            if process.stdout is not None:
                for line in process.stdout:
                    chunks.append(line)
            remaining = max(0.0, timeout - (time.monotonic() - started))
            try:
                exit_code = process.wait(timeout=remaining)
            except subprocess.TimeoutExpired:
                kill_process(process, group=handle.process_group)
                process.wait()
                exit_code = None

            output = "".join(chunks)
            if handle.timed_out or exit_code is None:
                LOGGER.error("Claude Code command timed out after %.1fs", timeout)
                raise ClaudeCodeTimeoutError(
                    f"Claude Code execution timed out after {timeout:.1f}s",
                    timeout=timeout,
                    output=output,
                )
            return exit_code, output
        finally:
            if process.stdout is not None:
                process.stdout.close()
            handle.close()


__all__ = ["ProcessExecutor", "StreamingOutput", "validate_options", "validate_prompt"]
