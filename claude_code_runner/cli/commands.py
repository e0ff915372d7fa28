"""Click commands for running prompts and conversations from a terminal."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from claude_code_runner.core.utils.config import Settings, load_settings
from claude_code_runner.core.utils.logger import configure_logging, get_logger
from claude_code_runner.execution.environment import mask_path
from claude_code_runner.execution.errors import (
    ClaudeCodeError,
    ClaudeCodeTimeoutError,
    ConversationSessionError,
)
from claude_code_runner.execution.options import ExecutionOptions
from claude_code_runner.executor import ClaudeCodeExecutor

LOGGER = get_logger(__name__)

EXIT_COMMANDS = {"/exit", "/quit"}


def _resolve_log_level(verbose: int, quiet: bool) -> str:
    """Resolve log level based on verbosity flags."""
    if quiet:
        return "ERROR"
    if verbose >= 2:
        return "DEBUG"
    if verbose == 1:
        return "INFO"
    return "WARNING"


def _execution_options(
    settings: Settings,
    *,
    model: str | None,
    timeout: float | None,
    cwd: Path | None,
    no_skip_permissions: bool,
) -> ExecutionOptions:
    changes: dict[str, Any] = {}
    if model:
        changes["model"] = model
    if timeout is not None:
        changes["timeout"] = timeout
    if cwd is not None:
        changes["working_directory"] = str(cwd)
    if no_skip_permissions:
        changes["skip_permissions"] = False
    try:
        return settings.to_options().with_overrides(**changes)
    except ClaudeCodeError as exc:
        raise click.BadParameter(str(exc)) from exc


def _build_executor(ctx: click.Context) -> ClaudeCodeExecutor:
    settings: Settings = ctx.obj["settings"]
    try:
        executor = ClaudeCodeExecutor.from_settings(settings)
    except ClaudeCodeError as exc:
        raise click.ClickException(str(exc)) from exc
    ctx.call_on_close(executor.shutdown)
    return executor


def _fail(exc: ClaudeCodeError) -> click.ClickException:
    """Translate a runner error into a click error with a readable message."""

    timed_out = isinstance(exc, ClaudeCodeTimeoutError) or (
        isinstance(exc, ConversationSessionError) and exc.timed_out
    )
    if timed_out:
        return click.ClickException(f"Timed out: {exc}")
    return click.ClickException(str(exc))


def _emit(ctx: click.Context, payload: dict[str, Any], text: str) -> None:
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(payload, indent=2))
    else:
        click.echo(text)


def execution_options(func):
    """Attach the per-call options shared by ``run`` and ``chat``."""

    decorators = [
        click.option("--model", help="Model passed to the CLI with --model."),
        click.option("--timeout", type=float, help="Per-call timeout in seconds."),
        click.option(
            "--cwd",
            type=click.Path(path_type=Path, file_okay=False, exists=True),
            help="Working directory for the CLI process.",
        ),
        click.option(
            "--no-skip-permissions",
            is_flag=True,
            help="Do not pass --dangerously-skip-permissions.",
        ),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    help="Path to configuration file.",
)
@click.option("-v", "--verbose", count=True, help="Verbosity: -v (info), -vv (debug)")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON output")
@click.pass_context
def cli(
    ctx: click.Context, config_path: Path | None, verbose: int, quiet: bool, json_output: bool
) -> None:
    """Run prompts and multi-turn conversations through the Claude Code CLI.

    Examples:
      claude-code-runner status
      claude-code-runner run "summarise README.md"
      claude-code-runner run --stream "list the TODOs in src/"
      claude-code-runner chat
    """
    ctx.ensure_object(dict)
    settings = load_settings(config_path)
    settings.log_level = _resolve_log_level(verbose, quiet)
    configure_logging(settings.log_level, structured=settings.structured_logging)

    ctx.obj["settings"] = settings
    ctx.obj["json_output"] = json_output
    LOGGER.debug("CLI settings loaded (cli_path=%s)", mask_path(settings.cli_path))

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Report whether the Claude CLI is usable and which version it is."""

    executor = _build_executor(ctx)
    available = executor.is_available()
    version = executor.version() if available else None
    payload = {
        "cli_path": executor.cli_path,
        "available": available,
        "version": version,
    }
    lines = [
        f"CLI path:  {executor.cli_path}",
        f"Available: {'yes' if available else 'no'}",
        f"Version:   {version or 'unknown'}",
    ]
    _emit(ctx, payload, "\n".join(lines))
    if not available:
        ctx.exit(1)


@cli.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("--stream", is_flag=True, help="Print output lines as they arrive.")
@execution_options
@click.pass_context
def run(
    ctx: click.Context,
    prompt: tuple[str, ...],
    stream: bool,
    model: str | None,
    timeout: float | None,
    cwd: Path | None,
    no_skip_permissions: bool,
) -> None:
    """Execute a single PROMPT and print the response."""

    text = " ".join(prompt)
    options = _execution_options(
        ctx.obj["settings"],
        model=model,
        timeout=timeout,
        cwd=cwd,
        no_skip_permissions=no_skip_permissions,
    )
    executor = _build_executor(ctx)

    try:
        if stream:
            with executor.execute_streaming(text, options) as lines:
                collected = []
                for line in lines:
                    if not ctx.obj.get("json_output"):
                        click.echo(line)
                    collected.append(line)
            if ctx.obj.get("json_output"):
                click.echo(json.dumps({"prompt": text, "lines": collected}, indent=2))
            return
        output = executor.execute(text, options)
    except ClaudeCodeError as exc:
        raise _fail(exc) from exc

    _emit(ctx, {"prompt": text, "output": output}, output.rstrip("\n"))


@cli.command()
@click.option(
    "-m",
    "--message",
    "messages",
    multiple=True,
    help="Send MESSAGE as a turn instead of reading from the terminal (repeatable).",
)
@execution_options
@click.pass_context
def chat(
    ctx: click.Context,
    messages: tuple[str, ...],
    model: str | None,
    timeout: float | None,
    cwd: Path | None,
    no_skip_permissions: bool,
) -> None:
    """Hold a multi-turn conversation. Type /exit to leave."""

    options = _execution_options(
        ctx.obj["settings"],
        model=model,
        timeout=timeout,
        cwd=cwd,
        no_skip_permissions=no_skip_permissions,
    )
    executor = _build_executor(ctx)
    json_output = ctx.obj.get("json_output")

    try:
        session_id = executor.create_session(options)
    except ClaudeCodeError as exc:
        raise _fail(exc) from exc

    if not json_output:
        click.echo(f"Session {session_id} started. Type /exit to leave.")

    turns: list[dict[str, str]] = []
    pending = list(messages)
    try:
        while True:
            if messages:
                if not pending:
                    break
                message = pending.pop(0)
            else:
                try:
                    message = click.prompt("you", prompt_suffix="> ")
                except click.Abort:
                    break
            if message.strip() in EXIT_COMMANDS:
                break
            if not message.strip():
                continue
            try:
                response = executor.send_message(session_id, message)
            except ClaudeCodeError as exc:
                raise _fail(exc) from exc
            turns.append({"message": message, "response": response})
            if not json_output:
                click.echo(response)
    finally:
        executor.close_session(session_id)

    if json_output:
        click.echo(json.dumps({"session_id": session_id, "turns": turns}, indent=2))


def main() -> None:
    """Console script entry point."""
    cli(obj={})


__all__ = ["chat", "cli", "main", "run", "status"]
