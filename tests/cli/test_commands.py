"""Tests for the click command line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from claude_code_runner.cli import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def cli_env(fake_cli: Path, cli_log, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> list[str]:
    """Point the CLI at the fake binary and an empty config file."""

    for name in ("CLAUDE_CLI_PATH", "ANTHROPIC_API_KEY", "CLAUDE_CODE_OAUTH_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CLAUDE_CODE_RUNNER_CLI_PATH", str(fake_cli))
    monkeypatch.setenv("CLAUDE_CODE_RUNNER_API_KEY", "test-key")
    config = tmp_path / "empty.toml"
    config.write_text("", encoding="utf-8")
    return ["--config", str(config)]


def test_help_lists_commands(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    for command in ("status", "run", "chat"):
        assert command in result.output


def test_status_reports_version(runner: CliRunner, cli_env: list[str]) -> None:
    result = runner.invoke(cli, [*cli_env, "-q", "--json", "status"], obj={})

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["available"] is True
    assert payload["version"] == "9.9.9 (Claude Code)"


def test_status_without_credentials_fails(
    runner: CliRunner, cli_env: list[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("CLAUDE_CODE_RUNNER_API_KEY")

    result = runner.invoke(cli, [*cli_env, "status"], obj={})

    assert result.exit_code == 1
    assert "ANTHROPIC_API_KEY" in result.output


def test_run_prints_response(runner: CliRunner, cli_env: list[str], cli_log) -> None:
    result = runner.invoke(
        cli, [*cli_env, "-q", "run", "--model", "sonnet", "What", "is", "2+2?"], obj={}
    )

    assert result.exit_code == 0, result.output
    assert "reply: What is 2+2?" in result.output
    assert cli_log.argv_list() == [
        ["-p", "What is 2+2?", "--dangerously-skip-permissions", "--model", "sonnet"]
    ]


def test_run_without_skip_permissions(runner: CliRunner, cli_env: list[str], cli_log) -> None:
    result = runner.invoke(cli, [*cli_env, "-q", "run", "--no-skip-permissions", "hi"], obj={})

    assert result.exit_code == 0, result.output
    assert cli_log.argv_list() == [["-p", "hi"]]


def test_run_stream_json(runner: CliRunner, cli_env: list[str]) -> None:
    result = runner.invoke(cli, [*cli_env, "-q", "--json", "run", "--stream", "lines:3:0"], obj={})

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["lines"] == ["line 0", "line 1", "line 2"]


def test_run_failure_exits_non_zero(runner: CliRunner, cli_env: list[str]) -> None:
    result = runner.invoke(cli, [*cli_env, "-q", "run", "fail:5"], obj={})

    assert result.exit_code == 1
    assert "exit code: 5" in result.output


def test_run_timeout_reported(runner: CliRunner, cli_env: list[str]) -> None:
    result = runner.invoke(cli, [*cli_env, "-q", "run", "--timeout", "0.5", "sleep:30"], obj={})

    assert result.exit_code == 1
    assert "Timed out" in result.output


def test_run_rejects_invalid_timeout(runner: CliRunner, cli_env: list[str], cli_log) -> None:
    result = runner.invoke(cli, [*cli_env, "run", "--timeout", "-1", "hi"], obj={})

    assert result.exit_code != 0
    assert cli_log.records() == []


def test_chat_with_scripted_messages(runner: CliRunner, cli_env: list[str], cli_log) -> None:
    result = runner.invoke(
        cli, [*cli_env, "-q", "--json", "chat", "-m", "hello", "-m", "again"], obj={}
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert [turn["response"] for turn in payload["turns"]] == ["reply: hello", "reply: again"]

    argv = cli_log.argv_list()
    assert argv[0][-2:] == ["--session-id", payload["session_id"]]
    assert argv[1][-2:] == ["--resume", payload["session_id"]]


def test_chat_interactive_until_exit(runner: CliRunner, cli_env: list[str], cli_log) -> None:
    result = runner.invoke(cli, [*cli_env, "-q", "chat"], input="hi there\n/exit\n", obj={})

    assert result.exit_code == 0, result.output
    assert "reply: hi there" in result.output
    assert len(cli_log.argv_list()) == 1
