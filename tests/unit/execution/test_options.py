"""Tests for ExecutionOptions validation and defaults."""

from __future__ import annotations

from datetime import timedelta

import pytest

from claude_code_runner.execution.errors import ClaudeCodeValidationError
from claude_code_runner.execution.options import ExecutionOptions


def test_defaults_match_documented_values() -> None:
    options = ExecutionOptions.defaults()
    assert options.timeout == 180.0
    assert options.model is None
    assert options.skip_permissions is True
    assert dict(options.env) == {}
    assert options.working_directory is None
    assert options.session_inactivity_timeout is None

    assert ExecutionOptions.session_defaults().timeout == 300.0


@pytest.mark.parametrize("timeout", [0, -1, -0.5])
def test_non_positive_timeout_rejected(timeout: float) -> None:
    with pytest.raises(ClaudeCodeValidationError, match="Timeout must be positive"):
        ExecutionOptions(timeout=timeout)


def test_timeout_must_be_numeric() -> None:
    with pytest.raises(ClaudeCodeValidationError):
        ExecutionOptions(timeout="60")  # type: ignore[arg-type]
    with pytest.raises(ClaudeCodeValidationError):
        ExecutionOptions(timeout=True)  # type: ignore[arg-type]


def test_validation_error_is_also_value_error() -> None:
    with pytest.raises(ValueError):
        ExecutionOptions(timeout=0)


def test_blank_working_directory_rejected() -> None:
    with pytest.raises(ClaudeCodeValidationError):
        ExecutionOptions(working_directory="   ")


def test_non_positive_inactivity_timeout_rejected() -> None:
    with pytest.raises(ClaudeCodeValidationError):
        ExecutionOptions(session_inactivity_timeout=timedelta(0))


def test_env_overlay_is_frozen_copy() -> None:
    source = {"FOO": "bar"}
    options = ExecutionOptions(env=source)
    source["FOO"] = "changed"

    assert options.env["FOO"] == "bar"
    with pytest.raises(TypeError):
        options.env["NEW"] = "value"  # type: ignore[index]


def test_with_overrides_returns_validated_copy() -> None:
    base = ExecutionOptions(model="sonnet")
    updated = base.with_overrides(timeout=5, skip_permissions=False)

    assert updated.timeout == 5.0
    assert updated.skip_permissions is False
    assert updated.model == "sonnet"
    assert base.timeout == 180.0

    with pytest.raises(ClaudeCodeValidationError):
        base.with_overrides(timeout=-3)


def test_describe_omits_environment_values() -> None:
    options = ExecutionOptions(
        env={"ANTHROPIC_API_KEY": "secret"},
        session_inactivity_timeout=timedelta(minutes=2),
    )
    summary = options.describe()

    assert summary["env_keys"] == ["ANTHROPIC_API_KEY"]
    assert "secret" not in repr(summary)
    assert summary["session_inactivity_timeout"] == 120.0
