"""Environment assembly for Claude Code child processes."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from claude_code_runner.core.utils.constants import (
    API_KEY_ENV,
    CREDENTIAL_ENV_VARS,
    EXTRA_CA_CERTS_ENV,
    HOME_ENV,
    OAUTH_TOKEN_ENV,
)

from .errors import ClaudeCodeConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping


def build_base_environment(
    *,
    api_key: str | None = None,
    oauth_token: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return the variables every invocation needs.

    Explicit credentials win over the ones found in ``environ``. ``HOME`` is
    required by the CLI for its on-disk state and ``NODE_EXTRA_CA_CERTS`` lets
    it trust corporate proxies in restricted networks.
    """

    environ = os.environ if environ is None else environ
    env: dict[str, str] = {}

    api_key = api_key or environ.get(API_KEY_ENV)
    oauth_token = oauth_token or environ.get(OAUTH_TOKEN_ENV)
    if api_key:
        env[API_KEY_ENV] = api_key
    if oauth_token:
        env[OAUTH_TOKEN_ENV] = oauth_token

    for name in (HOME_ENV, EXTRA_CA_CERTS_ENV):
        value = environ.get(name)
        if value:
            env[name] = value
    return env


def has_credentials(env: Mapping[str, str]) -> bool:
    return any(env.get(name) for name in CREDENTIAL_ENV_VARS)


def require_credentials(env: Mapping[str, str]) -> None:
    if not has_credentials(env):
        raise ClaudeCodeConfigurationError(
            f"Neither {API_KEY_ENV} nor {OAUTH_TOKEN_ENV} is set"
        )


def merge_environment(
    base: Mapping[str, str],
    overlay: Mapping[str, str],
    *,
    inherit: bool = True,
) -> dict[str, str]:
    """Layer the parent environment, ``base`` and ``overlay`` in that order."""

    merged = os.environ.copy() if inherit else {}
    merged.update(base)
    merged.update({str(key): str(value) for key, value in overlay.items()})
    return merged


def mask_path(path: str | os.PathLike[str] | None) -> str:
    """Keep only the final path component for log output."""
    if path is None:
        return "None"
    text = os.fspath(path)
    _, sep, tail = text.rpartition("/")
    if sep and tail:
        return f".../{tail}"
    return text


__all__ = [
    "build_base_environment",
    "has_credentials",
    "mask_path",
    "merge_environment",
    "require_credentials",
]
