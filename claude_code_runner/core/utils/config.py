"""Configuration loading utilities for the runner."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .constants import (
    API_KEY_ENV,
    CLI_PATH_ENV,
    DEFAULT_ASYNC_WORKERS,
    DEFAULT_EXECUTION_TIMEOUT,
    DEFAULT_SESSION_CLEANUP_INTERVAL,
    DEFAULT_SESSION_INACTIVITY_TIMEOUT,
    EXTRA_CA_CERTS_ENV,
    HOME_ENV,
    OAUTH_TOKEN_ENV,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from claude_code_runner.execution.options import ExecutionOptions

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib


ENV_PREFIX = "CLAUDE_CODE_RUNNER_"
CONFIG_FILENAMES: tuple[str, ...] = (".claude-code-runner.toml", "claude-code-runner.toml")
DEFAULT_CONFIG_PATHS = (
    Path.home() / ".config" / "claude-code-runner" / "config.toml",
    Path.home() / ".claude-code-runner.toml",
)

_BOOL_FIELDS = {"skip_permissions", "structured_logging"}
_INT_FIELDS = {"async_workers"}
_FLOAT_FIELDS = {"timeout", "session_inactivity_minutes", "session_cleanup_interval"}
_PATH_FIELDS = {"cli_path", "working_directory", "home", "extra_ca_certs"}

# Well-known variables consulted when the prefixed form is absent.
_WELL_KNOWN_ENV = {
    "cli_path": CLI_PATH_ENV,
    "api_key": API_KEY_ENV,
    "oauth_token": OAUTH_TOKEN_ENV,
    "home": HOME_ENV,
    "extra_ca_certs": EXTRA_CA_CERTS_ENV,
}


def find_config_in_parents(
    start_path: Path, config_name: str | Sequence[str] = CONFIG_FILENAMES
) -> Path | None:
    """Search parent directories starting from ``start_path`` for configuration files."""

    if isinstance(config_name, str):
        candidate_names: tuple[str, ...] = (config_name,)
    else:
        candidate_names = tuple(config_name)

    current = start_path.resolve()
    if current.is_file():
        current = current.parent

    while True:
        for name in candidate_names:
            candidate = current / name
            if candidate.is_file():
                return candidate.resolve()
        if current.parent == current:
            break
        current = current.parent
    return None


@dataclass
class Settings:
    """Runtime configuration for the executor and its CLI."""

    cli_path: Path | None = None
    api_key: str | None = None
    oauth_token: str | None = None
    home: Path | None = None
    extra_ca_certs: Path | None = None
    model: str | None = None
    timeout: float = DEFAULT_EXECUTION_TIMEOUT
    skip_permissions: bool = True
    working_directory: Path | None = None
    env: dict[str, str] = field(default_factory=dict)
    session_inactivity_minutes: float = DEFAULT_SESSION_INACTIVITY_TIMEOUT / 60
    session_cleanup_interval: float = DEFAULT_SESSION_CLEANUP_INTERVAL
    async_workers: int = DEFAULT_ASYNC_WORKERS
    log_level: str = "INFO"
    structured_logging: bool = False

    @property
    def session_inactivity_timeout(self) -> timedelta:
        return timedelta(minutes=self.session_inactivity_minutes)

    def has_credentials(self) -> bool:
        return bool(self.api_key or self.oauth_token)

    def to_options(self) -> ExecutionOptions:
        """Build per-call execution options from these settings."""
        from claude_code_runner.execution.options import ExecutionOptions

        return ExecutionOptions(
            timeout=self.timeout,
            model=self.model,
            skip_permissions=self.skip_permissions,
            env=dict(self.env),
            working_directory=str(self.working_directory) if self.working_directory else None,
            session_inactivity_timeout=self.session_inactivity_timeout,
        )


def _cast_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in {"1", "true", "on", "yes", "y"}
    return bool(value)


def _coerce(field_name: str, value: Any) -> Any:
    if field_name in _BOOL_FIELDS:
        return _cast_bool(value)
    if field_name in _INT_FIELDS:
        return int(value)
    if field_name in _FLOAT_FIELDS:
        return float(value)
    if field_name in _PATH_FIELDS:
        return Path(value) if value not in (None, "") else None
    if field_name == "env":
        if isinstance(value, str):
            value = json.loads(value) if value.strip() else {}
        return {str(key): str(item) for key, item in dict(value).items()}
    return value


def _load_from_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    return {k.replace("-", "_"): v for k, v in data.items()}


def _load_from_env(environ: Mapping[str, str], prefix: str = ENV_PREFIX) -> dict[str, Any]:
    env: dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(prefix):
            continue
        env[key[len(prefix) :].lower()] = value
    return env


def _load_well_known_env(environ: Mapping[str, str]) -> dict[str, Any]:
    return {
        field_name: environ[var]
        for field_name, var in _WELL_KNOWN_ENV.items()
        if environ.get(var)
    }


def load_settings(
    explicit_path: Path | None = None, *, environ: Mapping[str, str] | None = None
) -> Settings:
    """Load configuration, merging file and environment sources.

    Precedence (highest first): ``CLAUDE_CODE_RUNNER_*`` variables, the config
    file, then the well-known variables the CLI itself reads
    (``CLAUDE_CLI_PATH``, ``ANTHROPIC_API_KEY`` and friends).
    """

    environ = os.environ if environ is None else environ

    file_data: dict[str, Any] = {}
    if explicit_path:
        file_data.update(_load_from_file(explicit_path))
    else:
        search_paths = []
        cwd = Path.cwd()
        project_config = find_config_in_parents(cwd, CONFIG_FILENAMES)
        if project_config:
            search_paths.append(project_config)
        search_paths.extend(DEFAULT_CONFIG_PATHS)
        for candidate in dict.fromkeys(search_paths):
            file_data = _load_from_file(candidate)
            if file_data:
                break

    merged: dict[str, Any] = {
        **_load_well_known_env(environ),
        **file_data,
        **_load_from_env(environ),
    }

    known_fields = set(Settings.__dataclass_fields__)
    init_kwargs = {key: _coerce(key, value) for key, value in merged.items() if key in known_fields}
    settings = Settings(**init_kwargs)
    if settings.working_directory is not None and not settings.working_directory.is_absolute():
        settings.working_directory = (Path.cwd() / settings.working_directory).resolve()
    return settings


__all__ = ["CONFIG_FILENAMES", "ENV_PREFIX", "Settings", "find_config_in_parents", "load_settings"]
