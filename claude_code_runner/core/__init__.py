"""Core infrastructure primitives for the runner."""

from __future__ import annotations

from .utils import (
    Settings,
    configure_logging,
    correlation_scope,
    get_correlation_id,
    get_logger,
    load_settings,
    set_correlation_id,
)

__all__ = [
    "Settings",
    "configure_logging",
    "correlation_scope",
    "get_correlation_id",
    "get_logger",
    "load_settings",
    "set_correlation_id",
]
