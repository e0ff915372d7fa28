"""Utility helpers shared by the runner's components."""

from __future__ import annotations

from .config import Settings, find_config_in_parents, load_settings
from .logger import (
    configure_logging,
    correlation_scope,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)

__all__ = [
    "Settings",
    "configure_logging",
    "correlation_scope",
    "find_config_in_parents",
    "get_correlation_id",
    "get_logger",
    "load_settings",
    "set_correlation_id",
]
