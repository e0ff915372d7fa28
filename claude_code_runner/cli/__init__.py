"""Command line interface for the Claude Code runner."""

from __future__ import annotations

from .commands import cli, main

__all__ = ["cli", "main"]
