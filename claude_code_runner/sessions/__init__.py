"""Multi-turn conversations layered on the one-shot Claude Code CLI."""

from .manager import ConversationSessionManager, SessionStatistics
from .session import ConversationSession, SessionState

__all__ = [
    "ConversationSession",
    "ConversationSessionManager",
    "SessionState",
    "SessionStatistics",
]
