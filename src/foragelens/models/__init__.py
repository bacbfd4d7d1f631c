from foragelens.models.database import Base, get_db, init_db
from foragelens.models.domain import (
    ConversationMessage,
    ConversationSession,
    LLMCacheEntry,
    LLMUsage,
    MessageRole,
    SessionStatus,
)

__all__ = [
    "Base",
    "get_db",
    "init_db",
    "ConversationMessage",
    "ConversationSession",
    "LLMCacheEntry",
    "LLMUsage",
    "MessageRole",
    "SessionStatus",
]
