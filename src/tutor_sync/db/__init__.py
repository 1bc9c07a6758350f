"""Database module for tutor-sync persistence."""

from tutor_sync.db.models import Conversation, Message
from tutor_sync.db.repository import (
    ConversationRepository,
    MessageRepository,
    get_engine,
    get_session,
    init_db,
)

__all__ = [
    "Conversation",
    "Message",
    "ConversationRepository",
    "MessageRepository",
    "get_engine",
    "get_session",
    "init_db",
]
