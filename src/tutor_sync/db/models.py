"""SQLModel models for conversation and message persistence.

Schema conventions:
- Table names: snake_case plural (conversations, messages)
- Column names: snake_case
- Messages reference conversations by id only; a conversation may live in
  another store, so no foreign key is enforced.
"""

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from sqlmodel import Field, SQLModel

# Type alias for message role
MessageRole = Literal["user", "assistant", "system"]
MESSAGE_ROLES: tuple[str, ...] = ("user", "assistant", "system")


def generate_id() -> str:
    """Generate a UUID-based ID for database records."""
    return str(uuid4())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive datetimes (as returned by SQLite) are taken to be UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Conversation(SQLModel, table=True):
    """Conversation model representing a learning session.

    Attributes:
        id: UUID-based primary key
        user_id: Owner of the conversation
        title: Optional conversation title
        learning_option: Session mode (e.g. "testing", "socratic")
        topic: What the session is about
        created_at: When the conversation was created
        updated_at: When the conversation was last updated
    """

    __tablename__ = "conversations"
    __table_args__ = {"extend_existing": True}

    id: str = Field(default_factory=generate_id, primary_key=True)
    user_id: str = Field(index=True)
    title: str | None = None
    learning_option: str | None = None
    topic: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Message(SQLModel, table=True):
    """Message model representing a single persisted chat message.

    Attributes:
        id: UUID-based primary key
        conversation_id: Conversation the message belongs to
        user_id: Owner of the message
        role: Message role (user, assistant or system)
        content: Message text content
        timestamp: When the message was authored; the ordering key
        created_at: When the row was written; breaks timestamp ties
    """

    __tablename__ = "messages"
    __table_args__ = {"extend_existing": True}

    id: str = Field(default_factory=generate_id, primary_key=True)
    conversation_id: str = Field(index=True)
    user_id: str = Field(index=True)
    role: str  # "user", "assistant" or "system" - stored as string in DB
    content: str
    timestamp: datetime = Field(default_factory=utc_now, index=True)
    created_at: datetime = Field(default_factory=utc_now)
