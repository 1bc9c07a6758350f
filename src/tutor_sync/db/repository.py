"""Repository layer for database operations.

Provides CRUD operations for Conversation and Message entities.
Uses SQLite for local persistence (data/tutor_sync.db by default).
"""

import re
from collections.abc import Generator
from datetime import datetime
from pathlib import Path

from sqlalchemy import func
from sqlmodel import Session, SQLModel, col, create_engine, select

from tutor_sync.core.config import settings
from tutor_sync.db.models import (
    Conversation,
    Message,
    ensure_utc,
    generate_id,
    utc_now,
)

# Module-level engine (initialized on first use)
_engine = None


def like_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a SQL LIKE pattern into a case-sensitive regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def get_engine(db_path: Path | None = None):
    """Get or create the database engine.

    Args:
        db_path: Optional custom database path. Defaults to settings.database_path

    Returns:
        SQLModel engine instance
    """
    global _engine
    if _engine is None:
        path = db_path or settings.database_path
        path.parent.mkdir(parents=True, exist_ok=True)
        database_url = f"sqlite:///{path}"
        _engine = create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
        )
    return _engine


def init_db(db_path: Path | None = None) -> None:
    """Initialize the database by creating all tables.

    Args:
        db_path: Optional custom database path
    """
    engine = get_engine(db_path)
    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    """Get a database session.

    Yields:
        Database session bound to the module engine
    """
    engine = get_engine()
    with Session(engine) as session:
        yield session


class ConversationRepository:
    """Repository for Conversation CRUD operations."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        user_id: str,
        title: str | None = None,
        learning_option: str | None = None,
        topic: str | None = None,
    ) -> Conversation:
        """Create a new conversation.

        Args:
            user_id: Owner of the conversation
            title: Optional conversation title
            learning_option: Optional session mode
            topic: Optional session topic

        Returns:
            Created Conversation instance
        """
        now = utc_now()
        conversation = Conversation(
            id=generate_id(),
            user_id=user_id,
            title=title,
            learning_option=learning_option,
            topic=topic,
            created_at=now,
            updated_at=now,
        )
        self.session.add(conversation)
        self.session.commit()
        self.session.refresh(conversation)
        return conversation

    def get(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        return self.session.get(Conversation, conversation_id)

    def get_for_user(self, conversation_id: str, user_id: str) -> Conversation | None:
        """Get a conversation by ID only if it belongs to ``user_id``."""
        conversation = self.get(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            return None
        return conversation

    def list_by_user(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> list[Conversation]:
        """List a user's conversations ordered by updated_at descending.

        Args:
            user_id: Owner of the conversations
            limit: Maximum number of conversations to return
            offset: Number of conversations to skip

        Returns:
            List of Conversation instances
        """
        statement = (
            select(Conversation)
            .where(Conversation.user_id == user_id)
            .order_by(col(Conversation.updated_at).desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    def count_by_user(self, user_id: str) -> int:
        """Count a user's conversations."""
        statement = (
            select(func.count())
            .select_from(Conversation)
            .where(Conversation.user_id == user_id)
        )
        return self.session.exec(statement).one()

    def touch(self, conversation_id: str) -> Conversation | None:
        """Update the updated_at timestamp of a conversation.

        Returns:
            Updated Conversation if found, None otherwise
        """
        conversation = self.get(conversation_id)
        if conversation is None:
            return None

        conversation.updated_at = utc_now()
        self.session.add(conversation)
        self.session.commit()
        self.session.refresh(conversation)
        return conversation

    def delete(self, conversation_id: str) -> bool:
        """Delete a conversation and all its messages.

        Returns:
            True if deleted, False if not found
        """
        conversation = self.get(conversation_id)
        if conversation is None:
            return False

        statement = select(Message).where(Message.conversation_id == conversation_id)
        for message in self.session.exec(statement).all():
            self.session.delete(message)

        self.session.delete(conversation)
        self.session.commit()
        return True


class MessageRepository:
    """Repository for Message CRUD operations."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        conversation_id: str,
        user_id: str,
        role: str,
        content: str,
        timestamp: datetime | None = None,
    ) -> Message:
        """Create a new message.

        Args:
            conversation_id: Conversation the message belongs to
            user_id: Owner of the message
            role: Message role (user, assistant or system)
            content: Message text content
            timestamp: Authoring time; defaults to now

        Returns:
            Created Message instance
        """
        now = utc_now()
        message = Message(
            id=generate_id(),
            conversation_id=conversation_id,
            user_id=user_id,
            role=role,
            content=content,
            timestamp=ensure_utc(timestamp) if timestamp else now,
            created_at=now,
        )
        self.session.add(message)
        self.session.commit()
        self.session.refresh(message)

        # Update conversation's updated_at when it lives in this database
        ConversationRepository(self.session).touch(conversation_id)

        return message

    def get(self, message_id: str) -> Message | None:
        """Get a message by ID."""
        return self.session.get(Message, message_id)

    def list_by_conversation(
        self, conversation_id: str, limit: int | None = None, offset: int = 0
    ) -> list[Message]:
        """List messages for a conversation in authoring order.

        Messages are ordered by timestamp ascending; equal timestamps keep
        the order in which they were written.

        Args:
            conversation_id: The conversation ID
            limit: Maximum number of messages to return (None for all)
            offset: Number of messages to skip

        Returns:
            List of Message instances
        """
        statement = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(col(Message.timestamp).asc(), col(Message.created_at).asc())
            .offset(offset)
        )
        if limit is not None:
            statement = statement.limit(limit)
        return list(self.session.exec(statement).all())

    def list_by_user(self, user_id: str) -> list[Message]:
        """List all messages owned by a user, in no particular order."""
        statement = select(Message).where(Message.user_id == user_id)
        return list(self.session.exec(statement).all())

    def delete(self, message_id: str) -> bool:
        """Delete a message.

        Returns:
            True if deleted, False if not found
        """
        message = self.get(message_id)
        if message is None:
            return False

        self.session.delete(message)
        self.session.commit()
        return True

    def delete_content_like(
        self, conversation_id: str, pattern: str, role: str | None = None
    ) -> int:
        """Delete a conversation's messages whose content matches a LIKE pattern.

        Matching is case-sensitive, unlike SQLite's own LIKE.

        Args:
            conversation_id: The conversation ID
            pattern: SQL LIKE pattern, ``%`` matches any run of characters
                and ``_`` a single character
            role: Only delete messages with this role (None for any)

        Returns:
            Number of deleted messages
        """
        statement = select(Message).where(
            Message.conversation_id == conversation_id,
            col(Message.content).like(pattern),
        )
        if role is not None:
            statement = statement.where(Message.role == role)

        matcher = like_to_regex(pattern)
        messages = [
            message
            for message in self.session.exec(statement).all()
            if matcher.fullmatch(message.content)
        ]
        for message in messages:
            self.session.delete(message)
        self.session.commit()
        return len(messages)
