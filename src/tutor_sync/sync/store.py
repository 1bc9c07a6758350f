"""Message store adapter.

Translates SyncMessage records to and from the durable store. No business
logic and no retries: callers decide how to react to a ``StoreError``.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlmodel import Session

from tutor_sync.core.errors import StoreError, StoreUnavailable
from tutor_sync.core.logging import get_logger
from tutor_sync.db.models import Message, ensure_utc, utc_now
from tutor_sync.db.repository import MessageRepository, get_engine
from tutor_sync.sync.models import SyncMessage

logger = get_logger(__name__)

T = TypeVar("T")


class MessageStore(ABC):
    """Abstract CRUD interface of the durable message store."""

    @abstractmethod
    async def create(self, message: SyncMessage) -> str:
        """Persist a message and return its store-assigned ID.

        A missing timestamp is set to the current time.

        Raises:
            StoreError: If the message could not be stored.
        """

    @abstractmethod
    async def get_by_conversation(self, conversation_id: str) -> list[SyncMessage]:
        """All messages of a conversation, ascending by timestamp."""

    @abstractmethod
    async def get_by_user(self, user_id: str) -> list[SyncMessage]:
        """All messages owned by a user, in no particular order."""

    @abstractmethod
    async def get_by_id(self, message_id: str) -> SyncMessage | None:
        """A single message, or None if not found."""

    @abstractmethod
    async def delete(self, message_id: str) -> bool:
        """Delete a message. Returns False if it did not exist."""

    @abstractmethod
    async def delete_content_like(
        self, conversation_id: str, pattern: str, role: str | None = None
    ) -> int:
        """Delete a conversation's messages matching a LIKE pattern.

        Matching is case-sensitive. ``role`` restricts deletion to one role.
        """


def to_sync_message(row: Message) -> SyncMessage:
    """Convert a database row into a persisted SyncMessage."""
    return SyncMessage(
        id=row.id,
        conversation_id=row.conversation_id,
        user_id=row.user_id,
        role=row.role,
        content=row.content,
        timestamp=ensure_utc(row.timestamp),
        status="sent",
    )


class SQLMessageStore(MessageStore):
    """MessageStore backed by the SQLModel repository.

    Blocking session work runs in a worker thread so the event loop stays
    free while waiting on the database.
    """

    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine or get_engine()

    async def _run(self, operation: str, func: Callable[[MessageRepository], T]) -> T:
        def work() -> T:
            with Session(self.engine) as session:
                return func(MessageRepository(session))

        try:
            return await asyncio.to_thread(work)
        except (OperationalError, InterfaceError) as e:
            logger.error("store_unavailable", operation=operation, error=str(e))
            raise StoreUnavailable(
                f"Message store unavailable during {operation}", details=str(e)
            ) from e
        except SQLAlchemyError as e:
            logger.error("store_error", operation=operation, error=str(e))
            raise StoreError(
                f"Message store failed during {operation}", details=str(e)
            ) from e

    async def create(self, message: SyncMessage) -> str:
        timestamp = message.timestamp or utc_now()
        message_id = await self._run(
            "create",
            lambda repo: repo.create(
                conversation_id=message.conversation_id,
                user_id=message.user_id,
                role=message.role,
                content=message.content,
                timestamp=timestamp,
            ).id,
        )
        logger.debug(
            "message_created",
            message_id=message_id,
            conversation_id=message.conversation_id,
            role=message.role,
        )
        return message_id

    async def get_by_conversation(self, conversation_id: str) -> list[SyncMessage]:
        return await self._run(
            "get_by_conversation",
            lambda repo: [
                to_sync_message(row)
                for row in repo.list_by_conversation(conversation_id)
            ],
        )

    async def get_by_user(self, user_id: str) -> list[SyncMessage]:
        return await self._run(
            "get_by_user",
            lambda repo: [to_sync_message(row) for row in repo.list_by_user(user_id)],
        )

    async def get_by_id(self, message_id: str) -> SyncMessage | None:
        def fetch(repo: MessageRepository) -> SyncMessage | None:
            row = repo.get(message_id)
            return to_sync_message(row) if row is not None else None

        return await self._run("get_by_id", fetch)

    async def delete(self, message_id: str) -> bool:
        return await self._run("delete", lambda repo: repo.delete(message_id))

    async def delete_content_like(
        self, conversation_id: str, pattern: str, role: str | None = None
    ) -> int:
        return await self._run(
            "delete_content_like",
            lambda repo: repo.delete_content_like(conversation_id, pattern, role=role),
        )
