"""Domain types shared by the sync layer."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Literal, NamedTuple

from tutor_sync.core.errors import PartialSaveFailure
from tutor_sync.db.models import ensure_utc

MessageStatus = Literal["sending", "sent", "error"]


class Signature(NamedTuple):
    """Deduplication key of a message.

    Compared exactly: whitespace and case in ``content`` are significant.
    """

    conversation_id: str
    role: str
    content: str


@dataclass
class SyncMessage:
    """A chat message as seen by the sync layer.

    ``id`` is None until the store has assigned one. ``status`` and
    ``do_not_persist`` only exist on the client side and are never stored.
    """

    role: str
    content: str
    conversation_id: str = ""
    user_id: str = ""
    id: str | None = None
    timestamp: datetime | None = None
    status: MessageStatus = "sending"
    do_not_persist: bool = False

    def signature(self, conversation_id: str | None = None) -> Signature:
        """Build the dedup signature, scoped to ``conversation_id`` if given."""
        return Signature(
            conversation_id or self.conversation_id, self.role, self.content
        )

    def with_status(self, status: MessageStatus, **changes: Any) -> "SyncMessage":
        """Return a copy with a new status and any other field changes."""
        return replace(self, status=status, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the wire and the reconciliation cache."""
        data: dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "status": self.status,
        }
        if self.id is not None:
            data["id"] = self.id
        if self.conversation_id:
            data["conversationId"] = self.conversation_id
        if self.user_id:
            data["userId"] = self.user_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncMessage":
        """Inverse of :meth:`to_dict`.

        Raises:
            KeyError: If ``role`` or ``content`` is missing.
            ValueError: If ``timestamp`` is not ISO-8601.
        """
        raw_timestamp = data.get("timestamp")
        timestamp = (
            ensure_utc(datetime.fromisoformat(raw_timestamp))
            if raw_timestamp
            else None
        )
        return cls(
            role=data["role"],
            content=data["content"],
            conversation_id=data.get("conversationId", ""),
            user_id=data.get("userId", ""),
            id=data.get("id"),
            timestamp=timestamp,
            status=data.get("status", "sent"),
            do_not_persist=bool(data.get("doNotPersist", False)),
        )


@dataclass
class SaveOutcome:
    """Result of persisting one message."""

    success: bool
    id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.id is not None:
            data["id"] = self.id
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class SaveResult:
    """Outcome of a save request.

    ``success`` is False only when the filtered batch was non-empty and
    every message in it failed.
    """

    success: bool
    outcomes: list[SaveOutcome] = field(default_factory=list)
    messages: list[SyncMessage] = field(default_factory=list)

    @property
    def saved_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    def raise_for_failure(self) -> None:
        """Raise PartialSaveFailure if the whole batch failed."""
        if not self.success:
            raise PartialSaveFailure(
                "Failed to save any message", outcomes=self.outcomes
            )


class LoadState(str, Enum):
    """States of a single load invocation."""

    IDLE = "idle"
    FETCHING = "fetching"
    RETRYING = "retrying"
    LOADED = "loaded"
    FALLBACK = "fallback"


class LoadSource(str, Enum):
    """Where a load result came from."""

    STORE = "store"
    CACHE = "cache"
    EMPTY = "empty"


@dataclass
class LoadResult:
    """Messages returned by a load, with provenance.

    ``stale`` is True when the messages come from the reconciliation cache
    because the store could not be reached.
    """

    messages: list[SyncMessage]
    source: LoadSource
    state: LoadState
    attempts: int = 0
    cancelled: bool = False

    @property
    def stale(self) -> bool:
        return self.source is LoadSource.CACHE
