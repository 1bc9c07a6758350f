"""Wire models for the HTTP API.

Field names follow the JSON the browser client sends (camelCase), the
Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from tutor_sync.db.models import ensure_utc, utc_now
from tutor_sync.sync.models import SyncMessage


class WireModel(BaseModel):
    """Base model accepting and emitting camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class MessageIn(WireModel):
    """A message as sent by the client for syncing."""

    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime | None = None
    do_not_persist: bool = False

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime | None) -> datetime | None:
        """Interpret naive timestamps as UTC."""
        return ensure_utc(v) if v is not None else None

    def to_sync_message(self) -> SyncMessage:
        return SyncMessage(
            role=self.role,
            content=self.content,
            timestamp=self.timestamp,
            do_not_persist=self.do_not_persist,
        )


class MessageOut(WireModel):
    """A message as returned to the client."""

    id: str | None = None
    role: str
    content: str
    timestamp: datetime
    status: str = "sent"

    @classmethod
    def from_sync_message(cls, message: SyncMessage) -> "MessageOut":
        return cls(
            id=message.id,
            role=message.role,
            content=message.content,
            # A cached message without a usable timestamp is shown as current
            timestamp=message.timestamp or utc_now(),
            status=message.status,
        )


class SyncRequest(WireModel):
    """Body of POST /api/v1/message-sync."""

    conversation_id: str = Field(min_length=1)
    messages: list[MessageIn]


class SaveOutcomeOut(BaseModel):
    success: bool
    id: str | None = None
    error: str | None = None


class SyncSaveResponse(BaseModel):
    success: bool
    results: list[SaveOutcomeOut]


class SyncLoadResponse(BaseModel):
    success: bool
    messages: list[MessageOut]
    source: str
    stale: bool


class MessagesResponse(BaseModel):
    success: bool
    messages: list[MessageOut]


class CleanupResponse(BaseModel):
    success: bool
    deleted: int


class ConversationCreate(WireModel):
    """Body of POST /api/v1/conversations."""

    title: str | None = None
    learning_option: str | None = None
    topic: str | None = None


class ConversationItem(WireModel):
    """A conversation without its messages."""

    id: str
    title: str | None
    learning_option: str | None
    topic: str | None
    created_at: datetime
    updated_at: datetime


class ConversationDetail(ConversationItem):
    """A conversation with its messages."""

    messages: list[MessageOut]


class ConversationListMeta(BaseModel):
    """Pagination metadata."""

    total: int
    limit: int
    offset: int


class ConversationListResponse(BaseModel):
    data: list[ConversationItem]
    meta: ConversationListMeta


def error_body(error: str, details: Any = None) -> dict[str, Any]:
    """JSON body used for every error response."""
    body: dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        body["details"] = details
    return body
