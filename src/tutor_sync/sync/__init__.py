"""Message deduplication and synchronization layer."""

from tutor_sync.sync.bus import MESSAGES_LOADED, MESSAGES_SAVED, MessageBus, SyncEvent
from tutor_sync.sync.cache import FileCache, InMemoryCache, LocalCache, create_cache
from tutor_sync.sync.dedup import (
    FilterResult,
    SignatureRegistry,
    filter_messages,
    is_welcome_message,
    welcome_message,
)
from tutor_sync.sync.models import (
    LoadResult,
    LoadSource,
    LoadState,
    SaveOutcome,
    SaveResult,
    Signature,
    SyncMessage,
)
from tutor_sync.sync.orchestrator import SyncOrchestrator
from tutor_sync.sync.retry import RetryPolicy
from tutor_sync.sync.store import MessageStore, SQLMessageStore

__all__ = [
    "MESSAGES_LOADED",
    "MESSAGES_SAVED",
    "FileCache",
    "FilterResult",
    "InMemoryCache",
    "LoadResult",
    "LoadSource",
    "LoadState",
    "LocalCache",
    "MessageBus",
    "MessageStore",
    "RetryPolicy",
    "SQLMessageStore",
    "SaveOutcome",
    "SaveResult",
    "Signature",
    "SignatureRegistry",
    "SyncEvent",
    "SyncMessage",
    "SyncOrchestrator",
    "create_cache",
    "filter_messages",
    "is_welcome_message",
    "welcome_message",
]
