"""Reconciliation cache: last known-good message list per conversation.

The cache bridges transient store failures. It is never merged with a
fresh store result; a successful load replaces the cached list in full.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from urllib.parse import quote

from tutor_sync.core.logging import get_logger
from tutor_sync.sync.models import SyncMessage

logger = get_logger(__name__)


class LocalCache(ABC):
    """Abstract base class for reconciliation caches.

    ``read`` is best-effort: implementations must return an empty list
    instead of raising when the backing storage is missing or corrupt.
    """

    @abstractmethod
    def read(self, conversation_id: str) -> list[SyncMessage]:
        """Return the cached messages for a conversation, or an empty list."""

    @abstractmethod
    def write(self, conversation_id: str, messages: Sequence[SyncMessage]) -> None:
        """Overwrite the cached list for a conversation."""

    @abstractmethod
    def clear(self, conversation_id: str) -> None:
        """Remove the cached list for a conversation."""


class InMemoryCache(LocalCache):
    """Process-local cache, used when no cache directory is configured."""

    def __init__(self) -> None:
        self._entries: dict[str, list[dict]] = {}

    def read(self, conversation_id: str) -> list[SyncMessage]:
        entries = self._entries.get(conversation_id, [])
        return [SyncMessage.from_dict(entry) for entry in entries]

    def write(self, conversation_id: str, messages: Sequence[SyncMessage]) -> None:
        # Stored serialized so later mutation of the caller's objects
        # cannot leak into the cache.
        self._entries[conversation_id] = [message.to_dict() for message in messages]

    def clear(self, conversation_id: str) -> None:
        self._entries.pop(conversation_id, None)


class FileCache(LocalCache):
    """JSON file per conversation under a directory.

    Files are named ``conversation_<id>_messages.json``. Writes go to a
    temporary file that atomically replaces the previous one.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, conversation_id: str) -> Path:
        safe_id = quote(conversation_id, safe="")
        return self.directory / f"conversation_{safe_id}_messages.json"

    def read(self, conversation_id: str) -> list[SyncMessage]:
        path = self.path_for(conversation_id)
        if not path.exists():
            return []

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(raw, list):
                raise ValueError("cache payload is not a list")
            return [SyncMessage.from_dict(entry) for entry in raw]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(
                "cache_read_failed",
                conversation_id=conversation_id,
                path=str(path),
                error=str(e),
            )
            return []

    def write(self, conversation_id: str, messages: Sequence[SyncMessage]) -> None:
        path = self.path_for(conversation_id)
        payload = json.dumps(
            [message.to_dict() for message in messages], ensure_ascii=False
        )

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.directory, prefix=".tmp-", suffix=".json"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                    tmp.write(payload)
                os.replace(tmp_name, path)
            except OSError:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning(
                "cache_write_failed",
                conversation_id=conversation_id,
                path=str(path),
                error=str(e),
            )
            return

        logger.debug(
            "cache_written", conversation_id=conversation_id, count=len(messages)
        )

    def clear(self, conversation_id: str) -> None:
        try:
            self.path_for(conversation_id).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(
                "cache_clear_failed", conversation_id=conversation_id, error=str(e)
            )


def create_cache(directory: Path | None) -> LocalCache:
    """Build the configured cache: file-backed if a directory is given."""
    if directory is None:
        return InMemoryCache()
    return FileCache(directory)
