"""Deduplication filter for message saves.

Decides which candidate messages actually reach the store:

1. messages flagged ``do_not_persist`` are dropped
2. assistant messages matching the session welcome template are dropped
3. messages whose (conversation, role, content) signature was already
   persisted are dropped

The filter itself is a pure function. ``SignatureRegistry`` holds the
signatures observed as persisted during the lifetime of one orchestrator.
"""

import asyncio
import re
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from tutor_sync.core.logging import get_logger
from tutor_sync.sync.models import Signature, SyncMessage

logger = get_logger(__name__)

# Synthetic greeting shown locally at session start; mode and topic vary.
WELCOME_PATTERN = re.compile(r"Welcome to your .* session! Let's learn about \".*\"")

# LIKE patterns for purging welcome messages that were persisted anyway.
WELCOME_LIKE_PATTERNS = (
    "Welcome to your % session! Let's learn about %",
    "Welcome to your %",
)


def welcome_message(mode: str, topic: str) -> str:
    """Render the welcome template for a session."""
    return f"Welcome to your {mode} session! Let's learn about \"{topic}\""


def is_welcome_message(role: str, content: str) -> bool:
    """Check whether a message is the synthetic welcome banner."""
    return role == "assistant" and WELCOME_PATTERN.search(content) is not None


@dataclass
class FilterResult:
    """Output of :func:`filter_messages`.

    Attributes:
        to_persist: Candidates that should be written, in input order.
        signatures: The input signature set plus the kept candidates.
        dropped: Number of candidates that were filtered out.
    """

    to_persist: list[SyncMessage] = field(default_factory=list)
    signatures: frozenset[Signature] = frozenset()
    dropped: int = 0


def filter_messages(
    conversation_id: str,
    candidates: Sequence[SyncMessage],
    persisted_signatures: Iterable[Signature] = (),
) -> FilterResult:
    """Reduce a candidate batch to the messages that should be persisted.

    Never raises and never mutates ``persisted_signatures``. A signature kept
    earlier in the same batch counts as persisted for later candidates.

    Args:
        conversation_id: Conversation the batch belongs to.
        candidates: Messages proposed for saving.
        persisted_signatures: Signatures already known to be stored.

    Returns:
        FilterResult with the kept messages and the updated signature set.
    """
    seen = set(persisted_signatures)
    to_persist: list[SyncMessage] = []

    for message in candidates:
        if message.do_not_persist:
            logger.debug("message_filtered", reason="do_not_persist")
            continue

        if is_welcome_message(message.role, message.content):
            logger.debug("message_filtered", reason="welcome_template")
            continue

        signature = message.signature(conversation_id)
        if signature in seen:
            logger.debug(
                "message_filtered",
                reason="duplicate",
                content_preview=message.content[:50],
            )
            continue

        seen.add(signature)
        to_persist.append(message)

    dropped = len(candidates) - len(to_persist)
    if dropped:
        logger.info(
            "messages_filtered",
            conversation_id=conversation_id,
            kept=len(to_persist),
            dropped=dropped,
        )

    return FilterResult(
        to_persist=to_persist,
        signatures=frozenset(seen),
        dropped=dropped,
    )


class SignatureRegistry:
    """Signatures observed as persisted, grouped per conversation.

    Each orchestrator owns one; instances share no state.
    """

    def __init__(self) -> None:
        self._signatures: dict[str, set[Signature]] = defaultdict(set)
        self._seeded: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, conversation_id: str) -> asyncio.Lock:
        """Per-conversation lock serializing filter-then-record sequences."""
        if conversation_id not in self._locks:
            self._locks[conversation_id] = asyncio.Lock()
        return self._locks[conversation_id]

    def snapshot(self, conversation_id: str) -> frozenset[Signature]:
        return frozenset(self._signatures.get(conversation_id, ()))

    def add(self, signature: Signature) -> None:
        self._signatures[signature.conversation_id].add(signature)

    def add_many(self, signatures: Iterable[Signature]) -> None:
        for signature in signatures:
            self.add(signature)

    def __contains__(self, signature: object) -> bool:
        if not isinstance(signature, Signature):
            return False
        return signature in self._signatures.get(signature.conversation_id, ())

    def is_seeded(self, conversation_id: str) -> bool:
        return conversation_id in self._seeded

    def mark_seeded(self, conversation_id: str) -> None:
        self._seeded.add(conversation_id)

    def forget(self, conversation_id: str) -> None:
        """Drop everything known about a conversation (e.g. after deletion)."""
        self._signatures.pop(conversation_id, None)
        self._seeded.discard(conversation_id)
        lock = self._locks.get(conversation_id)
        # A held lock stays so a running save keeps its exclusion
        if lock is not None and not lock.locked():
            del self._locks[conversation_id]

    def clear(self) -> None:
        self._signatures.clear()
        self._seeded.clear()
        self._locks = {
            cid: lock for cid, lock in self._locks.items() if lock.locked()
        }
