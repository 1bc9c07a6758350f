"""Sync orchestrator: idempotent saves and retrying loads.

Save: filter candidates, then persist survivors concurrently with
independent per-message outcomes.

Load: a small state machine per invocation::

    IDLE -> FETCHING -> LOADED
                     -> RETRYING -> FETCHING -> ...
                     -> FALLBACK   (retries exhausted: cache or empty)

Concurrent loads of one conversation share a single in-flight task, and
``cancel`` stops a pending retry sequence.
"""

import asyncio
from collections.abc import Sequence
from operator import attrgetter

from tutor_sync.core.errors import StoreError
from tutor_sync.core.logging import get_logger
from tutor_sync.db.models import utc_now
from tutor_sync.sync.bus import MESSAGES_LOADED, MESSAGES_SAVED, MessageBus, SyncEvent
from tutor_sync.sync.cache import LocalCache
from tutor_sync.sync.dedup import (
    WELCOME_LIKE_PATTERNS,
    SignatureRegistry,
    filter_messages,
)
from tutor_sync.sync.models import (
    LoadResult,
    LoadSource,
    LoadState,
    SaveOutcome,
    SaveResult,
    SyncMessage,
)
from tutor_sync.sync.retry import RetryPolicy, SleepFunc
from tutor_sync.sync.store import MessageStore

logger = get_logger(__name__)


def order_messages(messages: Sequence[SyncMessage]) -> list[SyncMessage]:
    """Stable sort by timestamp; undated messages keep their order at the end."""
    dated = [m for m in messages if m.timestamp is not None]
    undated = [m for m in messages if m.timestamp is None]
    dated.sort(key=attrgetter("timestamp"))
    return dated + undated


class SyncOrchestrator:
    """Ties the store, the dedup filter and the reconciliation cache together.

    Args:
        store: Durable message store.
        cache: Reconciliation cache used as load fallback.
        registry: Signatures already persisted; a fresh one by default.
        retry_policy: Backoff policy for loads.
        sleep: Awaitable delay function, ``asyncio.sleep`` by default.
        bus: Channel receiving load/save notifications.
    """

    def __init__(
        self,
        store: MessageStore,
        cache: LocalCache,
        registry: SignatureRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: SleepFunc | None = None,
        bus: MessageBus | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.registry = registry or SignatureRegistry()
        self.retry_policy = retry_policy or RetryPolicy()
        self.bus = bus or MessageBus()
        self._sleep = sleep or asyncio.sleep
        self._inflight: dict[str, asyncio.Task[LoadResult]] = {}
        self._states: dict[str, LoadState] = {}

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def save(
        self,
        conversation_id: str,
        user_id: str,
        candidates: Sequence[SyncMessage],
    ) -> SaveResult:
        """Persist the new messages among ``candidates``.

        Args:
            conversation_id: Conversation the messages belong to.
            user_id: Owner of the messages.
            candidates: Client-held messages, possibly already saved.

        Returns:
            SaveResult with one outcome per message that was written.
        """
        if not candidates:
            return SaveResult(success=True)

        async with self.registry.lock(conversation_id):
            existing = await self._seed_signatures(conversation_id)

            filtered = filter_messages(
                conversation_id,
                candidates,
                self.registry.snapshot(conversation_id),
            )
            if not filtered.to_persist:
                logger.info(
                    "save_nothing_new",
                    conversation_id=conversation_id,
                    candidates=len(candidates),
                )
                return SaveResult(success=True)

            pending = [
                message.with_status(
                    "sending",
                    conversation_id=conversation_id,
                    user_id=user_id,
                    timestamp=message.timestamp or utc_now(),
                )
                for message in filtered.to_persist
            ]
            outcomes = list(
                await asyncio.gather(*(self._persist(message) for message in pending))
            )

            settled: list[SyncMessage] = []
            for message, outcome in zip(pending, outcomes):
                if outcome.success:
                    self.registry.add(message.signature(conversation_id))
                    settled.append(message.with_status("sent", id=outcome.id))
                else:
                    settled.append(message.with_status("error"))

        saved = [message for message in settled if message.status == "sent"]
        logger.info(
            "messages_saved",
            conversation_id=conversation_id,
            saved=len(saved),
            failed=len(settled) - len(saved),
            filtered_out=filtered.dropped,
        )

        if saved:
            await self._remember_saved(conversation_id, saved, existing)
            await self.bus.publish(
                SyncEvent(
                    name=MESSAGES_SAVED,
                    conversation_id=conversation_id,
                    messages=tuple(saved),
                )
            )

        return SaveResult(success=bool(saved), outcomes=outcomes, messages=settled)

    async def _persist(self, message: SyncMessage) -> SaveOutcome:
        try:
            message_id = await self.store.create(message)
        except StoreError as e:
            logger.error(
                "message_save_failed",
                conversation_id=message.conversation_id,
                role=message.role,
                error=e.message,
            )
            return SaveOutcome(success=False, error=e.message)
        return SaveOutcome(success=True, id=message_id)

    async def _seed_signatures(self, conversation_id: str) -> list[SyncMessage] | None:
        """Record what the store already holds, once per conversation.

        Returns:
            The stored messages if they were read by this call, else None.
        """
        if self.registry.is_seeded(conversation_id):
            return None
        try:
            existing = await self.store.get_by_conversation(conversation_id)
        except StoreError as e:
            logger.warning(
                "signature_seed_failed", conversation_id=conversation_id, error=e.message
            )
            return None
        self.registry.add_many(m.signature(conversation_id) for m in existing)
        self.registry.mark_seeded(conversation_id)
        return existing

    async def _remember_saved(
        self,
        conversation_id: str,
        saved: list[SyncMessage],
        existing: list[SyncMessage] | None,
    ) -> None:
        """Merge newly saved messages into the cached list.

        An empty cache is only filled when the full stored list is at hand,
        so the cache never holds a fragment of the conversation.
        """
        cached = await self._read_cache(conversation_id)
        if not cached:
            if existing is None:
                logger.debug("cache_refresh_skipped", conversation_id=conversation_id)
                return
            cached = existing
        known_ids = {m.id for m in cached if m.id is not None}
        merged = cached + [m for m in saved if m.id not in known_ids]
        await self._write_cache(conversation_id, order_messages(merged))

    # Cache backends may touch the filesystem; keep that off the event loop

    async def _read_cache(self, conversation_id: str) -> list[SyncMessage]:
        return await asyncio.to_thread(self.cache.read, conversation_id)

    async def _write_cache(
        self, conversation_id: str, messages: list[SyncMessage]
    ) -> None:
        await asyncio.to_thread(self.cache.write, conversation_id, messages)

    async def _clear_cache(self, conversation_id: str) -> None:
        await asyncio.to_thread(self.cache.clear, conversation_id)

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def state(self, conversation_id: str) -> LoadState:
        """State of the in-flight load of a conversation, IDLE if none."""
        return self._states.get(conversation_id, LoadState.IDLE)

    async def load(self, conversation_id: str) -> LoadResult:
        """Fetch a conversation's messages, retrying and falling back as needed.

        Never raises for store failures: after the retries are exhausted the
        cached list (marked stale) or an empty list is returned.
        """
        task = self._inflight.get(conversation_id)
        if task is None:
            task = asyncio.create_task(self._load(conversation_id))
            self._inflight[conversation_id] = task
            task.add_done_callback(
                lambda done: self._release(conversation_id, done)
            )
        else:
            logger.debug("load_coalesced", conversation_id=conversation_id)

        # Shielded so one caller going away does not cancel the shared fetch
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            # cancel() hit the task before it started running
            return LoadResult(
                messages=[],
                source=LoadSource.EMPTY,
                state=LoadState.FALLBACK,
                cancelled=True,
            )

    def cancel(self, conversation_id: str) -> bool:
        """Cancel the in-flight load of a conversation.

        Pending backoff waits stop immediately. A store request already on
        the wire finishes, but its result is discarded.

        Returns:
            True if a load was in flight.
        """
        task = self._inflight.get(conversation_id)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("load_cancel_requested", conversation_id=conversation_id)
        return True

    def _release(self, conversation_id: str, task: asyncio.Task[LoadResult]) -> None:
        if self._inflight.get(conversation_id) is task:
            self._states.pop(conversation_id, None)
            del self._inflight[conversation_id]

    async def _load(self, conversation_id: str) -> LoadResult:
        self._states[conversation_id] = LoadState.IDLE
        attempt = 0

        try:
            while True:
                self._states[conversation_id] = LoadState.FETCHING
                try:
                    messages = await self.store.get_by_conversation(conversation_id)
                except StoreError as e:
                    if attempt >= self.retry_policy.max_attempts:
                        logger.error(
                            "load_retries_exhausted",
                            conversation_id=conversation_id,
                            attempts=attempt + 1,
                            error=e.message,
                        )
                        break
                    delay = self.retry_policy.delay(attempt)
                    self._states[conversation_id] = LoadState.RETRYING
                    logger.warning(
                        "load_retry_scheduled",
                        conversation_id=conversation_id,
                        attempt=attempt + 1,
                        delay_s=delay,
                        error=e.message,
                    )
                    await self._sleep(delay)
                    attempt += 1
                    continue

                return await self._loaded(conversation_id, messages, attempt + 1)
        except asyncio.CancelledError:
            self._states[conversation_id] = LoadState.FALLBACK
            logger.info("load_cancelled", conversation_id=conversation_id)
            return LoadResult(
                messages=[],
                source=LoadSource.EMPTY,
                state=LoadState.FALLBACK,
                attempts=attempt + 1,
                cancelled=True,
            )

        return await self._fallback(conversation_id, attempt + 1)

    async def _loaded(
        self, conversation_id: str, messages: list[SyncMessage], attempts: int
    ) -> LoadResult:
        # The store result replaces whatever the cache held
        await self._write_cache(conversation_id, messages)
        self._states[conversation_id] = LoadState.LOADED
        logger.info(
            "messages_loaded",
            conversation_id=conversation_id,
            count=len(messages),
            attempts=attempts,
        )
        if messages:
            await self.bus.publish(
                SyncEvent(
                    name=MESSAGES_LOADED,
                    conversation_id=conversation_id,
                    messages=tuple(messages),
                    source=LoadSource.STORE.value,
                )
            )
        return LoadResult(
            messages=messages,
            source=LoadSource.STORE,
            state=LoadState.LOADED,
            attempts=attempts,
        )

    async def _fallback(self, conversation_id: str, attempts: int) -> LoadResult:
        self._states[conversation_id] = LoadState.FALLBACK
        cached = await self._read_cache(conversation_id)
        if not cached:
            logger.warning("load_fallback_empty", conversation_id=conversation_id)
            return LoadResult(
                messages=[],
                source=LoadSource.EMPTY,
                state=LoadState.FALLBACK,
                attempts=attempts,
            )

        logger.warning(
            "load_fallback_cache", conversation_id=conversation_id, count=len(cached)
        )
        await self.bus.publish(
            SyncEvent(
                name=MESSAGES_LOADED,
                conversation_id=conversation_id,
                messages=tuple(cached),
                source=LoadSource.CACHE.value,
            )
        )
        return LoadResult(
            messages=cached,
            source=LoadSource.CACHE,
            state=LoadState.FALLBACK,
            attempts=attempts,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def cleanup_welcome(self, conversation_id: str) -> int:
        """Delete assistant welcome messages that were persisted anyway.

        Each pattern is tried independently; a failing pattern is logged and
        the others still run.

        Returns:
            Total number of deleted messages.
        """
        total = 0
        for pattern in WELCOME_LIKE_PATTERNS:
            try:
                deleted = await self.store.delete_content_like(
                    conversation_id, pattern, role="assistant"
                )
            except StoreError as e:
                logger.error(
                    "welcome_cleanup_pattern_failed",
                    conversation_id=conversation_id,
                    pattern=pattern,
                    error=e.message,
                )
                continue
            total += deleted

        if total:
            await self._clear_cache(conversation_id)
        logger.info(
            "welcome_cleanup_done", conversation_id=conversation_id, deleted=total
        )
        return total

    async def forget(self, conversation_id: str) -> None:
        """Drop local state of a deleted conversation."""
        self.cancel(conversation_id)
        self.registry.forget(conversation_id)
        await self._clear_cache(conversation_id)
        self._states.pop(conversation_id, None)
