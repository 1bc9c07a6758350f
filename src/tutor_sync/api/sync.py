"""Message sync and message read routes."""

from fastapi import APIRouter, Depends, Query

from tutor_sync.api.auth import CurrentUser, get_current_user
from tutor_sync.api.deps import get_orchestrator
from tutor_sync.api.schemas import (
    CleanupResponse,
    MessageOut,
    MessagesResponse,
    SaveOutcomeOut,
    SyncLoadResponse,
    SyncRequest,
    SyncSaveResponse,
)
from tutor_sync.core.errors import StoreUnavailable
from tutor_sync.core.logging import get_logger
from tutor_sync.sync import LoadSource, LoadState, SyncOrchestrator
from tutor_sync.sync.orchestrator import order_messages

router = APIRouter(prefix="/api/v1")
logger = get_logger(__name__)


@router.post("/message-sync")
async def sync_messages(
    request: SyncRequest,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SyncSaveResponse:
    """Persist the client's unsaved messages for a conversation.

    Welcome banners, do-not-persist messages and already-saved messages are
    skipped, so posting the same list twice is harmless.

    Raises:
        PartialSaveFailure: If every message that should have been written
            failed (500).
    """
    logger.info(
        "sync_save_requested",
        conversation_id=request.conversation_id,
        user_id=user.id,
        count=len(request.messages),
    )
    result = await orchestrator.save(
        request.conversation_id,
        user.id,
        [message.to_sync_message() for message in request.messages],
    )
    result.raise_for_failure()

    return SyncSaveResponse(
        success=True,
        results=[SaveOutcomeOut(**outcome.to_dict()) for outcome in result.outcomes],
    )


@router.get("/message-sync")
async def load_messages(
    conversation_id: str = Query(alias="conversationId", min_length=1),
    user: CurrentUser = Depends(get_current_user),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SyncLoadResponse:
    """Load a conversation's messages, falling back to the cache.

    Raises:
        StoreUnavailable: If the store stayed unreachable and nothing was
            cached (500).
    """
    result = await orchestrator.load(conversation_id)

    store_failed = (
        result.state is LoadState.FALLBACK and result.source is LoadSource.EMPTY
    )
    if store_failed and not result.cancelled:
        raise StoreUnavailable(
            "Failed to retrieve messages",
            f"Store unreachable after {result.attempts} attempts",
        )

    return SyncLoadResponse(
        success=True,
        messages=[MessageOut.from_sync_message(m) for m in result.messages],
        source=result.source.value,
        stale=result.stale,
    )


@router.delete("/message-sync/cleanup-welcome")
async def cleanup_welcome_messages(
    conversation_id: str = Query(alias="conversationId", min_length=1),
    user: CurrentUser = Depends(get_current_user),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> CleanupResponse:
    """Remove welcome banners that were stored by older clients."""
    logger.info(
        "welcome_cleanup_requested", conversation_id=conversation_id, user_id=user.id
    )
    deleted = await orchestrator.cleanup_welcome(conversation_id)
    return CleanupResponse(success=True, deleted=deleted)


@router.get("/messages/conversation/{conversation_id}")
async def get_conversation_messages(
    conversation_id: str,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> MessagesResponse:
    """Read a conversation's messages straight from the store (no fallback)."""
    messages = await orchestrator.store.get_by_conversation(conversation_id)
    logger.info(
        "conversation_messages_read",
        conversation_id=conversation_id,
        count=len(messages),
    )
    return MessagesResponse(
        success=True,
        messages=[MessageOut.from_sync_message(m) for m in messages],
    )


@router.get("/messages")
async def get_user_messages(
    user: CurrentUser = Depends(get_current_user),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> MessagesResponse:
    """Read every message owned by the current user, oldest first."""
    messages = order_messages(await orchestrator.store.get_by_user(user.id))
    return MessagesResponse(
        success=True,
        messages=[MessageOut.from_sync_message(m) for m in messages],
    )
