"""Conversation CRUD routes, scoped to the current user."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from tutor_sync.api.auth import CurrentUser, get_current_user
from tutor_sync.api.deps import get_orchestrator
from tutor_sync.api.schemas import (
    ConversationCreate,
    ConversationDetail,
    ConversationItem,
    ConversationListMeta,
    ConversationListResponse,
    MessageOut,
)
from tutor_sync.core.logging import get_logger
from tutor_sync.db import Conversation, ConversationRepository, get_engine
from tutor_sync.db.models import ensure_utc
from tutor_sync.sync import SyncOrchestrator

router = APIRouter(prefix="/api/v1/conversations")
logger = get_logger(__name__)


def to_item(conv: Conversation) -> ConversationItem:
    return ConversationItem(
        id=conv.id,
        title=conv.title,
        learning_option=conv.learning_option,
        topic=conv.topic,
        created_at=ensure_utc(conv.created_at),
        updated_at=ensure_utc(conv.updated_at),
    )


@router.get("")
async def list_conversations(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: CurrentUser = Depends(get_current_user),
) -> ConversationListResponse:
    """Get the current user's conversations with pagination.

    Args:
        limit: Maximum number of conversations (1-100, default: 20)
        offset: Number of conversations to skip (default: 0)

    Returns:
        List of conversations with pagination metadata.
    """
    with Session(get_engine()) as session:
        conv_repo = ConversationRepository(session)
        conversations = conv_repo.list_by_user(user.id, limit=limit, offset=offset)
        total = conv_repo.count_by_user(user.id)

        return ConversationListResponse(
            data=[to_item(conv) for conv in conversations],
            meta=ConversationListMeta(total=total, limit=limit, offset=offset),
        )


@router.post("", status_code=201)
async def create_conversation(
    body: ConversationCreate,
    user: CurrentUser = Depends(get_current_user),
) -> ConversationItem:
    """Start a new conversation for the current user."""
    with Session(get_engine()) as session:
        conv = ConversationRepository(session).create(
            user_id=user.id,
            title=body.title,
            learning_option=body.learning_option,
            topic=body.topic,
        )
        logger.info("conversation_created", conversation_id=conv.id, user_id=user.id)
        return to_item(conv)


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> ConversationDetail:
    """Get a conversation with its synced messages.

    Messages come from the sync load, so an unreachable store yields the
    cached copy rather than an error.

    Raises:
        HTTPException: If the conversation does not exist for this user (404).
    """
    with Session(get_engine()) as session:
        conv = ConversationRepository(session).get_for_user(conversation_id, user.id)
        if conv is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        item = to_item(conv)

    result = await orchestrator.load(conversation_id)

    return ConversationDetail(
        **item.model_dump(),
        messages=[MessageOut.from_sync_message(m) for m in result.messages],
    )


@router.delete("/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> dict[str, bool]:
    """Delete a conversation, its messages and any local sync state.

    Raises:
        HTTPException: If the conversation does not exist for this user (404).
    """
    with Session(get_engine()) as session:
        conv_repo = ConversationRepository(session)
        if conv_repo.get_for_user(conversation_id, user.id) is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        conv_repo.delete(conversation_id)

    await orchestrator.forget(conversation_id)
    logger.info("conversation_deleted", conversation_id=conversation_id, user_id=user.id)
    return {"success": True}
