"""Conversation history API endpoints."""
import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Request, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.db.models import ConversationSession
from app.services.persistence.conversations import ConversationPersistenceService

router = APIRouter()
logger = logging.getLogger(__name__)


class TurnResponse(BaseModel):
    """Conversation turn response model."""
    id: int
    turnNumber: int
    role: str
    content: str
    timestamp: str
    metadata: Dict[str, Any] = {}


class ConversationResponse(BaseModel):
    """Conversation session response model."""
    id: int
    callSid: Optional[str] = None
    fromNumber: Optional[str] = None
    toNumber: Optional[str] = None
    direction: str
    status: str
    startedAt: str
    endedAt: Optional[str] = None
    durationSeconds: Optional[int] = None
    turnCount: int
    messageCount: Optional[int] = None
    history: Optional[List[TurnResponse]] = None


class ConversationListResponse(BaseModel):
    """Conversation list response model."""
    success: bool = True
    conversations: List[ConversationResponse]
    count: int


class ConversationDetailResponse(BaseModel):
    """Single conversation response model."""
    success: bool = True
    conversation: ConversationResponse


def to_response(session: ConversationSession) -> ConversationResponse:
    """Convert a session row into its response model."""
    return ConversationResponse(
        id=session.id,
        callSid=session.call_sid,
        fromNumber=session.from_number,
        toNumber=session.to_number,
        direction=session.direction,
        status=session.status,
        startedAt=session.started_at.isoformat() if session.started_at else "",
        endedAt=session.ended_at.isoformat() if session.ended_at else None,
        durationSeconds=session.duration_seconds,
        turnCount=session.turn_count or 0,
    )


@router.get("/api/conversations", response_model=ConversationListResponse)
async def list_conversations(
    request: Request,
    sessionToken: str = Query(...),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List a student's conversations, newest first."""
    logger.info(
        f"[CONVERSATIONS] List requested - limit: {limit}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        rows = await ConversationPersistenceService(db).list_sessions(sessionToken, limit=limit)
    except Exception as e:
        logger.error(
            f"[CONVERSATIONS] Error listing conversations - Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="Failed to fetch conversation history")

    conversations = []
    for session, message_count in rows:
        response = to_response(session)
        response.messageCount = message_count
        conversations.append(response)

    logger.info(f"[CONVERSATIONS] Found {len(conversations)} conversations")
    return ConversationListResponse(conversations=conversations, count=len(conversations))


@router.get("/api/conversations/{conversation_id}", response_model=ConversationDetailResponse)
async def get_conversation(
    conversation_id: int,
    sessionToken: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Get one conversation with its ordered history."""
    try:
        session = await ConversationPersistenceService(db).get_session_with_history(
            conversation_id, sessionToken
        )
    except Exception as e:
        logger.error(
            f"[CONVERSATIONS] Error fetching conversation {conversation_id} - "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="Failed to fetch conversation history")

    if not session:
        raise HTTPException(status_code=404, detail="Conversation session not found")

    response = to_response(session)
    response.history = [
        TurnResponse(
            id=turn.id,
            turnNumber=turn.turn_number,
            role=turn.role,
            content=turn.content,
            timestamp=turn.timestamp.isoformat() if turn.timestamp else "",
            metadata=turn.turn_metadata or {},
        )
        for turn in session.turns
    ]
    response.messageCount = len(response.history)
    return ConversationDetailResponse(conversation=response)
