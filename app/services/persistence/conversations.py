"""Conversation persistence service."""
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, func
from sqlalchemy.orm import selectinload

from app.db.models import ConversationSession, ConversationTurn


class ConversationPersistenceService:
    """Service for persisting conversation sessions and their turns."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_session(
        self,
        session_token: str,
        call_sid: Optional[str] = None,
        from_number: Optional[str] = None,
        to_number: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> ConversationSession:
        """Create a new active conversation session."""
        session = ConversationSession(
            session_token=session_token,
            call_sid=call_sid,
            from_number=from_number,
            to_number=to_number,
            direction=direction or "inbound",
            status="active",
        )
        self.db.add(session)
        await self.db.commit()
        await self.db.refresh(session)
        return session

    async def get_session(self, session_id: int) -> Optional[ConversationSession]:
        """Get a conversation session by ID."""
        result = await self.db.execute(
            select(ConversationSession).where(ConversationSession.id == session_id)
        )
        return result.scalar_one_or_none()

    async def get_session_with_history(
        self, session_id: int, session_token: str
    ) -> Optional[ConversationSession]:
        """Get a session owned by session_token, with its turns loaded in order."""
        result = await self.db.execute(
            select(ConversationSession)
            .where(
                ConversationSession.id == session_id,
                ConversationSession.session_token == session_token,
            )
            .options(selectinload(ConversationSession.turns))
        )
        return result.scalar_one_or_none()

    async def append_turn(
        self,
        session_id: int,
        turn_number: int,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ConversationTurn:
        """Append one turn to a session's history."""
        turn = ConversationTurn(
            conversation_session_id=session_id,
            turn_number=turn_number,
            role=role,
            content=content,
            turn_metadata=metadata or {},
        )
        self.db.add(turn)
        await self.db.commit()
        await self.db.refresh(turn)
        return turn

    async def end_session(
        self, session_id: int, turn_count: int, ended_at: Optional[datetime] = None
    ) -> Optional[ConversationSession]:
        """Mark a session completed and record its duration and turn count."""
        session = await self.get_session(session_id)
        if not session:
            return None

        ended_at = ended_at or datetime.utcnow()
        session.ended_at = ended_at
        session.duration_seconds = max(0, int((ended_at - session.started_at).total_seconds()))
        session.turn_count = turn_count or 0
        session.status = "completed"
        await self.db.commit()
        await self.db.refresh(session)
        return session

    async def list_sessions(
        self, session_token: str, limit: int = 50
    ) -> List[Tuple[ConversationSession, int]]:
        """List a student's sessions, newest first, with their message counts."""
        message_counts = (
            select(
                ConversationTurn.conversation_session_id,
                func.count(ConversationTurn.id).label("message_count"),
            )
            .group_by(ConversationTurn.conversation_session_id)
            .subquery()
        )
        result = await self.db.execute(
            select(ConversationSession, func.coalesce(message_counts.c.message_count, 0))
            .outerjoin(
                message_counts,
                message_counts.c.conversation_session_id == ConversationSession.id,
            )
            .where(ConversationSession.session_token == session_token)
            .order_by(desc(ConversationSession.started_at), desc(ConversationSession.id))
            .limit(limit)
        )
        return [(row[0], int(row[1])) for row in result.all()]
