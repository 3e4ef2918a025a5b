"""Durable conversation store used by the relay."""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.services.persistence.conversations import ConversationPersistenceService


class ConversationStore(ABC):
    """Write-side interface the relay journals conversations through."""

    @abstractmethod
    async def create_session(self, session_key: str, call_metadata: Dict[str, Any]) -> int:
        """Create a durable session record and return its handle."""
        pass

    @abstractmethod
    async def append_turn(
        self,
        session_handle: int,
        turn_number: int,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append one turn to a durable session."""
        pass

    @abstractmethod
    async def end_session(self, session_handle: int, turn_pair_count: int) -> None:
        """Mark a durable session as ended."""
        pass


class DatabaseConversationStore(ConversationStore):
    """ConversationStore writing through SQLAlchemy, one AsyncSession per write."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_session(self, session_key: str, call_metadata: Dict[str, Any]) -> int:
        async with self.session_factory() as db:
            session = await ConversationPersistenceService(db).create_session(
                session_token=session_key,
                call_sid=call_metadata.get("callSid"),
                from_number=call_metadata.get("from"),
                to_number=call_metadata.get("to"),
                direction=call_metadata.get("direction"),
            )
            return session.id

    async def append_turn(
        self,
        session_handle: int,
        turn_number: int,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        async with self.session_factory() as db:
            await ConversationPersistenceService(db).append_turn(
                session_handle, turn_number, role, content, metadata
            )

    async def end_session(self, session_handle: int, turn_pair_count: int) -> None:
        async with self.session_factory() as db:
            await ConversationPersistenceService(db).end_session(session_handle, turn_pair_count)
