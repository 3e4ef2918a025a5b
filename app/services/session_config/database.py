"""Session configuration backed by the student_configs table."""
import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.services.persistence.student_configs import StudentConfigPersistenceService
from app.services.session_config.base import SessionConfig, SessionConfigProvider
from app.services.session_config.tools import normalize_tools

logger = logging.getLogger(__name__)


class DatabaseConfigProvider(SessionConfigProvider):
    """Reads student configuration from the database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_config(self, session_key: str) -> Optional[SessionConfig]:
        async with self.session_factory() as db:
            record = await StudentConfigPersistenceService(db).get_by_token(session_key)
        if not record:
            return None

        return SessionConfig(
            system_prompt=record.system_prompt,
            greeting=record.greeting,
            voice=record.voice,
            tools=normalize_tools(record.tools),
            openai_api_key=record.openai_api_key,
        )
