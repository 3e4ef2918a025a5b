"""Student configuration persistence service."""
from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.db.models import StudentConfig


class StudentConfigPersistenceService:
    """Service for reading and saving student relay configuration."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_token(self, session_token: str) -> Optional[StudentConfig]:
        """Get a student's configuration by session token."""
        result = await self.db.execute(
            select(StudentConfig).where(StudentConfig.session_token == session_token)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        session_token: str,
        student_name: Optional[str] = None,
        system_prompt: Optional[str] = None,
        greeting: Optional[str] = None,
        voice: Optional[str] = None,
        tts_provider: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        openai_api_key: Optional[str] = None,
    ) -> StudentConfig:
        """Create or update a configuration. Fields left as None are not changed."""
        config = await self.get_by_token(session_token)
        if not config:
            config = StudentConfig(session_token=session_token)
            self.db.add(config)

        updates = {
            "student_name": student_name,
            "system_prompt": system_prompt,
            "greeting": greeting,
            "voice": voice,
            "tts_provider": tts_provider,
            "tools": tools,
            "openai_api_key": openai_api_key,
        }
        for field, value in updates.items():
            if value is not None:
                setattr(config, field, value)

        await self.db.commit()
        await self.db.refresh(config)
        return config
