"""Database models."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON, Index
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship

Base = declarative_base()


class StudentConfig(Base):
    """Per-student relay configuration, keyed by session token."""

    __tablename__ = "student_configs"

    id = Column(Integer, primary_key=True, index=True)
    session_token = Column(String, unique=True, index=True, nullable=False)
    student_name = Column(String, nullable=True)
    system_prompt = Column(Text, nullable=True)
    greeting = Column(Text, nullable=True)
    voice = Column(String, nullable=True)
    tts_provider = Column(String, nullable=True)  # elevenlabs, google, deepgram, amazon
    tools = Column(JSON, nullable=True)  # List of normalized tool definitions
    openai_api_key = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class ConversationSession(Base):
    """One relayed phone call."""

    __tablename__ = "conversation_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_token = Column(String, index=True, nullable=False)
    call_sid = Column(String, nullable=True)
    from_number = Column(String, nullable=True)
    to_number = Column(String, nullable=True)
    direction = Column(String, default="inbound", nullable=False)
    status = Column(String, default="active", nullable=False)  # active, completed
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    turn_count = Column(Integer, default=0, nullable=False)

    # Relationships
    turns = relationship(
        "ConversationTurn",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ConversationTurn.turn_number",
    )


class ConversationTurn(Base):
    """One journaled turn of a conversation."""

    __tablename__ = "conversation_history"
    __table_args__ = (
        Index("idx_conversation_history_session", "conversation_session_id", "turn_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    conversation_session_id = Column(
        Integer, ForeignKey("conversation_sessions.id", ondelete="CASCADE"), nullable=False
    )
    turn_number = Column(Integer, nullable=False)
    role = Column(String, nullable=False)  # user, assistant, tool
    content = Column(Text, nullable=False)
    turn_metadata = Column("metadata", JSON, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    session = relationship("ConversationSession", back_populates="turns")
