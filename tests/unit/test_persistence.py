"""Unit tests for persistence services (conversations and student configs)."""
import pytest
from datetime import datetime, timedelta

from app.services.persistence.conversations import ConversationPersistenceService
from app.services.persistence.store import DatabaseConversationStore
from app.services.persistence.student_configs import StudentConfigPersistenceService


class TestConversationPersistence:
    """Test conversation persistence service."""

    @pytest.mark.asyncio
    async def test_create_session(self, test_db):
        """Test creating a new conversation session."""
        service = ConversationPersistenceService(test_db)

        session = await service.create_session(
            "tok_abc", call_sid="CA123", from_number="+15550001111", to_number="+15550002222"
        )

        assert session.id is not None
        assert session.session_token == "tok_abc"
        assert session.call_sid == "CA123"
        assert session.direction == "inbound"
        assert session.status == "active"
        assert session.started_at is not None
        assert session.turn_count == 0

    @pytest.mark.asyncio
    async def test_append_turns_in_order(self, test_db):
        """Test turns come back ordered by turn number."""
        service = ConversationPersistenceService(test_db)
        session = await service.create_session("tok_abc")

        await service.append_turn(session.id, 2, "assistant", "Hello!", {"tools": []})
        await service.append_turn(session.id, 1, "user", "Hi")

        loaded = await service.get_session_with_history(session.id, "tok_abc")

        assert [turn.turn_number for turn in loaded.turns] == [1, 2]
        assert loaded.turns[0].turn_metadata == {}
        assert loaded.turns[1].turn_metadata == {"tools": []}

    @pytest.mark.asyncio
    async def test_history_hidden_from_other_tokens(self, test_db):
        """Test a session cannot be read with another student's token."""
        service = ConversationPersistenceService(test_db)
        session = await service.create_session("tok_abc")

        assert await service.get_session_with_history(session.id, "tok_other") is None

    @pytest.mark.asyncio
    async def test_end_session(self, test_db):
        """Test ending a session records duration and turn count."""
        service = ConversationPersistenceService(test_db)
        session = await service.create_session("tok_abc")
        ended_at = session.started_at + timedelta(seconds=42)

        ended = await service.end_session(session.id, 3, ended_at=ended_at)

        assert ended.status == "completed"
        assert ended.ended_at == ended_at
        assert ended.duration_seconds == 42
        assert ended.turn_count == 3

    @pytest.mark.asyncio
    async def test_end_unknown_session(self, test_db):
        """Test ending a missing session returns None."""
        service = ConversationPersistenceService(test_db)

        assert await service.end_session(9999, 1) is None

    @pytest.mark.asyncio
    async def test_list_sessions_with_message_counts(self, test_db):
        """Test listing returns newest first with message counts."""
        service = ConversationPersistenceService(test_db)
        first = await service.create_session("tok_abc")
        first.started_at = datetime.utcnow() - timedelta(hours=1)
        await test_db.commit()
        second = await service.create_session("tok_abc")
        await service.create_session("tok_other")
        await service.append_turn(first.id, 1, "user", "Hi")
        await service.append_turn(first.id, 2, "assistant", "Hello")

        rows = await service.list_sessions("tok_abc")

        assert [(session.id, count) for session, count in rows] == [(second.id, 0), (first.id, 2)]

    @pytest.mark.asyncio
    async def test_list_sessions_limit(self, test_db):
        """Test the limit caps results."""
        service = ConversationPersistenceService(test_db)
        for _ in range(3):
            await service.create_session("tok_abc")

        assert len(await service.list_sessions("tok_abc", limit=2)) == 2


class TestDatabaseConversationStore:
    """Test the relay-facing store."""

    @pytest.mark.asyncio
    async def test_full_session(self, test_session_factory, test_db):
        """Test create, append and end through the store."""
        store = DatabaseConversationStore(test_session_factory)

        handle = await store.create_session(
            "tok_abc", {"callSid": "CA9", "from": "+1555", "to": "+1666", "direction": None}
        )
        await store.append_turn(handle, 1, "user", "Hi")
        await store.append_turn(handle, 2, "assistant", "Hello", {"tools": ["lookup"]})
        await store.end_session(handle, 1)

        loaded = await ConversationPersistenceService(test_db).get_session_with_history(handle, "tok_abc")
        assert loaded.call_sid == "CA9"
        assert loaded.from_number == "+1555"
        assert loaded.direction == "inbound"
        assert loaded.status == "completed"
        assert loaded.turn_count == 1
        assert [(turn.role, turn.content) for turn in loaded.turns] == [("user", "Hi"), ("assistant", "Hello")]


class TestStudentConfigPersistence:
    """Test student config persistence service."""

    @pytest.mark.asyncio
    async def test_upsert_creates(self, test_db):
        """Test first save creates the record."""
        service = StudentConfigPersistenceService(test_db)

        config = await service.upsert("tok_abc", system_prompt="Be kind.", voice="alloy")

        assert config.id is not None
        assert config.system_prompt == "Be kind."
        assert config.tools is None

    @pytest.mark.asyncio
    async def test_upsert_updates_only_given_fields(self, test_db):
        """Test a later save keeps fields it does not mention."""
        service = StudentConfigPersistenceService(test_db)
        created = await service.upsert("tok_abc", system_prompt="Be kind.", openai_api_key="sk-1")

        updated = await service.upsert("tok_abc", greeting="Hi there!")

        assert updated.id == created.id
        assert updated.system_prompt == "Be kind."
        assert updated.greeting == "Hi there!"
        assert updated.openai_api_key == "sk-1"

    @pytest.mark.asyncio
    async def test_get_by_token_missing(self, test_db):
        """Test unknown tokens return None."""
        assert await StudentConfigPersistenceService(test_db).get_by_token("nope") is None
