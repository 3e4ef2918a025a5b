"""FastAPI dependencies."""
from functools import lru_cache

from app.core.config import settings
from app.db.database import AsyncSessionLocal
from app.services.persistence.store import DatabaseConversationStore
from app.services.relay.completion import LanguageModelClient
from app.services.relay.engine import RelayEngine
from app.services.relay.webhooks import ToolWebhookClient
from app.services.session_config.base import SessionConfig, SessionConfigProvider
from app.services.session_config.database import DatabaseConfigProvider
from app.services.session_config.http_api import HttpConfigProvider


def get_config_provider() -> SessionConfigProvider:
    """Get the session configuration provider selected by settings."""
    if settings.config_api_url:
        return HttpConfigProvider(
            settings.config_api_url, timeout=settings.config_lookup_timeout_seconds
        )
    return DatabaseConfigProvider(AsyncSessionLocal)


def create_completion_client(api_key: str) -> LanguageModelClient:
    """Build a model client for one session's credential."""
    return LanguageModelClient(
        api_key=api_key,
        model=settings.openai_model,
        max_tokens=settings.openai_max_tokens,
        temperature=settings.openai_temperature,
        timeout=settings.completion_timeout_seconds,
    )


@lru_cache
def get_relay_engine() -> RelayEngine:
    """Get the process-wide relay engine."""
    return RelayEngine(
        config_provider=get_config_provider(),
        store=DatabaseConversationStore(AsyncSessionLocal),
        completion_factory=create_completion_client,
        webhook_client=ToolWebhookClient(timeout=settings.webhook_timeout_seconds),
        defaults=SessionConfig(
            system_prompt=settings.default_system_prompt,
            greeting=settings.default_greeting,
            voice=settings.default_voice,
        ),
        default_api_key=settings.openai_api_key,
        persist_apology_turns=settings.persist_apology_turns,
        max_tool_rounds=settings.max_tool_rounds,
    )
