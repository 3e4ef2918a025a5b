"""Application configuration."""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI (instructor key, used when a student has not configured one)
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_max_tokens: int = 150
    openai_temperature: float = 0.7

    # Database
    database_url: str = "sqlite+aiosqlite:///./relay.db"

    # Student settings API (falls back to the database when unset)
    config_api_url: Optional[str] = None

    # Timeouts
    completion_timeout_seconds: float = 30.0
    webhook_timeout_seconds: float = 10.0
    config_lookup_timeout_seconds: float = 5.0

    # Defaults for sessions without a stored configuration
    default_system_prompt: str = (
        "You are a helpful voice assistant. Keep responses brief and "
        "conversational since they will be spoken aloud."
    )
    default_greeting: str = "Hello! How can I help you today?"
    default_voice: str = "alloy"

    # Relay behavior
    persist_apology_turns: bool = False
    max_tool_rounds: int = 1

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    public_base_url: Optional[str] = None  # Public URL used in TwiML relay links

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
