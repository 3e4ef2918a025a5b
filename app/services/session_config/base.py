"""Session configuration provider interface."""
from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field


class ToolDefinition(BaseModel):
    """A function the model may call, normalized from either stored tool shape."""

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    webhook_url: Optional[str] = None

    def to_openai_tool(self) -> Dict[str, Any]:
        """Render as an OpenAI chat-completions tool."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class SessionConfig(BaseModel):
    """Relay configuration for one session key."""

    system_prompt: Optional[str] = None
    greeting: Optional[str] = None
    voice: Optional[str] = None
    tools: List[ToolDefinition] = []
    openai_api_key: Optional[str] = None

    def with_defaults(self, defaults: "SessionConfig") -> "SessionConfig":
        """Fill empty fields from defaults. The credential is never defaulted here."""
        return SessionConfig(
            system_prompt=self.system_prompt or defaults.system_prompt,
            greeting=self.greeting or defaults.greeting,
            voice=self.voice or defaults.voice,
            tools=self.tools or defaults.tools,
            openai_api_key=self.openai_api_key,
        )


class SessionConfigProvider(ABC):
    """Abstract base class for session configuration lookups."""

    @abstractmethod
    async def get_config(self, session_key: str) -> Optional[SessionConfig]:
        """Get the configuration for a session key, or None if unknown."""
        pass
