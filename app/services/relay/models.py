"""Relay session models."""
import json
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict


class SessionState(str, Enum):
    """Lifecycle states of one relay session."""

    INITIALIZING = "initializing"  # Connected, waiting for the setup event
    READY = "ready"  # Waiting for the caller to speak
    PROCESSING = "processing"  # A prompt is being answered
    CLOSED = "closed"  # Transport closed

    def __str__(self) -> str:
        return self.value


class TurnRole(str, Enum):
    """Speaker of a transcript turn."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    def __str__(self) -> str:
        return self.value


class Turn(BaseModel):
    """One immutable transcript entry."""

    model_config = ConfigDict(frozen=True)

    turn_number: int
    role: TurnRole
    content: Union[str, Dict[str, Any]]
    metadata: Optional[Dict[str, Any]] = None

    def content_text(self) -> str:
        """Content as stored text; structured tool results become JSON."""
        if isinstance(self.content, str):
            return self.content
        return json.dumps(self.content)


class ToolCall(BaseModel):
    """A function call requested by the model."""

    id: str
    name: str
    arguments: Dict[str, Any] = {}
    raw_arguments: str = "{}"


class CompletionResult(BaseModel):
    """What one model completion produced."""

    content: Optional[str] = None
    tool_calls: List[ToolCall] = []


class Interruption(BaseModel):
    """A caller barge-in, recorded without touching the transcript."""

    utterance: str
    turn_number: int
    during_processing: bool
