"""Language model client for the relay."""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from app.core.exceptions import CompletionError
from app.services.relay.models import CompletionResult, ToolCall, Turn, TurnRole
from app.services.session_config.base import ToolDefinition

logger = logging.getLogger(__name__)


def build_messages(system_prompt: str, history: List[Turn]) -> List[Dict[str, Any]]:
    """
    Build the chat-completions message list from a transcript.

    Tool turns carry the call id, name and arguments in their metadata. Each
    run of consecutive tool turns is preceded by the assistant message that
    requested those calls, as the tool-call protocol requires.
    """
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    pending_tool_turns: List[Turn] = []

    def flush_tool_turns() -> None:
        if not pending_tool_turns:
            return
        messages.append(
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {
                        "id": turn.metadata["tool_call_id"],
                        "type": "function",
                        "function": {
                            "name": turn.metadata["tool"],
                            "arguments": turn.metadata.get("arguments_json", "{}"),
                        },
                    }
                    for turn in pending_tool_turns
                ],
            }
        )
        for turn in pending_tool_turns:
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": turn.metadata["tool_call_id"],
                    "content": turn.content_text(),
                }
            )
        pending_tool_turns.clear()

    for turn in history:
        if turn.role == TurnRole.TOOL:
            pending_tool_turns.append(turn)
            continue
        flush_tool_turns()
        messages.append({"role": turn.role.value, "content": turn.content_text()})
    flush_tool_turns()

    return messages


def parse_tool_call(raw_call: Any) -> ToolCall:
    """Convert an OpenAI tool call into a ToolCall, tolerating bad argument JSON."""
    raw_arguments = raw_call.function.arguments or "{}"
    try:
        arguments = json.loads(raw_arguments)
    except json.JSONDecodeError:
        logger.warning(
            f"[COMPLETION] Tool '{raw_call.function.name}' sent unparseable arguments: {raw_arguments[:200]}"
        )
        arguments = {}
    if not isinstance(arguments, dict):
        arguments = {"value": arguments}
    return ToolCall(
        id=raw_call.id,
        name=raw_call.function.name,
        arguments=arguments,
        raw_arguments=raw_arguments,
    )


class LanguageModelClient:
    """Wraps the OpenAI chat completions API for one credential."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        max_tokens: int = 150,
        temperature: float = 0.7,
        timeout: Optional[float] = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        self._owns_client = client is None
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout

    async def complete(
        self,
        system_prompt: str,
        history: List[Turn],
        tools: Optional[List[ToolDefinition]] = None,
    ) -> CompletionResult:
        """
        Run one completion over the transcript.

        Raises:
            CompletionError: the call failed or exceeded the timeout
        """
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": build_messages(system_prompt, history),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if tools:
            request["tools"] = [tool.to_openai_tool() for tool in tools]

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(**request),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise CompletionError(f"Completion timed out after {self.timeout}s") from e
        except Exception as e:
            raise CompletionError(f"{type(e).__name__}: {e}") from e

        try:
            message = response.choices[0].message
        except (AttributeError, IndexError) as e:
            raise CompletionError("Completion returned no choices") from e

        tool_calls = [parse_tool_call(call) for call in (message.tool_calls or [])]
        return CompletionResult(content=message.content, tool_calls=tool_calls)

    async def aclose(self) -> None:
        """Release the connection pool of a client this wrapper created."""
        if self._owns_client:
            await self.client.close()
