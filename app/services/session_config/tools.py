"""Tool definition normalization.

Student configurations store tools in two shapes: the OpenAI form
``{"type": "function", "function": {...}}`` and an older flat form
``{"name": ..., "description": ..., "parameters": ...}``. Both become a
``ToolDefinition`` here so nothing downstream inspects the raw shape.
"""
import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from app.services.session_config.base import ToolDefinition

logger = logging.getLogger(__name__)


class InvalidToolError(ValueError):
    """A stored tool definition could not be normalized."""


def normalize_tool(raw: Dict[str, Any]) -> ToolDefinition:
    """Normalize one raw tool definition."""
    if not isinstance(raw, dict):
        raise InvalidToolError(f"Tool definition must be an object, got {type(raw).__name__}")

    if raw.get("type") == "function" and isinstance(raw.get("function"), dict):
        body = raw["function"]
        webhook_url = raw.get("webhookUrl") or raw.get("webhook_url") or body.get("webhookUrl")
    else:
        body = raw
        webhook_url = raw.get("webhookUrl") or raw.get("webhook_url")

    name = body.get("name")
    if not isinstance(name, str) or not name.strip():
        raise InvalidToolError("Tool definition is missing a name")

    parameters = body.get("parameters") or body.get("parametersSchema")
    data: Dict[str, Any] = {
        "name": name.strip(),
        "description": body.get("description") or "",
        "webhook_url": webhook_url or None,
    }
    if parameters is not None:
        if not isinstance(parameters, dict):
            raise InvalidToolError(f"Parameters for tool '{name}' must be an object")
        data["parameters"] = parameters

    try:
        return ToolDefinition(**data)
    except ValidationError as e:
        raise InvalidToolError(f"Invalid tool '{name}': {e}") from e


def normalize_tools(raw_tools: Any, strict: bool = False) -> List[ToolDefinition]:
    """Normalize a list of raw tools.

    With strict=False invalid entries are logged and skipped; otherwise the
    first invalid entry raises InvalidToolError.
    """
    if not raw_tools:
        return []
    if not isinstance(raw_tools, list):
        if strict:
            raise InvalidToolError("Tools must be a list")
        logger.warning(f"[TOOLS] Ignoring non-list tools value: {type(raw_tools).__name__}")
        return []

    tools: List[ToolDefinition] = []
    seen = set()
    for raw in raw_tools:
        try:
            tool = normalize_tool(raw)
        except InvalidToolError as e:
            if strict:
                raise
            logger.warning(f"[TOOLS] Skipping invalid tool definition: {e}")
            continue
        if tool.name in seen:
            if strict:
                raise InvalidToolError(f"Duplicate tool name '{tool.name}'")
            logger.warning(f"[TOOLS] Skipping duplicate tool '{tool.name}'")
            continue
        seen.add(tool.name)
        tools.append(tool)
    return tools
