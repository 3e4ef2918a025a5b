"""Tool webhook execution."""
import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from app.services.relay.models import ToolCall
from app.services.session_config.base import ToolDefinition

logger = logging.getLogger(__name__)


class ToolWebhookClient:
    """Runs tool calls against their configured webhooks."""

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport

    async def invoke(
        self,
        tool: Optional[ToolDefinition],
        call: ToolCall,
        session_key: str,
        session_handle: Optional[int],
    ) -> Dict[str, Any]:
        """
        Execute one tool call and return its result.

        Never raises: unknown tools, network errors, timeouts and non-2xx
        responses come back as ``{"success": False, "error": ...}``.
        """
        if tool is None:
            logger.warning(f"[WEBHOOK] Model requested unknown tool '{call.name}' - Session: {session_key}")
            return {"success": False, "error": f"Unknown tool: {call.name}", "tool": call.name}

        if not tool.webhook_url:
            return {
                "success": True,
                "tool": call.name,
                "arguments": call.arguments,
                "message": f"{call.name} completed",
            }

        payload = {
            "tool": call.name,
            "arguments": call.arguments,
            "sessionKey": session_key,
            "sessionHandle": session_handle,
        }
        try:
            response = await asyncio.wait_for(self._post(tool.webhook_url, payload), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.error(
                f"[WEBHOOK] Tool '{call.name}' timed out after {self.timeout}s - Session: {session_key}"
            )
            return {"success": False, "error": "Tool webhook timed out", "tool": call.name}
        except httpx.HTTPError as e:
            logger.error(
                f"[WEBHOOK] Tool '{call.name}' request failed - Session: {session_key}, "
                f"Error: {type(e).__name__}: {e}"
            )
            return {"success": False, "error": "Tool webhook request failed", "tool": call.name}

        if not response.is_success:
            logger.error(
                f"[WEBHOOK] Tool '{call.name}' returned HTTP {response.status_code} - Session: {session_key}"
            )
            return {
                "success": False,
                "error": f"Tool webhook returned HTTP {response.status_code}",
                "tool": call.name,
            }

        try:
            result = response.json()
        except ValueError:
            return {"success": True, "result": response.text}
        if isinstance(result, dict):
            return result
        return {"success": True, "result": result}

    async def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.post(url, json=payload)
