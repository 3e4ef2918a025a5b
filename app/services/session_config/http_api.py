"""Session configuration fetched from the workshop settings API."""
import logging
from typing import Optional

import httpx

from app.core.exceptions import ConfigLookupError
from app.services.session_config.base import SessionConfig, SessionConfigProvider
from app.services.session_config.tools import normalize_tools

logger = logging.getLogger(__name__)


class HttpConfigProvider(SessionConfigProvider):
    """Calls ``GET {base_url}/api/get-student-ai-settings?sessionToken=...``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def get_config(self, session_key: str) -> Optional[SessionConfig]:
        url = f"{self.base_url}/api/get-student-ai-settings"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, params={"sessionToken": session_key})
        except httpx.HTTPError as e:
            raise ConfigLookupError(f"Settings request failed: {type(e).__name__}: {e}") from e

        if response.status_code != 200:
            logger.warning(
                f"[CONFIG] Settings API returned {response.status_code} - Session: {session_key}"
            )
            return None

        try:
            data = response.json()
        except ValueError as e:
            raise ConfigLookupError("Settings API returned invalid JSON") from e

        if not isinstance(data, dict) or not data.get("success"):
            return None
        settings_data = data.get("settings")
        if not isinstance(settings_data, dict):
            return None

        return SessionConfig(
            system_prompt=settings_data.get("systemPrompt"),
            greeting=settings_data.get("greeting"),
            voice=settings_data.get("voice"),
            tools=normalize_tools(settings_data.get("tools")),
            openai_api_key=settings_data.get("openaiApiKey"),
        )
