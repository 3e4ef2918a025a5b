"""ConversationRelay WebSocket endpoint."""
import logging
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from app.core.dependencies import get_relay_engine
from app.services.relay.engine import RelayEngine

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def relay_websocket(
    websocket: WebSocket,
    sessionToken: Optional[str] = Query(None),
    engine: RelayEngine = Depends(get_relay_engine),
):
    """
    Relay a Twilio ConversationRelay call to the student's assistant.

    The edge sends setup/prompt/dtmf/interrupt JSON frames and receives
    ``{"type": "text", "token": ..., "last": true}`` replies.
    """
    await websocket.accept()

    async def send(message: Dict[str, Any]) -> None:
        await websocket.send_json(message)

    session = await engine.open_session(sessionToken, send)
    if session is None:
        await websocket.close()
        return

    try:
        while True:
            raw = await websocket.receive_text()
            await session.dispatch(raw)
    except WebSocketDisconnect:
        logger.info(f"[RELAY WS] WebSocket closed - Session: {session.session_id}")
    except Exception as e:
        logger.error(
            f"[RELAY WS] WebSocket error - Session: {session.session_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
    finally:
        await session.close()
        await session.journal.stop()
