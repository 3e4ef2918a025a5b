"""Twilio voice webhook endpoints."""
import logging
from typing import Optional
from urllib.parse import quote
from fastapi import APIRouter, Request, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.core.config import settings
from app.services.persistence.student_configs import StudentConfigPersistenceService
from app.services.voice.twiml import (
    DEFAULT_VOICE,
    generate_conversation_relay_twiml,
    generate_error_twiml,
    map_voice,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def get_relay_url(request: Request, session_token: Optional[str]) -> str:
    """
    Build the wss:// URL of the relay WebSocket.

    Uses PUBLIC_BASE_URL if set (e.g., behind a proxy), otherwise the
    request's Host header.
    """
    if settings.public_base_url:
        host = settings.public_base_url.rstrip("/").split("://", 1)[-1]
    else:
        host = request.headers.get("host") or request.url.netloc
    url = f"wss://{host}/ws"
    if session_token:
        url += f"?sessionToken={quote(session_token, safe='')}"
    return url


@router.api_route("/voice/incoming", methods=["GET", "POST"])
async def handle_incoming_call(
    request: Request,
    sessionToken: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Handle incoming call from Twilio.

    Returns TwiML connecting the call to the relay with the student's
    greeting and voice.
    """
    logger.info(
        f"[INCOMING CALL] Received incoming call webhook - Session: {sessionToken or 'anonymous'}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        voice = DEFAULT_VOICE
        welcome_greeting = settings.default_greeting

        if sessionToken:
            try:
                config = await StudentConfigPersistenceService(db).get_by_token(sessionToken)
            except Exception as e:
                logger.warning(
                    f"[INCOMING CALL] Failed to fetch student config, using defaults - "
                    f"Error: {type(e).__name__}: {str(e)}"
                )
                config = None

            if config:
                voice = map_voice(config.tts_provider, config.voice)
                welcome_greeting = config.greeting or welcome_greeting
                logger.info(f"[INCOMING CALL] Loaded config - Session: {sessionToken}, Voice: {voice}")

        twiml = generate_conversation_relay_twiml(
            get_relay_url(request, sessionToken), welcome_greeting, voice
        )
        return Response(content=twiml, media_type="application/xml")

    except Exception as e:
        logger.error(
            f"[INCOMING CALL] Error generating TwiML - Session: {sessionToken or 'anonymous'}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        # Still answer Twilio with TwiML so the caller hears something
        return Response(content=generate_error_twiml(), media_type="application/xml")
