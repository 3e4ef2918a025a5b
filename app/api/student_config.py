"""Student relay configuration endpoints."""
import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.db.models import StudentConfig
from app.services.persistence.student_configs import StudentConfigPersistenceService
from app.services.session_config.tools import InvalidToolError, normalize_tools

router = APIRouter()
logger = logging.getLogger(__name__)


class StudentConfigRequest(BaseModel):
    """Student configuration save request."""
    sessionToken: str
    studentName: Optional[str] = None
    systemPrompt: Optional[str] = None
    greeting: Optional[str] = None
    voice: Optional[str] = None
    ttsProvider: Optional[str] = None
    tools: Optional[List[Dict[str, Any]]] = None
    openaiApiKey: Optional[str] = None


class StudentConfigResponse(BaseModel):
    """Student configuration response. The API key is never returned."""
    sessionToken: str
    studentName: Optional[str] = None
    systemPrompt: Optional[str] = None
    greeting: Optional[str] = None
    voice: Optional[str] = None
    ttsProvider: Optional[str] = None
    tools: List[Dict[str, Any]] = []
    hasOpenaiApiKey: bool = False
    openaiApiKeyPreview: Optional[str] = None


def mask_api_key(api_key: Optional[str]) -> Optional[str]:
    """Show only the first and last four characters of a key."""
    if not api_key:
        return None
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}...{api_key[-4:]}"


def to_response(config: StudentConfig) -> StudentConfigResponse:
    return StudentConfigResponse(
        sessionToken=config.session_token,
        studentName=config.student_name,
        systemPrompt=config.system_prompt,
        greeting=config.greeting,
        voice=config.voice,
        ttsProvider=config.tts_provider,
        tools=config.tools or [],
        hasOpenaiApiKey=bool(config.openai_api_key),
        openaiApiKeyPreview=mask_api_key(config.openai_api_key),
    )


@router.get("/api/student-config", response_model=StudentConfigResponse)
async def get_student_config(
    sessionToken: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Get a student's stored relay configuration."""
    config = await StudentConfigPersistenceService(db).get_by_token(sessionToken)
    if not config:
        raise HTTPException(status_code=404, detail="Configuration not found")
    return to_response(config)


@router.post("/api/student-config", response_model=StudentConfigResponse)
async def save_student_config(
    request: StudentConfigRequest,
    db: AsyncSession = Depends(get_db),
):
    """Create or update a student's relay configuration."""
    if not request.sessionToken.strip():
        raise HTTPException(status_code=400, detail="sessionToken is required")

    tools = None
    if request.tools is not None:
        try:
            normalized = normalize_tools(request.tools, strict=True)
        except InvalidToolError as e:
            raise HTTPException(status_code=400, detail=str(e))
        tools = [
            {**tool.to_openai_tool(), **({"webhookUrl": tool.webhook_url} if tool.webhook_url else {})}
            for tool in normalized
        ]

    try:
        config = await StudentConfigPersistenceService(db).upsert(
            session_token=request.sessionToken,
            student_name=request.studentName,
            system_prompt=request.systemPrompt,
            greeting=request.greeting,
            voice=request.voice,
            tts_provider=request.ttsProvider,
            tools=tools,
            openai_api_key=request.openaiApiKey,
        )
    except Exception as e:
        logger.error(
            f"[STUDENT CONFIG] Error saving configuration - "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="Failed to save configuration")

    logger.info(f"[STUDENT CONFIG] Saved configuration with {len(config.tools or [])} tools")
    return to_response(config)
