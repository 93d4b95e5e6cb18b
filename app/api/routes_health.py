from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from app.core.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health", response_class=PlainTextResponse)
async def health_check() -> str:
    settings = get_settings()
    return f"ok | env={settings.environment}"
