from __future__ import annotations

from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .logging import get_logger


def configure_cors(app: FastAPI) -> None:
    settings = get_settings()

    origins: List[str] = settings.cors_origins
    if not origins:
        # No wildcard; allow the local dashboard during development
        origins = ["http://localhost", "http://localhost:3000", "http://127.0.0.1:3000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id", "X-Session-Id"],
    )


async def get_api_key(
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
) -> Optional[str]:
    return x_api_key


async def verify_api_key(api_key: Optional[str] = Depends(get_api_key)) -> Optional[str]:
    settings = get_settings()
    logger = get_logger("security")

    if not settings.api_keys:
        # API key auth disabled
        return None

    if not api_key:
        logger.warning("Missing API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key.",
        )

    if api_key not in settings.api_keys:
        logger.warning("Invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key.",
        )

    return api_key
