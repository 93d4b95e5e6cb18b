from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError
from starlette.responses import Response

from app.core.config import get_settings
from app.core.logging import bind_request_context, get_logger
from app.core.security import verify_api_key
from app.llm.openai_client import get_openai_client
from app.llm.tools.web_search_tool import get_web_search_tool
from app.models.api.requests import ResearchRequest
from app.models.api.responses import ResearchErrorResponse
from app.services.research_service import ResearchService

router = APIRouter(tags=["research"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def get_research_service() -> ResearchService:
    return ResearchService(
        get_settings(),
        llm_client_factory=get_openai_client,
        search_tool_factory=get_web_search_tool,
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ResearchErrorResponse(error=message).model_dump())


@router.post(
    "/research",
    responses={
        400: {"model": ResearchErrorResponse},
        500: {"model": ResearchErrorResponse},
    },
)
async def start_research(
    request: Request,
    service: ResearchService = Depends(get_research_service),
    _: str | None = Depends(verify_api_key),
) -> Response:
    """
    Start a research session and stream its progress as Server-Sent Events.

    The body is parsed by hand so that every malformed request (non-JSON,
    missing, non-string or blank topic) gets the same flat 400 body.
    """
    request_id = getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")
    logger = bind_request_context(
        get_logger("ResearchRoute"),
        request_id=request_id,
        endpoint=str(request.url.path),
    )

    try:
        payload = ResearchRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as exc:
        logger.info("ResearchRoute.invalid_request", error=str(exc))
        return _error(400, "Topic is required")

    try:
        handle = service.start_session(payload.topic)
    except Exception as exc:
        logger.error("ResearchRoute.start_failed", topic=payload.topic, error=str(exc), exc_info=exc)
        return _error(500, "Failed to start research")

    logger.info("ResearchRoute.streaming", session_id=handle.session_id, topic=payload.topic)
    return StreamingResponse(
        service.stream(handle),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Session-Id": handle.session_id},
    )
