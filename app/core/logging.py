from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict

import structlog

from .config import get_settings
from .utils import utc_now


def _get_structlog_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging() -> None:
    settings = get_settings()

    logging_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging_level,
    )

    structlog.configure(
        processors=_get_structlog_processors(),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    if name is None:
        name = get_settings().app_name
    return structlog.get_logger(name)


def bind_request_context(
    logger: structlog.stdlib.BoundLogger,
    *,
    request_id: str | None = None,
    session_id: str | None = None,
    agent_id: str | None = None,
    endpoint: str | None = None,
) -> structlog.stdlib.BoundLogger:
    context: Dict[str, Any] = {}
    if request_id:
        context["request_id"] = request_id
    if session_id:
        context["session_id"] = session_id
    if agent_id:
        context["agent_id"] = agent_id
    if endpoint:
        context["endpoint"] = endpoint
    return logger.bind(**context)


class _SessionRecordFilter(logging.Filter):
    """Only lets through JSON log lines that carry the given session id."""

    def __init__(self, session_id: str) -> None:
        super().__init__()
        self.session_id = session_id

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            payload = json.loads(record.getMessage())
        except (TypeError, ValueError):
            return False
        return isinstance(payload, dict) and payload.get("session_id") == self.session_id


def add_session_log_handler(session_id: str, logs_dir: str | Path) -> logging.FileHandler:
    """
    Attach a session-scoped log file to the root logger.

    The file receives every structured log line emitted while the session id
    is bound (see ``bind_request_context`` / ``structlog.contextvars``).
    """
    timestamp = utc_now().strftime("%Y-%m-%dT%H-%M-%S")
    directory = Path(logs_dir) / "sessions"
    directory.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(directory / f"session_{session_id}_{timestamp}.log", encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(_SessionRecordFilter(session_id))
    logging.getLogger().addHandler(handler)
    return handler


def remove_session_log_handler(handler: logging.Handler) -> None:
    logging.getLogger().removeHandler(handler)
    handler.close()
