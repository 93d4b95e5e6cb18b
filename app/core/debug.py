# app/core/debug.py

from __future__ import annotations

from typing import Any, Dict

from app.core.config import Settings
from app.core.logging import get_logger


def _mask_secret(value: str | None) -> str:
    if not value:
        return "<empty>"
    # Expose only a small portion to confirm wiring without leaking full secrets.
    if len(value) <= 8:
        return "<redacted>"
    return f"{value[:3]}***{value[-3:]}"


def build_settings_debug_snapshot(settings: Settings) -> Dict[str, Any]:
    """
    Build a safe, non-sensitive snapshot of key runtime settings.

    Useful for debugging configuration issues in containers and CI
    without exposing actual secrets in logs.
    """
    return {
        "environment": settings.environment,
        "app_name": settings.app_name,
        "log_level": settings.log_level,
        "openai_api_key_masked": _mask_secret(settings.openai_api_key),
        "tavily_api_key_masked": _mask_secret(settings.tavily_api_key),
        "models": {
            "orchestrator": settings.llm_orchestrator_model,
            "searcher": settings.llm_searcher_model,
            "analyzer": settings.llm_analyzer_model,
            "writer": settings.llm_writer_model,
        },
        "llm_max_retries": settings.llm_max_retries,
        "files_base_path": settings.files_base_path,
        "logs_dir": settings.logs_dir,
        "session_timeout_seconds": settings.session_timeout_seconds,
        "api_keys_count": len(settings.api_keys),
        "cors_origins": settings.cors_origins,
        "prometheus_enabled": settings.prometheus_enabled,
    }


def log_settings_debug(settings: Settings) -> None:
    """
    Emit a single structured debug log entry with the sanitized settings snapshot.
    """
    logger = get_logger("SettingsDebug")
    snapshot = build_settings_debug_snapshot(settings)
    logger.debug("Runtime settings snapshot", **snapshot)
