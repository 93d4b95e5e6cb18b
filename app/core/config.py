from functools import lru_cache
from typing import List, Optional

import logging
import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # General
    environment: str = Field("local", alias="ENVIRONMENT")
    app_name: str = Field("deep-research-swarm", alias="APP_NAME")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # LLM / OpenAI
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    llm_orchestrator_model: str = Field("gpt-4.1", alias="LLM_ORCHESTRATOR_MODEL")
    llm_searcher_model: str = Field("gpt-4.1-mini", alias="LLM_SEARCHER_MODEL")
    llm_analyzer_model: str = Field("gpt-4.1", alias="LLM_ANALYZER_MODEL")
    llm_writer_model: str = Field("gpt-4.1", alias="LLM_WRITER_MODEL")
    llm_max_retries: int = Field(3, alias="LLM_MAX_RETRIES")
    llm_retry_base_delay_seconds: float = Field(1.0, alias="LLM_RETRY_BASE_DELAY_SECONDS")
    llm_max_rounds: int = Field(25, alias="LLM_MAX_ROUNDS")

    # Web search
    web_search_provider: str = Field("tavily", alias="WEB_SEARCH_PROVIDER")
    tavily_api_key: Optional[str] = Field(None, alias="TAVILY_API_KEY")

    # Artifacts / session bookkeeping
    files_base_path: str = Field("files", alias="FILES_BASE_PATH")
    logs_dir: str = Field("logs", alias="LOGS_DIR")
    memory_sample_interval_seconds: float = Field(10.0, alias="MEMORY_SAMPLE_INTERVAL_SECONDS")
    session_timeout_seconds: float = Field(300.0, alias="SESSION_TIMEOUT_SECONDS")

    # Security
    cors_origins: List[str] = Field(default_factory=list, alias="CORS_ORIGINS")
    api_keys: List[str] = Field(default_factory=list, alias="API_KEYS")

    # Observability
    prometheus_enabled: bool = Field(True, alias="PROMETHEUS_ENABLED")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Centralised settings factory with a defensive debug block.

    If configuration cannot be loaded (e.g. invalid env for list fields),
    we log a small, sanitised snapshot of the relevant environment before
    re-raising the exception.
    """
    try:
        return Settings()  # type: ignore[call-arg]
    except Exception as exc:
        # Use stdlib logging here to avoid circular imports with the structured logger.
        logging.error("Failed to initialise Settings from environment.", exc_info=exc)
        logging.error(
            "Settings env snapshot (sanitised)",
            extra={
                "ENVIRONMENT": os.getenv("ENVIRONMENT"),
                "OPENAI_API_KEY_present": bool(os.getenv("OPENAI_API_KEY")),
                "TAVILY_API_KEY_present": bool(os.getenv("TAVILY_API_KEY")),
                "FILES_BASE_PATH": os.getenv("FILES_BASE_PATH"),
                # These are the fields that most often cause parsing issues:
                "CORS_ORIGINS_raw": os.getenv("CORS_ORIGINS"),
                "API_KEYS_raw": os.getenv("API_KEYS"),
            },
        )
        raise
