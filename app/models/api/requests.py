from __future__ import annotations

from pydantic import BaseModel, Field, StrictStr, field_validator


class ResearchRequest(BaseModel):
    topic: StrictStr = Field(..., min_length=1)

    @field_validator("topic")
    @classmethod
    def topic_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Topic is required")
        return value.strip()
