from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.utils import utc_now


class MemorySnapshot(BaseModel):
    timestamp: datetime = Field(default_factory=utc_now)
    heap_used: int
    heap_total: int
    rss: int
    external: int = 0
    agent_id: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)
