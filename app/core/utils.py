from __future__ import annotations

import uuid
from datetime import datetime, timezone


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def elapsed_ms(start: datetime, end: datetime | None = None) -> int:
    end = end or utc_now()
    return int((end - start).total_seconds() * 1000)


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit]
