from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class SearcherResult(BaseModel):
    agent_id: str
    subtopic: str
    output_path: str = ""
    summary: str = ""
    full_findings: str = ""


class AnalyzerResult(BaseModel):
    agent_id: str
    output_path: str = ""
    insights: List[str] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)


class WriterResult(BaseModel):
    agent_id: str
    content: str = ""
    word_count: int = 0
    source_count: int = 0
