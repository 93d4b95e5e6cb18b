from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Protocol

from app.core.logging import get_logger
from app.llm.base_client import ToolDefinition
from app.llm.tools.web_search_tool import WebDocument, WebSearchResult


SEARCH_TOOL_DEFINITIONS: List[ToolDefinition] = [
    ToolDefinition(
        name="search",
        description=(
            "Search the web. Neural search uses semantic understanding for research questions, "
            "keyword search matches exact terms. Use this first to find relevant sources."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query"},
                "type": {
                    "type": "string",
                    "enum": ["neural", "keyword"],
                    "description": "neural for research questions, keyword for exact matches (default: neural)",
                },
                "num_results": {"type": "integer", "description": "Number of results to return (default: 10)"},
                "include_domains": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Only include results from these domains",
                },
                "exclude_domains": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Exclude results from these domains",
                },
            },
            "required": ["query"],
        },
    ),
    ToolDefinition(
        name="get_contents",
        description="Retrieve the full text of specific URLs. Use after search to read the most promising sources.",
        input_schema={
            "type": "object",
            "properties": {
                "urls": {"type": "array", "items": {"type": "string"}, "description": "URLs to fetch (max 10)"},
                "max_chars": {"type": "integer", "description": "Maximum characters per document (default: 3000)"},
            },
            "required": ["urls"],
        },
    ),
    ToolDefinition(
        name="find_similar",
        description="Find web pages related to a given URL. Useful for expanding from a good source.",
        input_schema={
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "The URL to find related pages for"},
                "num_results": {"type": "integer", "description": "Number of results to return (default: 10)"},
            },
            "required": ["url"],
        },
    ),
    ToolDefinition(
        name="search_papers",
        description="Search academic papers and scholarly articles.",
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query for papers"},
                "num_results": {"type": "integer", "description": "Number of results (default: 10)"},
            },
            "required": ["query"],
        },
    ),
    ToolDefinition(
        name="search_news",
        description="Search recent news articles and current events.",
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The news search query"},
                "days_back": {"type": "integer", "description": "How many days back to search (default: 7)"},
                "num_results": {"type": "integer", "description": "Number of results (default: 10)"},
            },
            "required": ["query"],
        },
    ),
]

SEARCH_TOOL_NAMES = frozenset(tool.name for tool in SEARCH_TOOL_DEFINITIONS)


class SearchBackend(Protocol):
    async def search(
        self,
        query: str,
        *,
        search_type: str = "neural",
        max_results: int = 10,
        include_domains: List[str] | None = None,
        exclude_domains: List[str] | None = None,
    ) -> List[WebSearchResult]: ...

    async def get_contents(self, urls: List[str], max_chars: int = 3000) -> List[WebDocument]: ...

    async def find_similar(self, url: str, max_results: int = 10) -> List[WebSearchResult]: ...

    async def search_papers(self, query: str, max_results: int = 10) -> List[WebSearchResult]: ...

    async def search_news(self, query: str, days_back: int = 7, max_results: int = 10) -> List[WebSearchResult]: ...


@dataclass
class ToolExecution:
    content: str
    success: bool


def _clamp(value: Any, default: int, low: int, high: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


class SearchToolExecutor:
    """Runs the search tool schemas against a search backend and serialises the payloads."""

    def __init__(self, backend: SearchBackend) -> None:
        self.backend = backend
        self.logger = get_logger("SearchToolExecutor")

    async def _dispatch(self, tool_name: str, tool_input: Dict[str, Any]) -> Dict[str, Any] | None:
        num_results = _clamp(tool_input.get("num_results"), 10, 1, 20)

        if tool_name == "search":
            query = tool_input["query"]
            results = await self.backend.search(
                query,
                search_type=tool_input.get("type") or "neural",
                max_results=num_results,
                include_domains=tool_input.get("include_domains"),
                exclude_domains=tool_input.get("exclude_domains"),
            )
            return {"query": query, "total": len(results), "results": [r.to_dict() for r in results]}

        if tool_name == "get_contents":
            urls = list(tool_input.get("urls") or tool_input.get("ids") or [])[:10]
            max_chars = _clamp(tool_input.get("max_chars"), 3000, 100, 20000)
            documents = await self.backend.get_contents(urls, max_chars=max_chars)
            return {"documents": [d.to_dict() for d in documents]}

        if tool_name == "find_similar":
            url = tool_input["url"]
            results = await self.backend.find_similar(url, max_results=num_results)
            return {"url": url, "similar": [r.to_dict() for r in results]}

        if tool_name == "search_papers":
            query = tool_input["query"]
            results = await self.backend.search_papers(query, max_results=num_results)
            return {"query": query, "total": len(results), "results": [r.to_dict() for r in results]}

        if tool_name == "search_news":
            query = tool_input["query"]
            days_back = _clamp(tool_input.get("days_back"), 7, 1, 365)
            results = await self.backend.search_news(query, days_back=days_back, max_results=num_results)
            return {"query": query, "total": len(results), "results": [r.to_dict() for r in results]}

        return None

    async def execute(self, tool_name: str, tool_input: Dict[str, Any]) -> ToolExecution:
        try:
            payload = await self._dispatch(tool_name, tool_input)
        except Exception as exc:
            self.logger.warning(
                "SearchToolExecutor.execute.failed",
                tool_name=tool_name,
                error=str(exc),
            )
            return ToolExecution(content=json.dumps({"error": str(exc) or type(exc).__name__}), success=False)

        if payload is None:
            return ToolExecution(content=json.dumps({"error": f"Unknown tool: {tool_name}"}), success=False)
        return ToolExecution(content=json.dumps(payload, indent=2), success=True)
