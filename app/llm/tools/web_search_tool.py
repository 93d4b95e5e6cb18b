from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from tavily import AsyncTavilyClient

from app.core.config import get_settings
from app.core.logging import get_logger


SCHOLARLY_DOMAINS = [
    "arxiv.org",
    "semanticscholar.org",
    "scholar.google.com",
    "pubmed.ncbi.nlm.nih.gov",
    "nature.com",
    "sciencedirect.com",
    "dl.acm.org",
    "ieeexplore.ieee.org",
    "springer.com",
    "researchgate.net",
]


@dataclass
class WebSearchResult:
    title: str
    url: str
    content: str
    score: float
    published_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "snippet": self.content,
            "score": self.score,
            "published_date": self.published_date,
        }


@dataclass
class WebDocument:
    url: str
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "text": self.text}


def similarity_query(url: str) -> str:
    """Derive a keyword query from a URL's path, falling back to its host."""
    parsed = urlparse(url)
    segments = [s for s in parsed.path.split("/") if s]
    words: List[str] = []
    for segment in segments[-2:]:
        segment = re.sub(r"\.(html?|php|aspx?|pdf)$", "", segment, flags=re.IGNORECASE)
        words.extend(w for w in re.split(r"[-_.+]+", segment) if w and not w.isdigit())
    if not words:
        return parsed.netloc or url
    return " ".join(words)


class WebSearchTool:
    def __init__(self, api_key: Optional[str] = None) -> None:
        self._logger = get_logger("WebSearchTool")
        settings = get_settings()
        api_key = api_key or settings.tavily_api_key

        if not api_key:
            # Run in "no-op" mode so the rest of the system can still function
            # (e.g. local dev, tests, or when web search is intentionally disabled).
            self._logger.warning(
                "Tavily web search disabled: TAVILY_API_KEY is not configured.",
                web_search_provider=settings.web_search_provider,
            )
            self._client: Optional[AsyncTavilyClient] = None
            return

        self._client = AsyncTavilyClient(api_key=api_key)

    @staticmethod
    def _parse_results(response: Dict[str, Any]) -> List[WebSearchResult]:
        results: List[WebSearchResult] = []
        for item in response.get("results", []):
            results.append(
                WebSearchResult(
                    title=item.get("title") or "",
                    url=item.get("url") or "",
                    content=item.get("content") or "",
                    score=float(item.get("score") or 0.0),
                    published_date=item.get("published_date"),
                )
            )
        return results

    async def _search(self, query: str, **params: Any) -> List[WebSearchResult]:
        if self._client is None:
            self._logger.debug("WebSearchTool.search.skip", reason="no_api_key", query=query)
            return []

        self._logger.debug("WebSearchTool.search.start", query=query, **params)
        response = await self._client.search(
            query=query,
            include_answer=False,
            include_raw_content=False,
            **params,
        )
        results = self._parse_results(response)
        self._logger.debug("WebSearchTool.search.completed", query=query, result_count=len(results))
        return results

    async def search(
        self,
        query: str,
        *,
        search_type: str = "neural",
        max_results: int = 10,
        include_domains: Optional[List[str]] = None,
        exclude_domains: Optional[List[str]] = None,
    ) -> List[WebSearchResult]:
        """
        Neural searches use Tavily's advanced depth, keyword searches the basic one.
        """
        params: Dict[str, Any] = {
            "search_depth": "advanced" if search_type == "neural" else "basic",
            "max_results": max_results,
        }
        if include_domains:
            params["include_domains"] = include_domains
        if exclude_domains:
            params["exclude_domains"] = exclude_domains
        return await self._search(query, **params)

    async def get_contents(self, urls: List[str], max_chars: int = 3000) -> List[WebDocument]:
        if self._client is None:
            self._logger.debug("WebSearchTool.get_contents.skip", reason="no_api_key", url_count=len(urls))
            return []

        self._logger.debug("WebSearchTool.get_contents.start", url_count=len(urls))
        response = await self._client.extract(urls=urls)
        documents = [
            WebDocument(url=item.get("url") or "", text=(item.get("raw_content") or "")[:max_chars])
            for item in response.get("results", [])
        ]
        failed = response.get("failed_results") or []
        if failed:
            self._logger.warning("WebSearchTool.get_contents.partial", failed_count=len(failed))
        return documents

    async def find_similar(self, url: str, max_results: int = 10) -> List[WebSearchResult]:
        host = urlparse(url).netloc
        return await self._search(
            similarity_query(url),
            search_depth="advanced",
            max_results=max_results,
            exclude_domains=[host] if host else None,
        )

    async def search_papers(self, query: str, max_results: int = 10) -> List[WebSearchResult]:
        return await self._search(
            query,
            search_depth="advanced",
            max_results=max_results,
            include_domains=SCHOLARLY_DOMAINS,
        )

    async def search_news(self, query: str, days_back: int = 7, max_results: int = 10) -> List[WebSearchResult]:
        return await self._search(
            query,
            topic="news",
            days=days_back,
            max_results=max_results,
        )


_web_search_tool: Optional[WebSearchTool] = None


def get_web_search_tool() -> WebSearchTool:
    global _web_search_tool
    if _web_search_tool is None:
        _web_search_tool = WebSearchTool()
    return _web_search_tool
