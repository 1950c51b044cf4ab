"""Search and lookup tools. Results are canned; no real web search."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from caput.errors import ToolError
from caput.tools.base import BaseTool, ToolContext


def _require_query(parameters: dict[str, Any]) -> str:
    query = str(parameters.get("query", "")).strip()
    if not query:
        raise ToolError("Parameter 'query' is required")
    return query


class SearchWebTool(BaseTool):
    @property
    def name(self) -> str:
        return "searchWeb"

    @property
    def description(self) -> str:
        return "Search the web for a query and return ranked results with sources."

    @property
    def category(self) -> str:
        return "search"

    @property
    def requires_connectivity(self) -> bool:
        return True

    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> Any:
        query = _require_query(parameters)
        mode = parameters.get("mode", "hybrid")
        return {
            "results": [
                {
                    "title": f"Latest information on {query}",
                    "url": "https://example.com/search",
                    "snippet": f"An overview of {query} including recent trends.",
                    "relevance": 0.95,
                },
                {
                    "title": f"{query} explained",
                    "url": "https://example.com/article",
                    "snippet": f"An expert walkthrough of {query}, from basics to practice.",
                    "relevance": 0.87,
                },
            ],
            "sources": [f"search_engine_{mode}"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class QuickLookupTool(BaseTool):
    @property
    def name(self) -> str:
        return "quickLookup"

    @property
    def description(self) -> str:
        return "Look up a short definition from the built-in knowledge base."

    @property
    def category(self) -> str:
        return "search"

    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> Any:
        query = _require_query(parameters)
        return {
            "definition": f"{query} refers to a specialised concept or technique.",
            "source": "internal_knowledge_base",
            "confidence": 0.9,
        }


class SearchTools:
    def get_tools(self) -> list[BaseTool]:
        return [SearchWebTool(), QuickLookupTool()]
