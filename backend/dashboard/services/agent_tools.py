import httpx
from typing import Any, Dict

from dashboard.core.config import get_settings

TAVILY_SEARCH_URL = "https://api.tavily.com/search"

AGENT_TOOLS_DEFINITION = [
    {
        "type": "function",
        "function": {
            "name": "web_search",
            "description": "Search the web for current information. Use this when you need up-to-date information or facts.",
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "The search query to find information about"}
                },
                "required": ["query"]
            }
        }
    },
]


class AgentTools:
    @classmethod
    async def web_search(cls, query: str) -> Dict[str, Any]:
        """Tavily search. Returns {query, results: [{title, url, content, score}], answer?}."""
        settings = get_settings()
        if not settings.TAVILY_API_KEY:
            raise ValueError("TAVILY_API_KEY is not configured")

        payload = {
            "api_key": settings.TAVILY_API_KEY,
            "query": query,
            "max_results": 5,
            "include_answer": True,
        }
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(TAVILY_SEARCH_URL, json=payload)
            response.raise_for_status()
            return response.json()
