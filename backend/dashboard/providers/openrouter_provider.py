from __future__ import annotations

from typing import Dict, Any, Optional, List
import time
import logging
import openai

from dashboard.core.config import get_settings
from .base import LLMProvider, ProviderResponse

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "anthropic/claude-sonnet-4"

JSONToolCall = Dict[str, Any]


class OpenRouterProvider(LLMProvider):
    """OpenRouter speaks the OpenAI Chat Completions protocol, so the OpenAI SDK is pointed at its base URL."""

    def __init__(self):
        self._client: Optional[openai.AsyncOpenAI] = None
        self.default_model = DEFAULT_MODEL

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            settings = get_settings()
            if not settings.OPENROUTER_API_KEY:
                raise ValueError("OPENROUTER_API_KEY is not configured")
            self._client = openai.AsyncOpenAI(
                api_key=settings.OPENROUTER_API_KEY,
                base_url=settings.OPENROUTER_BASE_URL,
                default_headers={
                    "HTTP-Referer": settings.SITE_URL,
                    "X-Title": "Dashboard",
                },
            )
        return self._client

    # ----------------------------
    # Helpers: JSON-safe conversion
    # ----------------------------

    def _sanitize_tool_calls(self, tool_calls: Any) -> List[JSONToolCall]:
        """
        Always return tool_calls as plain dicts:
          {"id": "...", "type": "function", "function": {"name": "...", "arguments": "..."}}
        """
        if not tool_calls:
            return []

        out: List[JSONToolCall] = []
        for tc in tool_calls:
            if tc is None:
                continue
            if isinstance(tc, dict):
                item = tc
            elif hasattr(tc, "model_dump"):
                item = tc.model_dump()
            else:
                fn = getattr(tc, "function", None)
                item = {
                    "id": getattr(tc, "id", None),
                    "type": getattr(tc, "type", "function"),
                    "function": {
                        "name": getattr(fn, "name", None),
                        "arguments": getattr(fn, "arguments", None),
                    },
                }
            if isinstance(item.get("function"), dict):
                out.append(item)
        return out

    def _sanitize_messages(self, messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        cleaned: List[Dict[str, Any]] = []

        for m in messages:
            if not isinstance(m, dict):
                continue

            role = m.get("role")
            msg: Dict[str, Any] = {"role": role, "content": m.get("content") or ""}

            if role == "tool" and "tool_call_id" in m:
                msg["tool_call_id"] = m["tool_call_id"]

            if m.get("tool_calls"):
                msg["tool_calls"] = self._sanitize_tool_calls(m["tool_calls"])

            cleaned.append(msg)

        return cleaned

    # ----------------------------
    # Public API
    # ----------------------------

    async def generate(
        self,
        messages: List[Dict[str, Any]],
        options: Optional[Dict[str, Any]] = None
    ) -> ProviderResponse:
        options = options or {}
        settings = get_settings()

        model = options.get("model") or self.default_model
        req: Dict[str, Any] = {
            "model": model,
            "messages": self._sanitize_messages(messages),
            "max_tokens": options.get("max_completion_tokens") or settings.AGENT_MAX_COMPLETION_TOKENS,
        }
        if options.get("temperature") is not None:
            req["temperature"] = options["temperature"]
        if options.get("tools"):
            req["tools"] = options["tools"]
            req["tool_choice"] = options.get("tool_choice") or "auto"

        try:
            start = time.time()
            response = await self.client.chat.completions.create(**req)
            latency = time.time() - start
        except Exception as e:
            logger.exception(f"OpenRouter Provider Error: {e}")
            raise

        choice = response.choices[0]
        content = choice.message.content or ""
        tool_calls = self._sanitize_tool_calls(getattr(choice.message, "tool_calls", None))

        meta_data: Dict[str, Any] = {
            "provider": "openrouter",
            "model": model,
            "latency": latency,
        }
        if response.usage:
            meta_data["usage"] = response.usage.model_dump()

        logger.info(f"OpenRouter Response: model={model}, content_len={len(content)}, tool_calls={len(tool_calls)}")

        return ProviderResponse(
            content=content,
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason,
            meta_data=meta_data,
        )
