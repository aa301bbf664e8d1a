from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from pydantic import BaseModel

class ProviderResponse(BaseModel):
    content: Optional[str] = None
    tool_calls: Optional[List[Any]] = None
    finish_reason: Optional[str] = None
    meta_data: Dict[str, Any] = {}

class LLMProvider(ABC):
    @abstractmethod
    async def generate(self, messages: List[Dict[str, Any]], options: Optional[Dict[str, Any]] = None) -> ProviderResponse:
        """
        Runs one completion step.

        Args:
            messages: Chat messages, including assistant tool calls and tool results
            options: model, tools, tool_choice, max_completion_tokens

        Returns:
            ProviderResponse with text, requested tool calls and usage in meta_data
        """
        pass
