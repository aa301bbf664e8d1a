from pydantic import BaseModel
from typing import List, Optional

class ModelWithPricing(BaseModel):
    id: str
    name: str
    description: str = ""
    context_length: int = 0
    # USD per 1M tokens, margin included
    input_price_per_million: float
    output_price_per_million: float
    reasoning_price_per_million: float = 0
    input_modalities: List[str] = ["text"]
    output_modalities: List[str] = ["text"]
    provider_id: str
    is_free: bool
    supports_tools: bool

class AgentUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

class AgentResult(BaseModel):
    text: str
    usage: Optional[AgentUsage] = None
    finish_reason: str
    steps: int

class AgentRequest(BaseModel):
    prompt: str
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    max_steps: Optional[int] = None

class RefreshModelsResponse(BaseModel):
    success: bool
    modelsCount: int
    freeModels: List[dict]
