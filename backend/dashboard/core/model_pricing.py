from pydantic import BaseModel
from typing import Any, Dict, List

DEFAULT_MODEL = "anthropic/claude-sonnet-4"

class ModelPricing(BaseModel):
    input: float  # USD per 1k tokens
    output: float
    context_window: int = 128000

class ModelPriceRegistry:
    _prices: Dict[str, ModelPricing] = {
        "anthropic/claude-sonnet-4": ModelPricing(input=0.003, output=0.015, context_window=1000000),
        "anthropic/claude-opus-4": ModelPricing(input=0.015, output=0.075, context_window=200000),
        "openai/gpt-4o": ModelPricing(input=0.005, output=0.015, context_window=128000),
        "openai/gpt-4o-mini": ModelPricing(input=0.00015, output=0.0006, context_window=128000),
        "google/gemini-2.0-flash-001": ModelPricing(input=0.0001, output=0.0004, context_window=1000000),

        # Free models
        "meta-llama/llama-3.3-70b-instruct:free": ModelPricing(input=0, output=0, context_window=128000),
        "meta-llama/llama-3.1-8b-instruct:free": ModelPricing(input=0, output=0, context_window=128000),
        "google/gemini-2.0-flash-exp:free": ModelPricing(input=0, output=0, context_window=1000000),
        "deepseek/deepseek-r1:free": ModelPricing(input=0, output=0, context_window=64000),
        "deepseek/deepseek-r1-0528:free": ModelPricing(input=0, output=0, context_window=64000),
    }

    _defaults = ModelPricing(input=0.001, output=0.002, context_window=128000)

    @classmethod
    def get_pricing(cls, model_id: str) -> ModelPricing:
        return cls._prices.get(model_id, cls._defaults)


def is_free_model(model_id: str) -> bool:
    return model_id.endswith(":free")


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Static-table cost in USD, without margin."""
    if is_free_model(model):
        return 0.0
    prices = ModelPriceRegistry.get_pricing(model)
    return (input_tokens * prices.input + output_tokens * prices.output) / 1000


def get_context_window(model: str) -> int:
    return ModelPriceRegistry.get_pricing(model).context_window


def get_available_models() -> List[Dict[str, Any]]:
    models = [
        {"id": "anthropic/claude-sonnet-4", "name": "Claude Sonnet 4"},
        {"id": "anthropic/claude-opus-4", "name": "Claude Opus 4"},
        {"id": "openai/gpt-4o", "name": "GPT-4o"},
        {"id": "openai/gpt-4o-mini", "name": "GPT-4o Mini"},
        {"id": "google/gemini-2.0-flash-001", "name": "Gemini 2.0 Flash"},
    ]
    return [{**m, "context_window": get_context_window(m["id"])} for m in models]
