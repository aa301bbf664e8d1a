"""
OpenRouter model catalogue with margin-adjusted pricing.

The curated list is refreshed from the OpenRouter API at most once an hour;
all prices returned from here are USD per 1M tokens with the profit margin
already applied.
"""
import httpx
from typing import Any, Dict, List, Optional

from dashboard.core.config import get_settings
from dashboard.schemas.ai import ModelWithPricing
from dashboard.utils.cache import cache
from dashboard.utils.logger import get_logger

logger = get_logger("openrouter")

OPENROUTER_MODELS_URL = "https://openrouter.ai/api/v1/models"
CACHE_KEY = "openrouter:models:v2"
CACHE_TTL_SECONDS = 3600
DEFAULT_PROFIT_MARGIN = 0.1

# Free tiers of these providers fail tool calls too often to offer them
UNRELIABLE_FREE_TOOL_PROVIDERS = ("google", "deepseek")

CURATED_MODEL_IDS: List[str] = [
    # Anthropic
    "anthropic/claude-opus-4.5",
    "anthropic/claude-sonnet-4.5",
    "anthropic/claude-haiku-4.5",
    "anthropic/claude-opus-4.1",
    "anthropic/claude-opus-4",
    "anthropic/claude-sonnet-4",
    "anthropic/claude-3.7-sonnet",
    "anthropic/claude-3.5-haiku",
    "anthropic/claude-3.5-sonnet",
    # OpenAI
    "openai/gpt-4o",
    "openai/gpt-4o-mini",
    "openai/o1",
    "openai/o1-mini",
    "openai/o3-mini",
    "openai/gpt-4-turbo",
    # Google
    "google/gemini-2.0-flash-001",
    "google/gemini-2.5-pro",
    "google/gemini-2.5-flash",
    "google/gemini-2.0-flash-exp:free",
    # Meta
    "meta-llama/llama-4-maverick",
    "meta-llama/llama-3.3-70b-instruct",
    "meta-llama/llama-3.3-70b-instruct:free",
    "meta-llama/llama-3.1-8b-instruct:free",
    # Mistral
    "mistralai/mistral-large",
    "mistralai/mistral-nemo",
    "mistralai/mistral-small-24b-instruct-2501",
    "mistralai/codestral-2508",
    # DeepSeek
    "deepseek/deepseek-r1",
    "deepseek/deepseek-chat",
    "deepseek/deepseek-r1:free",
    "deepseek/deepseek-r1-0528:free",
    # Cohere
    "cohere/command-r-plus-08-2024",
    "cohere/command-r-08-2024",
    "cohere/command-a",
    # xAI
    "x-ai/grok-4",
    "x-ai/grok-3",
    "x-ai/grok-3-mini",
    # Perplexity
    "perplexity/sonar-pro",
    "perplexity/sonar",
    "perplexity/sonar-reasoning-pro",
    "perplexity/sonar-deep-research",
]


def get_profit_margin() -> float:
    """Margin from OPENROUTER_PROFIT_MARGIN; 0.1 when unset, unparsable or outside [0, 1]."""
    raw = get_settings().OPENROUTER_PROFIT_MARGIN
    if not raw:
        return DEFAULT_PROFIT_MARGIN
    try:
        margin = float(raw)
    except ValueError:
        return DEFAULT_PROFIT_MARGIN
    if margin != margin or margin < 0 or margin > 1:
        return DEFAULT_PROFIT_MARGIN
    return margin


def _parse_price(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def apply_margin_to_price(price_per_token: Any) -> float:
    price = _parse_price(price_per_token)
    if price == 0:
        return 0.0
    return price * 1_000_000 * (1 + get_profit_margin())


def extract_provider_id(model_id: str) -> str:
    return model_id.split("/")[0]


def is_model_free(model_id: str, pricing: Dict[str, Any]) -> bool:
    if model_id.endswith(":free"):
        return True
    return _parse_price(pricing.get("prompt")) == 0 and _parse_price(pricing.get("completion")) == 0


def model_supports_tools(model: Dict[str, Any]) -> bool:
    if "tools" not in (model.get("supported_parameters") or []):
        return False
    if not is_model_free(model["id"], model.get("pricing") or {}):
        return True
    return extract_provider_id(model["id"]) not in UNRELIABLE_FREE_TOOL_PROVIDERS


def transform_model(model: Dict[str, Any]) -> ModelWithPricing:
    pricing = model.get("pricing") or {}
    architecture = model.get("architecture") or {}
    is_free = is_model_free(model["id"], pricing)
    return ModelWithPricing(
        id=model["id"],
        name=model.get("name") or model["id"],
        description=model.get("description") or "",
        context_length=model.get("context_length") or 0,
        input_price_per_million=0 if is_free else apply_margin_to_price(pricing.get("prompt")),
        output_price_per_million=0 if is_free else apply_margin_to_price(pricing.get("completion")),
        reasoning_price_per_million=0 if is_free else apply_margin_to_price(pricing.get("internal_reasoning")),
        input_modalities=architecture.get("input_modalities") or ["text"],
        output_modalities=architecture.get("output_modalities") or ["text"],
        provider_id=extract_provider_id(model["id"]),
        is_free=is_free,
        supports_tools=model_supports_tools(model),
    )


def curate_models(all_models: List[Dict[str, Any]]) -> List[ModelWithPricing]:
    curated = [
        transform_model(m)
        for m in all_models
        if m.get("id") in CURATED_MODEL_IDS and model_supports_tools(m)
    ]
    curated.sort(key=lambda m: CURATED_MODEL_IDS.index(m.id))
    return curated


async def fetch_models_from_api() -> List[Dict[str, Any]]:
    settings = get_settings()
    if not settings.OPENROUTER_API_KEY:
        raise ValueError("OPENROUTER_API_KEY is not configured")

    headers = {
        "Authorization": f"Bearer {settings.OPENROUTER_API_KEY}",
        "Content-Type": "application/json",
    }
    async with httpx.AsyncClient() as client:
        response = await client.get(OPENROUTER_MODELS_URL, headers=headers)
        response.raise_for_status()
        return response.json().get("data", [])


async def refresh_models_cache() -> List[ModelWithPricing]:
    models = curate_models(await fetch_models_from_api())
    await cache.set(CACHE_KEY, [m.model_dump() for m in models], ttl=CACHE_TTL_SECONDS)
    logger.info(f"Cached {len(models)} OpenRouter models")
    return models


async def get_models_with_pricing() -> List[ModelWithPricing]:
    cached = await cache.get(CACHE_KEY)
    if cached is not None:
        return [ModelWithPricing(**m) for m in cached]
    return await refresh_models_cache()


async def get_model_with_pricing(model_id: str) -> Optional[ModelWithPricing]:
    for model in await get_models_with_pricing():
        if model.id == model_id:
            return model
    return None


async def calculate_cost_with_margin(
    model_id: str,
    input_tokens: int,
    output_tokens: int,
    reasoning_tokens: int = 0,
) -> float:
    """Cost in USD for a completion, margin included."""
    model = await get_model_with_pricing(model_id)
    if not model:
        margin = 1 + get_profit_margin()
        return ((input_tokens * 0.001 + output_tokens * 0.002) / 1000) * margin

    return (
        input_tokens / 1_000_000 * model.input_price_per_million
        + output_tokens / 1_000_000 * model.output_price_per_million
        + reasoning_tokens / 1_000_000 * model.reasoning_price_per_million
    )


def format_price(price_per_million: float) -> str:
    if price_per_million == 0:
        return "Free"
    if price_per_million < 0.01:
        return f"${price_per_million:.4f}"
    return f"${price_per_million:.2f}"
