from .base import LLMProvider, ProviderResponse
from .openrouter_provider import OpenRouterProvider

class ProviderFactory:
    _providers = {
        "openrouter": OpenRouterProvider,
    }
    _instances = {}

    @classmethod
    def get_provider(cls, name: str = "openrouter") -> LLMProvider:
        if name not in cls._instances:
            provider_class = cls._providers.get(name)
            if not provider_class:
                raise ValueError(f"Provider {name} not found")
            cls._instances[name] = provider_class()
        return cls._instances[name]
