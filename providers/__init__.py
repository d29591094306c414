"""AI provider access for the Dailies pipeline.

ProviderClient:
    PydanticAI agents for one provider (Gemini, OpenAI or Anthropic).

FallbackManager:
    Retry with exponential backoff, then fail over to the next provider.

Example:
    >>> from providers import FallbackManager, FallbackPolicy, build_providers
    >>> manager = FallbackManager(build_providers(config), FallbackPolicy.from_config(config))
"""

from providers.client import Provider, ProviderClient, ProviderKind, build_providers, map_provider_error
from providers.fallback import FallbackManager, FallbackPolicy, ProviderOutcome

__all__ = [
    "Provider",
    "ProviderClient",
    "ProviderKind",
    "build_providers",
    "map_provider_error",
    "FallbackManager",
    "FallbackPolicy",
    "ProviderOutcome",
]
