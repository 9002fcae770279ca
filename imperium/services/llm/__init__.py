from typing import Optional

import httpx

from imperium.services.llm.base import LLMProvider, LLMResponse, ProviderError
from imperium.services.llm.gemini import GeminiProvider
from imperium.services.llm.openrouter import OpenRouterProvider
from imperium.services.llm.zai import ZAIProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "ProviderError",
    "GeminiProvider",
    "OpenRouterProvider",
    "ZAIProvider",
    "build_providers",
]


def build_providers(settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> list[LLMProvider]:
    """Providers in the configured fallback order; unknown names are ignored."""
    timeout = settings.ai_timeout_seconds
    available = {
        "openrouter": OpenRouterProvider(
            settings.openrouter_api_key,
            settings.openrouter_model,
            referer=settings.openrouter_referer,
            timeout_seconds=timeout,
            transport=transport,
        ),
        "gemini": GeminiProvider(
            settings.gemini_api_key,
            settings.gemini_model,
            timeout_seconds=timeout,
            transport=transport,
        ),
        "zai": ZAIProvider(
            settings.zai_api_key,
            settings.zai_api_url,
            settings.zai_model,
            timeout_seconds=timeout,
            transport=transport,
        ),
    }
    return [available[name] for name in settings.provider_order if name in available]
