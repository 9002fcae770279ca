from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    provider: str = ""
    usage: Optional[dict] = None


class ProviderError(Exception):
    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


class LLMProvider(ABC):
    """Abstract base class for streaming chat providers."""

    name: str = ""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        pass

    @property
    @abstractmethod
    def model(self) -> str:
        pass

    @abstractmethod
    def stream_chat(
        self,
        messages: List[dict],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        """Yield text deltas. Raises ProviderError on any upstream failure."""

    async def generate(
        self,
        messages: List[dict],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        """Collect a whole completion from the stream."""
        parts = []
        async for chunk in self.stream_chat(messages, temperature=temperature, max_tokens=max_tokens):
            parts.append(chunk)
        return LLMResponse(content="".join(parts), model=self.model, provider=self.name)
