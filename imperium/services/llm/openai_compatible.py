import json
from typing import AsyncIterator, List, Optional

import httpx

from imperium.logging_config import get_logger
from imperium.services.llm.base import LLMProvider, ProviderError

logger = get_logger("llm.openai_compatible")


def parse_sse_line(line: str) -> Optional[str]:
    """Content delta from one ``data:`` line of an OpenAI-style stream, if any."""
    if not line.startswith("data:"):
        return None
    data = line[5:].strip()
    if not data or data == "[DONE]":
        return None
    try:
        payload = json.loads(data)
    except ValueError:
        return None
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta") or {}
    content = delta.get("content")
    return content if isinstance(content, str) and content else None


class OpenAICompatibleProvider(LLMProvider):
    """Any chat-completions endpoint speaking the OpenAI streaming dialect."""

    def __init__(
        self,
        api_key: Optional[str],
        url: str,
        default_model: str,
        timeout_seconds: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def model(self) -> str:
        return self.default_model

    def extra_headers(self) -> dict:
        return {}

    async def stream_chat(
        self,
        messages: List[dict],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        payload = {
            "model": self.default_model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": True,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            **self.extra_headers(),
        }
        logger.debug(f"{self.name} request: model={self.default_model}, messages_count={len(messages)}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                async with client.stream("POST", self.url, headers=headers, json=payload) as response:
                    if response.status_code != 200:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        logger.error(f"{self.name} error: {response.status_code} {body[:300]}")
                        raise ProviderError(self.name, f"HTTP {response.status_code}", response.status_code)
                    async for line in response.aiter_lines():
                        content = parse_sse_line(line)
                        if content:
                            yield content
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"transport error: {e}") from e
