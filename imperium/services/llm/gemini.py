import json
from typing import AsyncIterator, List, Optional

import httpx

from imperium.logging_config import get_logger
from imperium.services.llm.base import LLMProvider, ProviderError

logger = get_logger("llm.gemini")

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def to_gemini_payload(messages: List[dict], temperature: float, max_tokens: int) -> dict:
    """OpenAI-style turns -> Gemini ``contents``; system turns become ``systemInstruction``."""
    system_parts = []
    contents = []
    for message in messages:
        role = message.get("role")
        text = message.get("content") or ""
        if role == "system":
            system_parts.append({"text": text})
            continue
        contents.append({"role": "model" if role == "assistant" else "user", "parts": [{"text": text}]})

    payload = {
        "contents": contents,
        "generationConfig": {
            "temperature": temperature,
            "topK": 40,
            "topP": 0.95,
            "maxOutputTokens": max_tokens,
        },
    }
    if system_parts:
        payload["systemInstruction"] = {"parts": system_parts}
    return payload


def parse_sse_line(line: str) -> Optional[str]:
    if not line.startswith("data:"):
        return None
    data = line[5:].strip()
    if not data:
        return None
    try:
        payload = json.loads(data)
    except ValueError:
        return None
    candidates = payload.get("candidates") if isinstance(payload, dict) else None
    if not candidates or not isinstance(candidates[0], dict):
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
    return text or None


class GeminiProvider(LLMProvider):
    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str],
        default_model: str = "gemini-1.5-flash",
        base_url: str = GEMINI_BASE_URL,
        timeout_seconds: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def model(self) -> str:
        return self.default_model

    async def stream_chat(
        self,
        messages: List[dict],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        url = f"{self.base_url}/models/{self.default_model}:streamGenerateContent?alt=sse"
        headers = {"x-goog-api-key": self.api_key or "", "Content-Type": "application/json"}
        payload = to_gemini_payload(messages, temperature, max_tokens)

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                async with client.stream("POST", url, headers=headers, json=payload) as response:
                    if response.status_code != 200:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        logger.error(f"Gemini error: {response.status_code} {body[:300]}")
                        raise ProviderError(self.name, f"HTTP {response.status_code}", response.status_code)
                    async for line in response.aiter_lines():
                        text = parse_sse_line(line)
                        if text:
                            yield text
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"transport error: {e}") from e
