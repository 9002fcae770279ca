"""Outbound sends through the Meta Graph API (Instagram DM, WhatsApp Cloud)."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from imperium.logging_config import get_logger

logger = get_logger("meta_service")


class ChannelSendError(Exception):
    """Provider rejected or failed a send. ``message`` is safe to show a user."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass
class SendCredential:
    access_token: str
    account_external_id: str


@dataclass
class SendReceipt:
    message_id: Optional[str]
    raw: Optional[dict] = None


class ChannelAdapter(ABC):
    channel: str = ""

    def __init__(
        self,
        graph_base_url: str = "https://graph.facebook.com",
        api_version: str = "v19.0",
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.graph_base_url = graph_base_url.rstrip("/")
        self.api_version = api_version
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @abstractmethod
    def build_request(self, credential: SendCredential, recipient_id: str, text: str) -> tuple[str, dict]:
        """Return (url, json payload)."""

    @abstractmethod
    def extract_message_id(self, data: dict) -> Optional[str]:
        pass

    def send(self, credential: SendCredential, recipient_id: str, text: str) -> SendReceipt:
        if not credential.access_token:
            raise ChannelSendError("Channel account has no access token")

        url, payload = self.build_request(credential, recipient_id, text)
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = client.post(
                    url,
                    headers={
                        "Authorization": f"Bearer {credential.access_token}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error(f"{self.channel} send transport error: {e}")
            raise ChannelSendError("Could not reach the messaging provider") from e

        if response.status_code >= 300:
            logger.error(
                f"{self.channel} send failed",
                extra={"context": {"status": response.status_code, "body": response.text[:500]}},
            )
            raise ChannelSendError("The messaging provider rejected the message", response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise ChannelSendError("Unexpected response from the messaging provider") from e
        if not isinstance(data, dict):
            raise ChannelSendError("Unexpected response from the messaging provider")

        return SendReceipt(message_id=self.extract_message_id(data), raw=data)


class InstagramAdapter(ChannelAdapter):
    channel = "instagram"

    def build_request(self, credential, recipient_id, text):
        url = f"{self.graph_base_url}/{self.api_version}/me/messages"
        return url, {"recipient": {"id": recipient_id}, "message": {"text": text}}

    def extract_message_id(self, data):
        return data.get("message_id")


class WhatsAppAdapter(ChannelAdapter):
    channel = "whatsapp"

    def build_request(self, credential, recipient_id, text):
        url = f"{self.graph_base_url}/{self.api_version}/{credential.account_external_id}/messages"
        return url, {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient_id,
            "type": "text",
            "text": {"body": text},
        }

    def extract_message_id(self, data):
        messages = data.get("messages")
        if isinstance(messages, list) and messages and isinstance(messages[0], dict):
            return messages[0].get("id")
        return None


def build_adapters(settings, transport: Optional[httpx.BaseTransport] = None) -> dict[str, ChannelAdapter]:
    kwargs = {
        "graph_base_url": settings.meta_graph_api_base_url,
        "api_version": settings.meta_graph_api_version,
        "timeout_seconds": settings.meta_timeout_seconds,
        "transport": transport,
    }
    return {"instagram": InstagramAdapter(**kwargs), "whatsapp": WhatsAppAdapter(**kwargs)}
