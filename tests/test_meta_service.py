import json
from types import SimpleNamespace

import httpx
import pytest

from imperium.services.meta_service import (
    ChannelSendError,
    InstagramAdapter,
    SendCredential,
    WhatsAppAdapter,
    build_adapters,
)

CREDENTIAL = SendCredential(access_token="token-1", account_external_id="PN_1")


def _adapter(cls, handler):
    return cls(graph_base_url="https://graph.test", api_version="v19.0", transport=httpx.MockTransport(handler))


class TestInstagramAdapter:
    def test_send(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(200, json={"recipient_id": "555", "message_id": "mid.1"})

        receipt = _adapter(InstagramAdapter, handler).send(CREDENTIAL, "555", "Hi there")

        request = seen["request"]
        assert receipt.message_id == "mid.1"
        assert str(request.url) == "https://graph.test/v19.0/me/messages"
        assert request.headers["Authorization"] == "Bearer token-1"
        assert json.loads(request.content) == {"recipient": {"id": "555"}, "message": {"text": "Hi there"}}

    def test_rejected_send(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "(#100) bad"}})

        with pytest.raises(ChannelSendError) as exc:
            _adapter(InstagramAdapter, handler).send(CREDENTIAL, "555", "Hi")
        assert exc.value.status_code == 400
        assert "(#100)" not in exc.value.message

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectTimeout("timeout", request=request)

        with pytest.raises(ChannelSendError, match="Could not reach"):
            _adapter(InstagramAdapter, handler).send(CREDENTIAL, "555", "Hi")

    def test_missing_token(self):
        def handler(request):
            raise AssertionError("should not be called")

        with pytest.raises(ChannelSendError):
            _adapter(InstagramAdapter, handler).send(SendCredential("", "x"), "555", "Hi")


class TestWhatsAppAdapter:
    def test_send(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})

        receipt = _adapter(WhatsAppAdapter, handler).send(CREDENTIAL, "971501234567", "Hello")

        request = seen["request"]
        assert receipt.message_id == "wamid.1"
        assert str(request.url) == "https://graph.test/v19.0/PN_1/messages"
        body = json.loads(request.content)
        assert body["messaging_product"] == "whatsapp"
        assert body["to"] == "971501234567"
        assert body["text"] == {"body": "Hello"}

    def test_unexpected_body(self):
        def handler(request):
            return httpx.Response(200, json=["not", "a", "dict"])

        with pytest.raises(ChannelSendError, match="Unexpected"):
            _adapter(WhatsAppAdapter, handler).send(CREDENTIAL, "971", "Hello")

    def test_missing_message_id(self):
        def handler(request):
            return httpx.Response(200, json={"messages": []})

        assert _adapter(WhatsAppAdapter, handler).send(CREDENTIAL, "971", "Hello").message_id is None


def test_build_adapters():
    settings = SimpleNamespace(
        meta_graph_api_base_url="https://graph.facebook.com/",
        meta_graph_api_version="v20.0",
        meta_timeout_seconds=5.0,
    )
    adapters = build_adapters(settings)

    assert set(adapters) == {"instagram", "whatsapp"}
    assert adapters["instagram"].graph_base_url == "https://graph.facebook.com"
    assert adapters["whatsapp"].api_version == "v20.0"
