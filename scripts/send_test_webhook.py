#!/usr/bin/env python3
"""
Send a signed sample Meta webhook to a running instance.
Usage: python scripts/send_test_webhook.py <instagram|whatsapp|verify> [base_url]

Reads META_APP_SECRET and META_WEBHOOK_VERIFY_TOKEN from the environment.
"""

import hashlib
import hmac
import json
import os
import sys
import time

import requests

BASE_URL = "http://localhost:8000"
APP_SECRET = os.environ.get("META_APP_SECRET", "")
VERIFY_TOKEN = os.environ.get("META_WEBHOOK_VERIFY_TOKEN", "")


def instagram_payload() -> dict:
    now_ms = int(time.time() * 1000)
    return {
        "object": "instagram",
        "entry": [
            {
                "id": "17841400000000000",
                "time": now_ms,
                "messaging": [
                    {
                        "sender": {"id": "9000000000001"},
                        "recipient": {"id": "17841400000000000"},
                        "timestamp": now_ms,
                        "message": {"mid": f"test_mid_{now_ms}", "text": "Hi, is the Marina apartment available?"},
                    }
                ],
            }
        ],
    }


def whatsapp_payload() -> dict:
    now = int(time.time())
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "100000000000000",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"display_phone_number": "971800000000", "phone_number_id": "110000000000000"},
                            "contacts": [{"profile": {"name": "Test Buyer"}, "wa_id": "971501234567"}],
                            "messages": [
                                {
                                    "from": "971501234567",
                                    "id": f"wamid.TEST{now}",
                                    "timestamp": str(now),
                                    "type": "text",
                                    "text": {"body": "Hello, I want details about off-plan projects"},
                                }
                            ],
                        },
                    }
                ],
            }
        ],
    }


def sign(body: bytes) -> str:
    return "sha256=" + hmac.new(APP_SECRET.encode(), body, hashlib.sha256).hexdigest()


def send_event(base_url: str, payload: dict) -> None:
    body = json.dumps(payload).encode()
    response = requests.post(
        f"{base_url}/webhooks/meta",
        data=body,
        headers={"Content-Type": "application/json", "X-Hub-Signature-256": sign(body)},
        timeout=15,
    )
    print(response.status_code, response.text)


def verify(base_url: str) -> None:
    response = requests.get(
        f"{base_url}/webhooks/meta",
        params={"hub.mode": "subscribe", "hub.verify_token": VERIFY_TOKEN, "hub.challenge": "challenge-123"},
        timeout=15,
    )
    print(response.status_code, response.text)


def main() -> int:
    if len(sys.argv) < 2 or sys.argv[1] not in {"instagram", "whatsapp", "verify"}:
        print(__doc__)
        return 1
    base_url = (sys.argv[2] if len(sys.argv) > 2 else BASE_URL).rstrip("/")

    if sys.argv[1] == "verify":
        verify(base_url)
    elif sys.argv[1] == "instagram":
        send_event(base_url, instagram_payload())
    else:
        send_event(base_url, whatsapp_payload())
    return 0


if __name__ == "__main__":
    sys.exit(main())
