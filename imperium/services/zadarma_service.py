"""Zadarma telephony API client (click-to-call callbacks and balance)."""

import base64
import hashlib
import hmac
from typing import Optional
from urllib.parse import urlencode

import httpx

from imperium.logging_config import get_logger

logger = get_logger("zadarma_service")

CALLBACK_METHOD = "/v1/request/callback/"
BALANCE_METHOD = "/v1/info/balance/"


class TelephonyError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def encode_params(params: dict) -> str:
    """Alphabetically sorted, form-urlencoded parameter string."""
    return urlencode(sorted((key, str(value)) for key, value in params.items() if value is not None))


def sign_request(method: str, params: dict, secret: str) -> str:
    """base64(HMAC-SHA1(secret, method + params + md5(params)))."""
    params_str = encode_params(params)
    params_md5 = hashlib.md5(params_str.encode("utf-8")).hexdigest() if params_str else ""
    sign_string = f"{method}{params_str}{params_md5}"
    digest = hmac.new(secret.encode("utf-8"), sign_string.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


class ZadarmaClient:
    def __init__(
        self,
        api_key: Optional[str],
        api_secret: Optional[str],
        api_url: str = "https://api.zadarma.com",
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_secret)

    def _request(self, method: str, params: Optional[dict] = None) -> dict:
        if not self.is_configured:
            raise TelephonyError("Telephony provider is not configured")

        params = {k: v for k, v in (params or {}).items() if v is not None}
        query = encode_params(params)
        url = f"{self.api_url}{method}" + (f"?{query}" if query else "")
        headers = {
            "Authorization": f"{self.api_key}:{sign_request(method, params, self.api_secret)}",
            "Content-Type": "application/x-www-form-urlencoded",
        }

        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Zadarma transport error: {e}", extra={"context": {"method": method}})
            raise TelephonyError("Could not reach the telephony provider") from e

        try:
            data = response.json()
        except ValueError as e:
            raise TelephonyError("Malformed response from the telephony provider", response.status_code) from e

        if response.status_code >= 300 or not isinstance(data, dict) or data.get("status") != "success":
            message = data.get("message") if isinstance(data, dict) else None
            logger.warning(
                "Zadarma request failed",
                extra={"context": {"method": method, "status": response.status_code, "message": message}},
            )
            raise TelephonyError(message or "Telephony request failed", response.status_code)

        return data

    def place_call(self, from_number: str, to_number: str, sip: Optional[str] = None) -> str:
        """Request a callback between ``from_number`` and ``to_number``. Returns the external call id."""
        data = self._request(CALLBACK_METHOD, {"from": from_number, "to": to_number, "sip": sip})

        call_id = data.get("call_id") or data.get("pbx_call_id")
        if call_id:
            return str(call_id)
        # The callback API answers with {status, from, to, time} only.
        if data.get("time") and data.get("to"):
            return f"cb_{data['time']}_{data['to']}"
        raise TelephonyError("Malformed response from the telephony provider")

    def get_balance(self) -> dict:
        data = self._request(BALANCE_METHOD)
        return {"balance": data.get("balance"), "currency": data.get("currency")}
