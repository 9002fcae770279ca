from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

ERROR_STATUS_CODES = {
    "unauthorized": 401,
    "forbidden": 403,
    "validation_error": 400,
    "missing_phone": 400,
    "unsupported_channel": 400,
    "account_not_connected": 400,
    "invalid_transition": 409,
    "no_default_pipeline": 409,
    "send_failed": 502,
    "provider_error": 502,
    "telephony_error": 502,
    "telephony_not_configured": 503,
}


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown") -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default

    @property
    def status_code(self) -> int:
        """HTTP status a router should answer with for this result."""
        if self.ok:
            return 200
        code = self.error_code or "unknown"
        if code.endswith("_not_found"):
            return 404
        return ERROR_STATUS_CODES.get(code, 500)

    def error_body(self) -> dict:
        return {"success": False, "error": self.error, "error_code": self.error_code}
