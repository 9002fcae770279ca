from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


@dataclass(frozen=True)
class InboundEvent:
    """A single inbound chat message, independent of the channel it came from."""

    channel: str
    external_id: str
    sender_id: str
    recipient_id: str
    text: str
    timestamp: datetime
    raw: dict = field(default_factory=dict, compare=False, repr=False)
    sender_name: Optional[str] = None
    sender_username: Optional[str] = None
    referral_ad_id: Optional[str] = None
    account_external_id: Optional[str] = None


@dataclass
class ContactSubmission:
    """Contact details offered by a form, a sheet row or a chat sender."""

    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None
    notes: Optional[str] = None
    budget: Optional[str] = None
    source: Optional[str] = None
    campaign_id: Optional[Any] = None
    marketing: dict = field(default_factory=dict)
    profile: dict = field(default_factory=dict)


def as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(int(value)) if float(value).is_integer() else str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def parse_epoch(value: Any) -> Optional[datetime]:
    """Epoch seconds or milliseconds (digit strings accepted) to an aware UTC datetime."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            return None
        value = int(value)
    if not isinstance(value, (int, float)) or value <= 0:
        return None
    # Anything past year ~2286 in seconds is milliseconds.
    if value > 10_000_000_000:
        value = value / 1000.0
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
