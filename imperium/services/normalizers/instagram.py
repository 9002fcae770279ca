"""Instagram Messaging webhook payloads -> InboundEvent."""

from datetime import datetime, timezone

from imperium.logging_config import get_logger
from imperium.services.normalizers.base import InboundEvent, as_str, parse_epoch

logger = get_logger("normalizers.instagram")

CHANNEL = "instagram"


def _message_text(message: dict):
    text = message.get("text")
    if isinstance(text, dict):
        text = text.get("body")
    return as_str(text)


def is_valid(event: dict) -> bool:
    if not isinstance(event, dict):
        return False
    sender = event.get("sender")
    recipient = event.get("recipient")
    message = event.get("message")
    if not isinstance(sender, dict) or not as_str(sender.get("id")):
        return False
    if not isinstance(recipient, dict) or not as_str(recipient.get("id")):
        return False
    if not isinstance(message, dict) or message.get("is_echo"):
        return False
    return _message_text(message) is not None


def _to_event(event: dict) -> InboundEvent:
    sender = event["sender"]
    message = event["message"]
    sender_id = as_str(sender.get("id"))
    raw_timestamp = event.get("timestamp")
    timestamp = parse_epoch(raw_timestamp) or datetime.now(timezone.utc)
    external_id = as_str(message.get("mid")) or f"ig_{sender_id}_{raw_timestamp or int(timestamp.timestamp() * 1000)}"

    referral = event.get("referral") or message.get("referral") or {}
    ad_id = as_str(referral.get("ad_id")) if isinstance(referral, dict) else None

    return InboundEvent(
        channel=CHANNEL,
        external_id=external_id,
        sender_id=sender_id,
        recipient_id=as_str(event["recipient"].get("id")),
        text=_message_text(message),
        timestamp=timestamp,
        raw=event,
        sender_name=as_str(sender.get("name")),
        sender_username=as_str(sender.get("username")),
        referral_ad_id=ad_id,
        account_external_id=as_str(event["recipient"].get("id")),
    )


def extract_events(payload) -> list[InboundEvent]:
    if not isinstance(payload, dict) or payload.get("object") != "instagram":
        return []
    entries = payload.get("entry")
    if not isinstance(entries, list):
        return []

    events: list[InboundEvent] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        messaging = entry.get("messaging")
        if not isinstance(messaging, list):
            continue
        for item in messaging:
            if isinstance(item, dict) and isinstance(item.get("message"), dict) and item["message"].get("is_echo"):
                continue
            if not is_valid(item):
                logger.warning(
                    "Dropping invalid Instagram event",
                    extra={"context": {"entry_id": entry.get("id")}},
                )
                continue
            events.append(_to_event(item))
    return events
