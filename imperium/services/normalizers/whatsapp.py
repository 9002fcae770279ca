"""WhatsApp Cloud API webhook payloads -> InboundEvent."""

import re
from datetime import datetime, timezone

from imperium.logging_config import get_logger
from imperium.services.normalizers.base import InboundEvent, as_str, parse_epoch

logger = get_logger("normalizers.whatsapp")

CHANNEL = "whatsapp"


def is_valid(event: dict) -> bool:
    """``event`` is ``{"message": ..., "metadata": ...}`` as paired by extract_events."""
    if not isinstance(event, dict):
        return False
    message = event.get("message")
    metadata = event.get("metadata")
    if not isinstance(message, dict) or not isinstance(metadata, dict):
        return False
    if not as_str(message.get("from")) or not as_str(metadata.get("phone_number_id")):
        return False
    if message.get("type") != "text":
        return False
    text = message.get("text")
    return isinstance(text, dict) and as_str(text.get("body")) is not None


def _contact_names(value: dict) -> dict:
    names = {}
    for contact in value.get("contacts") or []:
        if not isinstance(contact, dict):
            continue
        wa_id = as_str(contact.get("wa_id"))
        profile = contact.get("profile") or {}
        name = as_str(profile.get("name")) if isinstance(profile, dict) else None
        if wa_id and name:
            names[wa_id] = name
    return names


def _to_event(message: dict, metadata: dict, names: dict) -> InboundEvent:
    sender = re.sub(r"\D", "", as_str(message.get("from")) or "")
    phone_number_id = as_str(metadata.get("phone_number_id"))
    timestamp = parse_epoch(message.get("timestamp")) or datetime.now(timezone.utc)
    external_id = as_str(message.get("id")) or f"wa_{sender}_{int(timestamp.timestamp())}"

    referral = message.get("referral")
    ad_id = as_str(referral.get("source_id")) if isinstance(referral, dict) else None

    return InboundEvent(
        channel=CHANNEL,
        external_id=external_id,
        sender_id=sender,
        recipient_id=phone_number_id,
        text=as_str(message["text"].get("body")),
        timestamp=timestamp,
        raw=message,
        sender_name=names.get(as_str(message.get("from"))) or names.get(sender),
        referral_ad_id=ad_id,
        account_external_id=phone_number_id,
    )


def extract_events(payload) -> list[InboundEvent]:
    if not isinstance(payload, dict) or payload.get("object") != "whatsapp_business_account":
        return []
    entries = payload.get("entry")
    if not isinstance(entries, list):
        return []

    events: list[InboundEvent] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        for change in entry.get("changes") or []:
            if not isinstance(change, dict) or change.get("field") != "messages":
                continue
            value = change.get("value")
            if not isinstance(value, dict):
                continue
            metadata = value.get("metadata") or {}
            names = _contact_names(value)
            # statuses-only changes carry no messages
            for message in value.get("messages") or []:
                candidate = {"message": message, "metadata": metadata}
                if not is_valid(candidate):
                    logger.warning(
                        "Dropping invalid WhatsApp message",
                        extra={"context": {"entry_id": entry.get("id"), "type": message.get("type") if isinstance(message, dict) else None}},
                    )
                    continue
                events.append(_to_event(message, metadata, names))
    return events
