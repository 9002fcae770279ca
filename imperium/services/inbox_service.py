from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from imperium.logging_config import get_logger
from imperium.models import ChannelAccount, Message
from imperium.services.meta_service import ChannelAdapter, ChannelSendError, SendCredential
from imperium.services.normalizers.base import InboundEvent
from imperium.services.result import Result

logger = get_logger("inbox_service")

INBOX_MAX_LIMIT = 50
SUPPORTED_CHANNELS = ("instagram", "whatsapp")


@dataclass
class StoredMessage:
    message: Message
    created: bool


def _clamp_limit(limit: int) -> int:
    return max(1, min(int(limit or INBOX_MAX_LIMIT), INBOX_MAX_LIMIT))


def get_caller_accounts(db: Session, caller_id: str, channel: Optional[str] = None) -> list[ChannelAccount]:
    query = db.query(ChannelAccount).filter(ChannelAccount.user_id == caller_id)
    if channel:
        query = query.filter(ChannelAccount.channel == channel)
    return query.all()


def resolve_account(db: Session, channel: str, external_account_id: Optional[str]) -> Optional[ChannelAccount]:
    """Account that owns a webhook event (IG user id / WhatsApp phone_number_id)."""
    if not external_account_id:
        return None
    return (
        db.query(ChannelAccount)
        .filter(
            ChannelAccount.channel == channel,
            ChannelAccount.external_account_id == external_account_id,
        )
        .first()
    )


def _sort_key(message: Message):
    ts = message.timestamp
    if ts is not None and ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts or datetime.min.replace(tzinfo=timezone.utc)


def list_messages(db: Session, caller_id: str, limit: int = INBOX_MAX_LIMIT) -> list[Message]:
    """Newest messages across all of the caller's channel accounts, globally ordered."""
    limit = _clamp_limit(limit)
    accounts = get_caller_accounts(db, caller_id)
    if not accounts:
        return []

    by_channel: dict[str, list[ChannelAccount]] = defaultdict(list)
    for account in accounts:
        by_channel[account.channel].append(account)

    merged: list[Message] = []
    for channel, channel_accounts in by_channel.items():
        account_ids = [a.id for a in channel_accounts]
        external_ids = [a.external_account_id for a in channel_accounts if a.external_account_id]
        rows = (
            db.query(Message)
            .filter(
                Message.channel == channel,
                or_(
                    Message.account_id.in_(account_ids),
                    Message.sender_id.in_(external_ids),
                    Message.recipient_id.in_(external_ids),
                ),
            )
            .order_by(Message.timestamp.desc())
            .limit(limit)
            .all()
        )
        merged.extend(rows)

    merged.sort(key=_sort_key, reverse=True)
    return merged[:limit]


def find_message(db: Session, channel: str, message_id: str) -> Optional[Message]:
    return db.query(Message).filter(Message.channel == channel, Message.message_id == message_id).first()


def store_inbound_event(
    db: Session,
    event: InboundEvent,
    account: Optional[ChannelAccount] = None,
    lead_id=None,
    campaign_id=None,
) -> Result[StoredMessage]:
    """Insert once per (channel, external id); replays return the stored row."""
    existing = find_message(db, event.channel, event.external_id)
    if existing is not None:
        return Result.success(StoredMessage(message=existing, created=False))

    row = Message(
        channel=event.channel,
        message_id=event.external_id,
        account_id=account.id if account is not None else None,
        sender_id=event.sender_id,
        recipient_id=event.recipient_id,
        sender_name=event.sender_name or event.sender_username,
        body=event.text,
        timestamp=event.timestamp,
        direction="incoming",
        lead_id=lead_id,
        campaign_id=campaign_id,
    )
    try:
        with db.begin_nested():
            db.add(row)
            db.flush()
    except IntegrityError:
        # A concurrent delivery of the same event won the insert.
        existing = find_message(db, event.channel, event.external_id)
        if existing is None:
            raise
        logger.info(
            "Duplicate inbound message resolved to existing row",
            extra={"context": {"channel": event.channel, "message_id": event.external_id}},
        )
        return Result.success(StoredMessage(message=existing, created=False))

    return Result.success(StoredMessage(message=row, created=True))


def send_message(
    db: Session,
    caller_id: str,
    channel: str,
    recipient: str,
    text: str,
    adapters: dict[str, ChannelAdapter],
    lead_id=None,
) -> Result[Message]:
    """Send through the caller's connected account and persist the outgoing copy."""
    channel = (channel or "").lower()
    adapter = adapters.get(channel)
    if channel not in SUPPORTED_CHANNELS or adapter is None:
        return Result.failure(f"Unsupported channel: {channel}", "unsupported_channel")

    if not recipient or not (text or "").strip():
        return Result.failure("Recipient and text are required", "validation_error")

    account = (
        db.query(ChannelAccount)
        .filter(
            ChannelAccount.user_id == caller_id,
            ChannelAccount.channel == channel,
            ChannelAccount.status == "connected",
        )
        .first()
    )
    if account is None:
        return Result.failure(f"No connected {channel} account", "account_not_connected")

    credential = SendCredential(
        access_token=account.access_token or "",
        account_external_id=account.external_account_id,
    )
    try:
        receipt = adapter.send(credential, recipient, text)
    except ChannelSendError as e:
        logger.warning(
            "Outbound message failed",
            extra={"context": {"channel": channel, "account_id": str(account.id), "error": e.message}},
        )
        return Result.failure(e.message, "send_failed")

    row = Message(
        channel=channel,
        message_id=receipt.message_id or f"local_{uuid4().hex}",
        account_id=account.id,
        sender_id=account.external_account_id,
        recipient_id=recipient,
        sender_name=account.display_name,
        body=text,
        timestamp=datetime.now(timezone.utc),
        direction="outgoing",
        lead_id=lead_id,
    )
    db.add(row)
    db.flush()
    logger.info("Outbound message sent", extra={"context": {"channel": channel, "message_id": row.message_id}})
    return Result.success(row)
