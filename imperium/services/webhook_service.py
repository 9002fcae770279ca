from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from imperium.logging_config import get_logger
from imperium.models import Campaign, ChannelAccount, Lead
from imperium.services import store
from imperium.services.inbox_service import StoredMessage, find_message, resolve_account, store_inbound_event
from imperium.services.lead_service import LeadSource, contact_from_event, intake_lead
from imperium.services.normalizers import instagram, whatsapp
from imperium.services.normalizers.base import InboundEvent
from imperium.services.result import Result
from imperium.services.store import EntityTag

logger = get_logger("webhook_service")

# New leads from DMs are warm: they reached out first.
INSTAGRAM_LEAD_DEFAULTS = {"score": 70, "priority": "HIGH"}

CHANNEL_SOURCES = {
    "instagram": LeadSource.INSTAGRAM.value,
    "whatsapp": LeadSource.WHATSAPP.value,
}


@dataclass
class IngestOutcome:
    status: str  # processed, duplicate, skipped
    stored: Optional[StoredMessage] = None
    account: Optional[ChannelAccount] = None
    lead: Optional[Lead] = None


def extract_meta_events(payload) -> list[InboundEvent]:
    """Instagram or WhatsApp events from one Meta webhook body."""
    return instagram.extract_events(payload) + whatsapp.extract_events(payload)


def _campaign_for(db: Session, ad_id: Optional[str]) -> Optional[Campaign]:
    if not ad_id:
        return None
    return store.find_first(db, EntityTag.CAMPAIGN, Campaign.external_id == ad_id)


def ingest_event(db: Session, event: InboundEvent) -> Result[IngestOutcome]:
    """Route one inbound chat message: account -> lead dedup -> idempotent store.

    Replays of an already stored message touch nothing. Does not commit.
    """
    if find_message(db, event.channel, event.external_id) is not None:
        return Result.success(IngestOutcome(status="duplicate"))

    account = resolve_account(db, event.channel, event.account_external_id)
    if account is not None and event.sender_id == account.external_account_id:
        # our own outbound message reflected back
        return Result.success(IngestOutcome(status="skipped", account=account))
    if account is None:
        logger.warning(
            "Inbound message for unknown channel account",
            extra={"context": {"channel": event.channel, "account": event.account_external_id}},
        )

    campaign = _campaign_for(db, event.referral_ad_id)
    contact = contact_from_event(event, campaign_id=campaign.id if campaign is not None else None)
    defaults = INSTAGRAM_LEAD_DEFAULTS if event.channel == "instagram" else None

    intake = intake_lead(
        db,
        contact,
        source=CHANNEL_SOURCES.get(event.channel, LeadSource.MANUAL.value),
        event_type="MESSAGE_RECEIVED",
        new_lead_defaults=defaults,
    )
    if not intake.ok:
        return Result.failure(intake.error, intake.error_code)
    lead = intake.value.lead

    stored = store_inbound_event(
        db,
        event,
        account,
        lead_id=lead.id,
        campaign_id=campaign.id if campaign is not None else None,
    )
    if not stored.ok:
        return Result.failure(stored.error, stored.error_code)
    if not stored.value.created:
        return Result.success(IngestOutcome(status="duplicate", stored=stored.value, account=account, lead=lead))

    store.create(
        db,
        EntityTag.ACTIVITY,
        lead_id=lead.id,
        type=event.channel.upper(),
        content=f"{event.channel.title()} message: {event.text[:500]}",
        is_completed=True,
    )
    logger.info(
        "Inbound message ingested",
        extra={"context": {"channel": event.channel, "message_id": event.external_id, "lead_id": str(lead.id)}},
    )
    return Result.success(IngestOutcome(status="processed", stored=stored.value, account=account, lead=lead))
