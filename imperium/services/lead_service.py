import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from imperium.logging_config import get_logger
from imperium.models import Lead, LeadEvent, Pipeline, Stage
from imperium.services import store
from imperium.services.normalizers import form
from imperium.services.normalizers.base import ContactSubmission, InboundEvent
from imperium.services.result import Result
from imperium.services.store import EntityTag

logger = get_logger("lead_service")

# Suffix matching on shorter numbers merges unrelated people, so those need an exact match.
MIN_SUFFIX_MATCH_DIGITS = 7

PLACEHOLDER_NAMES = {"", "unknown", "instagram user", "whatsapp user", "legacy lead", "lead"}

LEGACY_NAMESPACE = uuid.UUID("6f1c2d0e-8b7a-4d5e-9c3b-2a1f0e9d8c7b")

MARKETING_FIELDS = (
    "marketing_channel",
    "page_slug",
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "landing_path",
    "referer",
    "user_agent",
    "ip_address",
)

PROFILE_FIELDS = (
    "country",
    "language",
    "is_whatsapp_preferred",
    "budget_range",
    "time_to_invest",
    "investment_goal",
)


class LeadSource(str, Enum):
    WEBSITE = "WEBSITE"
    INSTAGRAM = "INSTAGRAM"
    WHATSAPP = "WHATSAPP"
    GOOGLE_SHEETS = "GOOGLE_SHEETS"
    LEGACY_SYNC = "LEGACY_SYNC"
    MANUAL = "MANUAL"


@dataclass
class IntakeOutcome:
    lead: Lead
    is_new: bool


@dataclass
class BackfillReport:
    created: int = 0
    skipped_existing: int = 0
    skipped_conflict: int = 0
    failed: int = 0
    failed_ids: list = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "created": self.created,
            "skipped_existing": self.skipped_existing,
            "skipped_conflict": self.skipped_conflict,
            "failed": self.failed,
        }


def normalize_phone(value: Optional[str]) -> str:
    """Keep digits only: '+971 (50) 123-4567' -> '971501234567'."""
    if not value:
        return ""
    return re.sub(r"\D", "", str(value))


def normalize_email(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = str(value).strip().lower()
    return value or None


def is_placeholder_name(name: Optional[str]) -> bool:
    return (name or "").strip().lower() in PLACEHOLDER_NAMES


def find_existing_lead(db: Session, phone: Optional[str], email: Optional[str]) -> Optional[Lead]:
    """Oldest lead matching by lower-cased email OR by phone suffix."""
    criteria = []
    email = normalize_email(email)
    if email:
        criteria.append(func.lower(Lead.email) == email)

    digits = normalize_phone(phone)
    if digits:
        if len(digits) >= MIN_SUFFIX_MATCH_DIGITS:
            criteria.append(Lead.phone.endswith(digits))
        else:
            criteria.append(Lead.phone == digits)

    if not criteria:
        return None

    return db.query(Lead).filter(or_(*criteria)).order_by(Lead.created_at.asc()).first()


def _merge_into(lead: Lead, contact: ContactSubmission, phone: str, email: Optional[str]) -> None:
    """Fill gaps on an existing lead; provenance follows the latest touch."""
    if contact.name and not is_placeholder_name(contact.name):
        if not lead.name or is_placeholder_name(lead.name):
            lead.name = contact.name
    elif not lead.name:
        lead.name = contact.name

    if phone and not lead.phone:
        lead.phone = phone
    if email and not lead.email:
        lead.email = email
    if contact.budget and not lead.budget:
        lead.budget = contact.budget
    if contact.message and not lead.message:
        lead.message = contact.message

    for name in PROFILE_FIELDS:
        value = contact.profile.get(name)
        if value not in (None, "") and getattr(lead, name) in (None, "", False):
            setattr(lead, name, value)

    for name in MARKETING_FIELDS:
        value = contact.marketing.get(name)
        if value:
            setattr(lead, name, value)

    if contact.campaign_id:
        lead.campaign_id = contact.campaign_id


def _describe_touch(contact: ContactSubmission, source: str, event_type: str) -> str:
    if event_type == "MESSAGE_RECEIVED":
        return f"Message received via {source.lower()}"
    channel = contact.marketing.get("marketing_channel") or source.lower()
    page = contact.marketing.get("page_slug") or "unknown"
    return f"Lead submitted from {channel}/{page}"


def record_lead_event(
    db: Session,
    lead_id,
    event_type: str,
    description: str,
    meta: Optional[dict] = None,
) -> bool:
    """Append to the lead's touch trail. Never fails the surrounding intake."""
    try:
        with db.begin_nested():
            db.add(LeadEvent(lead_id=lead_id, type=event_type, description=description, meta=meta or {}))
        return True
    except SQLAlchemyError as e:
        logger.error(
            "Failed to record lead event",
            extra={"context": {"lead_id": str(lead_id), "type": event_type, "error": str(e)}},
        )
        return False


def intake_lead(
    db: Session,
    contact: ContactSubmission,
    *,
    source: str,
    event_type: str = "FORM_SUBMITTED",
    new_lead_defaults: Optional[dict] = None,
) -> Result[IntakeOutcome]:
    """Create a lead or merge the submission into the one it duplicates.

    Does not commit; the caller owns the transaction.
    """
    phone = normalize_phone(contact.phone)
    email = normalize_email(contact.email)
    if not phone and not email:
        return Result.failure("Phone or email is required", "validation_error")

    source = (contact.source or source or LeadSource.MANUAL.value).upper()
    existing = find_existing_lead(db, phone, email)

    if existing is not None:
        _merge_into(existing, contact, phone, email)
        db.flush()
        lead, is_new = existing, False
        logger.info("Lead matched existing", extra={"context": {"lead_id": str(lead.id), "source": source}})
    else:
        fields = {
            "name": contact.name or "Unknown",
            "phone": phone or None,
            "email": email,
            "message": contact.message,
            "budget": contact.budget,
            "source": source,
            "status": "new",
            "campaign_id": contact.campaign_id,
        }
        fields.update({k: v for k, v in contact.profile.items() if k in PROFILE_FIELDS and v not in (None, "")})
        fields.update({k: v for k, v in contact.marketing.items() if k in MARKETING_FIELDS and v})
        fields.update(new_lead_defaults or {})
        lead, is_new = store.create(db, EntityTag.LEAD, **fields), True
        logger.info("Lead created", extra={"context": {"lead_id": str(lead.id), "source": source}})

    record_lead_event(
        db,
        lead.id,
        event_type,
        _describe_touch(contact, source, event_type),
        {"source": source, "is_new": is_new, **contact.marketing},
    )
    return Result.success(IntakeOutcome(lead=lead, is_new=is_new))


def contact_from_event(event: InboundEvent, campaign_id=None) -> ContactSubmission:
    """Turn an inbound event sender into a contact the dedup engine can match."""
    if event.channel == "form":
        contact, _ = form.normalize_row(event.raw)
        if contact is None:
            contact = ContactSubmission(name=event.sender_name or "Unknown", message=event.text or None)
        contact.campaign_id = campaign_id
        return contact

    if event.channel == "whatsapp":
        return ContactSubmission(
            name=event.sender_name or "WhatsApp User",
            phone=event.sender_id,
            message=event.text,
            campaign_id=campaign_id,
            profile={"is_whatsapp_preferred": True},
            marketing={"marketing_channel": "whatsapp"},
        )

    handle = event.sender_username or event.sender_id
    return ContactSubmission(
        name=event.sender_name or event.sender_username or "Instagram User",
        email=f"{handle}@instagram.com",
        message=event.text,
        campaign_id=campaign_id,
        marketing={"marketing_channel": "instagram"},
    )


def get_default_pipeline_stage(db: Session) -> tuple[Optional[Pipeline], Optional[Stage]]:
    pipeline = store.find_first(db, EntityTag.PIPELINE, Pipeline.is_default.is_(True))
    if pipeline is None:
        return None, None
    stage = store.find_first(db, EntityTag.STAGE, Stage.pipeline_id == pipeline.id, order_by=Stage.order.asc())
    return pipeline, stage


def legacy_lead_id(legacy_id: Any) -> uuid.UUID:
    return uuid.uuid5(LEGACY_NAMESPACE, f"legacy:{legacy_id}")


def _legacy_budget(row: dict) -> Optional[str]:
    payload = row.get("payload")
    if isinstance(payload, dict) and payload.get("budget") not in (None, ""):
        return str(payload["budget"])
    return None


def backfill_legacy_leads(db: Session, rows: Iterable[dict]) -> Result[BackfillReport]:
    """Copy rows of the legacy lead table into the default pipeline's first stage.

    Existing leads (by phone/email) are never touched or reassigned. Re-running
    is safe: ids are derived from the legacy id and inserted with
    ON CONFLICT DO NOTHING. The caller commits.
    """
    pipeline, stage = get_default_pipeline_stage(db)
    if pipeline is None or stage is None:
        return Result.failure("Default pipeline with at least one stage is required", "no_default_pipeline")

    report = BackfillReport()
    for row in rows:
        legacy_id = row.get("id")
        phone = normalize_phone(row.get("phone"))
        email = normalize_email(row.get("email"))
        if legacy_id is None or (not phone and not email):
            report.failed += 1
            report.failed_ids.append(legacy_id)
            logger.warning("Legacy row without id or contact", extra={"context": {"legacy_id": legacy_id}})
            continue

        if find_existing_lead(db, phone, email) is not None:
            report.skipped_existing += 1
            continue

        values = {
            "id": legacy_lead_id(legacy_id),
            "name": (row.get("full_name") or "").strip() or "Legacy Lead",
            "phone": phone or None,
            "email": email,
            "budget": _legacy_budget(row),
            "source": LeadSource.LEGACY_SYNC.value,
            "status": "new",
            "priority": "MEDIUM",
            "score": 50,
            "is_whatsapp_preferred": False,
            "pipeline_id": pipeline.id,
            "stage_id": stage.id,
        }
        try:
            with db.begin_nested():
                inserted = store.insert_if_absent(db, EntityTag.LEAD, values)
        except SQLAlchemyError as e:
            report.failed += 1
            report.failed_ids.append(legacy_id)
            logger.error("Legacy lead insert failed", extra={"context": {"legacy_id": legacy_id, "error": str(e)}})
            continue

        if inserted:
            report.created += 1
        else:
            report.skipped_conflict += 1

    logger.info("Legacy backfill finished", extra={"context": report.as_dict()})
    return Result.success(report)
