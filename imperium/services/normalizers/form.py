"""Flat form / spreadsheet rows -> InboundEvent (channel "form") and ContactSubmission.

Rows come from landing-page forms and Google Sheets scripts whose column
headers are not under our control, so every field is looked up across a fixed,
ordered list of spellings and the first non-empty value wins.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Optional

from imperium.logging_config import get_logger
from imperium.services.normalizers.base import ContactSubmission, InboundEvent, as_str, parse_epoch

logger = get_logger("normalizers.form")

FIELD_ALIASES = {
    "name": ["name", "Name", "NAME", "full_name", "fullName", "Full Name"],
    "phone": [
        "phone",
        "Phone",
        "PHONE",
        "mobile",
        "Mobile",
        "phone_number",
        "phoneNumber",
        "Phone Number",
        "whatsapp",
        "WhatsApp",
    ],
    "email": ["email", "Email", "EMAIL", "e-mail", "E-mail", "mail"],
    "notes": ["notes", "Notes", "NOTES", "message", "Message", "comment", "Comment"],
    "budget": ["budget", "Budget", "BUDGET"],
    "source": ["source", "Source", "SOURCE"],
}

MARKETING_ALIASES = {
    "marketing_channel": ["marketing_channel", "marketingChannel", "channel"],
    "page_slug": ["page_slug", "pageSlug"],
    "utm_source": ["utm_source", "utmSource"],
    "utm_medium": ["utm_medium", "utmMedium"],
    "utm_campaign": ["utm_campaign", "utmCampaign"],
    "utm_term": ["utm_term", "utmTerm"],
    "utm_content": ["utm_content", "utmContent"],
    "landing_path": ["landing_path", "landingPath"],
    "referer": ["referer", "referrer"],
}

PROFILE_ALIASES = {
    "country": ["country", "Country"],
    "language": ["language", "Language", "lang"],
    "budget_range": ["budget_range", "budgetRange"],
    "time_to_invest": ["time_to_invest", "timeToInvest"],
    "investment_goal": ["investment_goal", "investmentGoal"],
}


def pick(row: dict, aliases: list[str]) -> Optional[str]:
    for key in aliases:
        value = as_str(row.get(key))
        if value:
            return value
    return None


def _pick_group(row: dict, group: dict) -> dict:
    values = {}
    for field_name, aliases in group.items():
        value = pick(row, aliases)
        if value:
            values[field_name] = value
    return values


def is_valid(row: dict) -> bool:
    if not isinstance(row, dict):
        return False
    if not pick(row, FIELD_ALIASES["name"]):
        return False
    return bool(pick(row, FIELD_ALIASES["phone"]) or pick(row, FIELD_ALIASES["email"]))


def normalize_row(row) -> tuple[Optional[ContactSubmission], Optional[str]]:
    """Returns (submission, None) or (None, validation error)."""
    if not isinstance(row, dict):
        return None, "Payload must be a JSON object"

    name = pick(row, FIELD_ALIASES["name"])
    if not name:
        logger.warning("Form row without name", extra={"context": {"keys": sorted(row.keys())[:20]}})
        return None, "Name is required"

    phone = pick(row, FIELD_ALIASES["phone"])
    email = pick(row, FIELD_ALIASES["email"])
    if not phone and not email:
        return None, "Phone or email is required"

    notes = pick(row, FIELD_ALIASES["notes"])
    source = pick(row, FIELD_ALIASES["source"])
    return (
        ContactSubmission(
            name=name,
            phone=phone,
            email=email,
            message=notes,
            notes=notes,
            budget=pick(row, FIELD_ALIASES["budget"]),
            source=source.upper() if source else None,
            marketing=_pick_group(row, MARKETING_ALIASES),
            profile=_pick_group(row, PROFILE_ALIASES),
        ),
        None,
    )


def _row_external_id(row: dict) -> str:
    row_id = pick(row, ["id", "row_id", "rowId", "submission_id"])
    if row_id:
        return f"form_{row_id}"
    # Same row replayed -> same id.
    digest = hashlib.sha1(json.dumps(row, sort_keys=True, default=str).encode("utf-8")).hexdigest()
    return f"form_{digest[:16]}"


def to_event(row: dict, submission: ContactSubmission) -> InboundEvent:
    timestamp = parse_epoch(row.get("timestamp")) or datetime.now(timezone.utc)
    return InboundEvent(
        channel="form",
        external_id=_row_external_id(row),
        sender_id=submission.phone or submission.email,
        recipient_id="form",
        text=submission.message or "",
        timestamp=timestamp,
        raw=row,
        sender_name=submission.name,
    )


def extract_events(payload) -> list[InboundEvent]:
    """Accepts one row or a list of rows; invalid rows are dropped."""
    rows = payload if isinstance(payload, list) else [payload]
    events = []
    for row in rows:
        submission, error = normalize_row(row)
        if submission is None:
            logger.warning("Dropping invalid form row", extra={"context": {"error": error}})
            continue
        events.append(to_event(row, submission))
    return events
