from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from imperium.logging_config import get_logger
from imperium.models import Call, Lead
from imperium.services import store
from imperium.services.alert_service import alert_error
from imperium.services.auth_service import Caller
from imperium.services.call_state_machine import (
    CallStatus,
    can_transition,
    fail,
    is_terminal,
    transition,
)
from imperium.services.lead_service import normalize_phone
from imperium.services.result import Result
from imperium.services.store import EntityTag
from imperium.services.zadarma_service import TelephonyError, ZadarmaClient

logger = get_logger("call_service")

PROVIDER_EVENTS = {
    "NOTIFY_START": CallStatus.RINGING,
    "NOTIFY_OUT_START": CallStatus.RINGING,
    "NOTIFY_ANSWER": CallStatus.ANSWERED,
}
END_EVENTS = {"NOTIFY_END", "NOTIFY_OUT_END"}


@dataclass
class CallUpdate:
    call: Call
    changed: bool
    previous_status: CallStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _record_call_activity(db: Session, call: Call, caller: Caller) -> None:
    if call.lead_id is None:
        return
    outcome = "placed" if call.status != CallStatus.FAILED.value else f"failed: {call.error}"
    store.create(
        db,
        EntityTag.ACTIVITY,
        lead_id=call.lead_id,
        type="CALL",
        content=f"Outbound call to {call.phone_number} {outcome}",
        is_completed=call.status == CallStatus.FAILED.value,
        performed_by=caller.id,
    )


def _fail_placement(db: Session, call: Call, caller: Caller, error: str, detail: str) -> Result[Call]:
    """Move a just-created call to FAILED. ``error`` is stored on the row, ``detail`` only logged."""
    call.status = fail(CallStatus(call.status)).value
    call.ended_at = _now()
    call.error = error
    _record_call_activity(db, call, caller)
    db.commit()
    logger.error(
        "Call placement failed",
        extra={"context": {"call_id": str(call.id), "error": detail}},
    )
    alert_error("Call placement failed", {"call_id": str(call.id), "error": detail})
    return Result.failure("The call could not be placed", "telephony_error")


def request_call(
    db: Session,
    caller: Caller,
    telephony: ZadarmaClient,
    *,
    lead_id=None,
    phone_number: Optional[str] = None,
    from_number: Optional[str] = None,
    sip: Optional[str] = None,
) -> Result[Call]:
    """Place an outbound click-to-call for a lead (or a raw number for admins).

    The INITIATED row is committed before the provider is contacted so a crash
    mid-request still leaves a trace. Commits.
    """
    if lead_id is not None:
        lead = db.query(Lead).filter(Lead.id == lead_id).first()
        if lead is None:
            return Result.failure("Lead not found", "lead_not_found")
        if not caller.is_elevated and lead.assigned_to != caller.id:
            return Result.failure("You can only call leads assigned to you", "forbidden")
        phone = normalize_phone(lead.phone)
        if not phone:
            return Result.failure("Lead has no phone number", "missing_phone")
    else:
        if not caller.is_elevated:
            return Result.failure("Only admins can call numbers outside a lead", "forbidden")
        phone = normalize_phone(phone_number)
        if not phone:
            return Result.failure("Phone number is required", "missing_phone")

    if not from_number or not telephony.is_configured:
        return Result.failure("Telephony is not configured", "telephony_not_configured")

    call = store.create(
        db,
        EntityTag.CALL,
        phone_number=phone,
        direction="OUTBOUND",
        status=CallStatus.INITIATED.value,
        lead_id=lead_id,
        requested_by=caller.id,
    )
    db.commit()

    try:
        external_id = telephony.place_call(from_number, phone, sip=sip)
    except TelephonyError as e:
        return _fail_placement(db, call, caller, e.message, e.message)
    except Exception as e:
        # Never leave a committed row stuck in INITIATED.
        return _fail_placement(db, call, caller, "Telephony provider error", repr(e))

    call.external_call_id = external_id
    call.status = transition(CallStatus(call.status), CallStatus.RINGING).value
    _record_call_activity(db, call, caller)
    db.commit()
    logger.info(
        "Call placed",
        extra={"context": {"call_id": str(call.id), "external_call_id": external_id}},
    )
    return Result.success(call)


def apply_status_update(db: Session, external_call_id: str, new_status: CallStatus) -> Result[CallUpdate]:
    """Apply a provider status callback. Late or repeated callbacks are no-ops."""
    call = db.query(Call).filter(Call.external_call_id == external_call_id).first()
    if call is None:
        return Result.failure("Call not found", "call_not_found")

    current = CallStatus(call.status)
    new_status = CallStatus(new_status)

    if is_terminal(current) or not can_transition(current, new_status):
        logger.info(
            "Ignoring call status update",
            extra={"context": {"call_id": str(call.id), "from": current.value, "to": new_status.value}},
        )
        return Result.success(CallUpdate(call=call, changed=False, previous_status=current))

    call.status = transition(current, new_status).value
    if new_status == CallStatus.ANSWERED:
        call.started_at = _now()
    if is_terminal(new_status):
        call.ended_at = _now()
    db.flush()
    return Result.success(CallUpdate(call=call, changed=True, previous_status=current))


def extract_external_id(payload: dict) -> Optional[str]:
    for key in ("call_id", "pbx_call_id", "external_call_id"):
        value = payload.get(key)
        if value:
            return str(value)
    return None


def map_provider_event(payload: dict) -> Optional[CallStatus]:
    """Zadarma NOTIFY_* webhooks or a plain ``{"status": ...}`` update -> CallStatus."""
    if not isinstance(payload, dict):
        return None

    event = str(payload.get("event") or "").upper()
    if event in PROVIDER_EVENTS:
        return PROVIDER_EVENTS[event]
    if event in END_EVENTS:
        disposition = str(payload.get("disposition") or "").lower()
        return CallStatus.COMPLETED if disposition == "answered" else CallStatus.FAILED

    status = str(payload.get("status") or "").upper()
    try:
        return CallStatus(status)
    except ValueError:
        return None
