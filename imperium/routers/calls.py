import json
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.orm import Session

from imperium.database import get_db
from imperium.dependencies import get_container
from imperium.logging_config import get_logger
from imperium.schemas.call import CallEventResponse, CallOut, CallRequest, CallResponse
from imperium.services.auth_service import Caller, require_caller
from imperium.services.call_service import apply_status_update, extract_external_id, map_provider_event, request_call
from imperium.services.result import Result
from imperium.services.signature_service import verify_shared_secret

logger = get_logger("calls")

router = APIRouter()


@router.post("/calls", response_model=CallResponse)
def create_call(
    body: CallRequest,
    request: Request,
    caller: Caller = Depends(require_caller),
    db: Session = Depends(get_db),
):
    """Click-to-call: Zadarma rings the agent line, then the lead."""
    container = get_container(request)
    result = request_call(
        db,
        caller,
        container.telephony,
        lead_id=body.lead_id,
        phone_number=body.phone_number,
        from_number=container.settings.zadarma_from_number,
        sip=container.settings.zadarma_sip,
    )
    if not result.ok:
        return JSONResponse(status_code=result.status_code, content=result.error_body())
    return CallResponse(success=True, call=CallOut.model_validate(result.value))


@router.get("/calls/events")
def verify_call_events(zd_echo: str = ""):
    """Zadarma echoes ``zd_echo`` once when the notification URL is saved."""
    return PlainTextResponse(zd_echo)


async def _event_payload(request: Request) -> dict:
    raw = await request.body()
    if "application/json" in (request.headers.get("content-type") or ""):
        try:
            data = json.loads(raw or b"{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    return dict(parse_qsl(raw.decode("utf-8", errors="replace")))


@router.post("/calls/events", response_model=CallEventResponse)
async def call_events(request: Request, db: Session = Depends(get_db)):
    """Provider status callbacks."""
    settings = get_container(request).settings
    if not verify_shared_secret(request.headers.get("x-telephony-secret"), settings.telephony_webhook_secret):
        failure = Result.failure("Unauthorized", "unauthorized")
        return JSONResponse(status_code=failure.status_code, content=failure.error_body())

    payload = await _event_payload(request)
    external_id = extract_external_id(payload)
    new_status = map_provider_event(payload)
    if not external_id or new_status is None:
        logger.info("Ignoring unrecognised call event", extra={"context": {"event": payload.get("event")}})
        return CallEventResponse(success=True, changed=False)

    result = apply_status_update(db, external_id, new_status)
    if not result.ok:
        # unknown calls are acknowledged so the provider stops retrying
        logger.warning("Call event for unknown call", extra={"context": {"external_call_id": external_id}})
        return CallEventResponse(success=True, changed=False)

    db.commit()
    update = result.value
    return CallEventResponse(success=True, changed=update.changed, status=update.call.status)
