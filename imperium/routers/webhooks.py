import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.orm import Session

from imperium.database import get_db
from imperium.dependencies import get_container
from imperium.logging_config import get_logger
from imperium.schemas.webhook import MetaWebhookResponse
from imperium.services.auto_reply_service import auto_reply, should_auto_reply
from imperium.services.result import Result
from imperium.services.signature_service import verify_signature, verify_subscription
from imperium.services.webhook_service import extract_meta_events, ingest_event

logger = get_logger("webhooks")

router = APIRouter()


@router.get("/webhooks/meta")
def verify_meta_webhook(request: Request):
    """Meta subscription handshake."""
    params = request.query_params
    challenge = verify_subscription(
        params.get("hub.mode"),
        params.get("hub.verify_token"),
        params.get("hub.challenge"),
        get_container(request).settings.meta_webhook_verify_token,
    )
    if challenge is None:
        logger.warning("Meta webhook verification rejected", extra={"context": {"mode": params.get("hub.mode")}})
        return PlainTextResponse("Forbidden", status_code=403)
    return PlainTextResponse(challenge)


@router.post("/webhooks/meta", response_model=MetaWebhookResponse)
async def receive_meta_webhook(request: Request, db: Session = Depends(get_db)):
    """Instagram DM and WhatsApp Cloud deliveries."""
    container = get_container(request)
    raw_body = await request.body()

    if not verify_signature(raw_body, request.headers.get("x-hub-signature-256"), container.settings.meta_app_secret):
        logger.warning("Meta webhook signature mismatch")
        failure = Result.failure("Invalid signature", "unauthorized")
        return JSONResponse(status_code=failure.status_code, content=failure.error_body())

    try:
        payload = json.loads(raw_body)
    except ValueError:
        failure = Result.failure("Invalid JSON body", "validation_error")
        return JSONResponse(status_code=failure.status_code, content=failure.error_body())

    counts = {"processed": 0, "duplicates": 0, "skipped": 0}
    fresh = []
    for event in extract_meta_events(payload):
        result = ingest_event(db, event)
        if not result.ok:
            counts["skipped"] += 1
            logger.warning(
                "Inbound event not ingested",
                extra={"context": {"message_id": event.external_id, "error_code": result.error_code}},
            )
            continue
        outcome = result.value
        if outcome.status == "processed":
            counts["processed"] += 1
            fresh.append(outcome)
        elif outcome.status == "duplicate":
            counts["duplicates"] += 1
        else:
            counts["skipped"] += 1
    db.commit()

    for outcome in fresh:
        if should_auto_reply(container.settings.auto_reply_enabled, outcome.stored, outcome.account):
            if await auto_reply(db, outcome.stored, outcome.account, outcome.lead, container):
                db.commit()
            else:
                db.rollback()

    logger.info("Meta webhook handled", extra={"context": counts})
    return MetaWebhookResponse(success=True, **counts)
