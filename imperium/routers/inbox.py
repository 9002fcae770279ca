from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from imperium.database import get_db
from imperium.dependencies import get_container
from imperium.schemas.inbox import InboxListResponse, InboxMessage, SendMessageRequest, SendMessageResponse
from imperium.services.auth_service import Caller, require_caller
from imperium.services.inbox_service import list_messages, send_message

router = APIRouter()


@router.get("/inbox", response_model=InboxListResponse)
def get_inbox(
    request: Request,
    limit: int = Query(default=50, ge=1, le=50),
    caller: Caller = Depends(require_caller),
    db: Session = Depends(get_db),
):
    """Latest messages across the caller's Instagram and WhatsApp accounts."""
    limit = min(limit, get_container(request).settings.inbox_limit)
    messages = list_messages(db, caller.id, limit=limit)
    return InboxListResponse(
        success=True,
        messages=[InboxMessage.model_validate(m) for m in messages],
        count=len(messages),
    )


@router.post("/inbox", response_model=SendMessageResponse)
def post_inbox_message(
    body: SendMessageRequest,
    request: Request,
    caller: Caller = Depends(require_caller),
    db: Session = Depends(get_db),
):
    result = send_message(
        db,
        caller.id,
        body.channel,
        body.recipient_id,
        body.text,
        get_container(request).adapters,
        lead_id=body.lead_id,
    )
    if not result.ok:
        db.rollback()
        return JSONResponse(status_code=result.status_code, content=result.error_body())
    db.commit()
    return SendMessageResponse(success=True, message=InboxMessage.model_validate(result.value))
