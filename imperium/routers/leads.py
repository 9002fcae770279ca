from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from imperium.database import get_db
from imperium.dependencies import get_container
from imperium.logging_config import get_logger
from imperium.schemas.lead import LeadIntakeRequest, LeadIntakeResponse, SheetsWebhookResponse
from imperium.services import store
from imperium.services.audit_service import record_audit
from imperium.services.lead_service import MARKETING_FIELDS, LeadSource, intake_lead
from imperium.services.normalizers import form
from imperium.services.normalizers.base import ContactSubmission
from imperium.services.result import Result
from imperium.services.signature_service import extract_bearer_token, verify_shared_secret
from imperium.services.store import EntityTag

logger = get_logger("leads")

router = APIRouter()

PROFILE_KEYS = ("country", "language", "is_whatsapp_preferred", "budget_range", "time_to_invest", "investment_goal")


def _error(result: Result, details=None) -> JSONResponse:
    body = result.error_body()
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=result.status_code, content=body)


async def _json_body(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


def to_submission(data: LeadIntakeRequest) -> ContactSubmission:
    values = data.model_dump()
    return ContactSubmission(
        name=data.name.strip(),
        phone=data.phone,
        email=data.email,
        message=data.message,
        marketing={k: values[k] for k in MARKETING_FIELDS if values.get(k)},
        profile={k: values[k] for k in PROFILE_KEYS if values.get(k) is not None},
    )


@router.post("/leads/intake", response_model=LeadIntakeResponse)
async def lead_intake(request: Request, db: Session = Depends(get_db)):
    """Landing-page form submissions."""
    settings = get_container(request).settings
    if not verify_shared_secret(request.headers.get("x-imperium-secret"), settings.crm_intake_secret):
        return _error(Result.failure("Unauthorized", "unauthorized"))

    body = await _json_body(request)
    if body is None:
        return _error(Result.failure("Invalid JSON body", "validation_error"))
    try:
        data = LeadIntakeRequest.model_validate(body)
    except ValidationError as e:
        details = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
        return _error(Result.failure("Invalid lead payload", "validation_error"), details)

    submission = to_submission(data)
    if not submission.marketing.get("ip_address") and request.client is not None:
        submission.marketing["ip_address"] = request.client.host
    if not submission.marketing.get("user_agent") and request.headers.get("user-agent"):
        submission.marketing["user_agent"] = request.headers["user-agent"]

    result = intake_lead(db, submission, source=LeadSource.WEBSITE.value)
    if not result.ok:
        return _error(result)
    outcome = result.value
    record_audit(db, "LEAD_INTAKE", f"lead={outcome.lead.id} new={outcome.is_new}")
    db.commit()

    return LeadIntakeResponse(ok=True, lead_id=outcome.lead.id, is_new=outcome.is_new)


@router.post("/integrations/google-sheets/webhook", response_model=SheetsWebhookResponse)
async def google_sheets_webhook(request: Request, db: Session = Depends(get_db)):
    """One spreadsheet row pushed by an Apps Script trigger."""
    settings = get_container(request).settings
    token = extract_bearer_token(request.headers.get("authorization"))
    if not verify_shared_secret(token, settings.sheets_webhook_secret):
        return _error(Result.failure("Unauthorized", "unauthorized"))

    body = await _json_body(request)
    submission, error = form.normalize_row(body)
    if submission is None:
        return _error(Result.failure(error, "validation_error"))

    result = intake_lead(db, submission, source=LeadSource.GOOGLE_SHEETS.value)
    if not result.ok:
        return _error(result)
    outcome = result.value

    if submission.notes:
        store.create(
            db,
            EntityTag.ACTIVITY,
            lead_id=outcome.lead.id,
            type="NOTE",
            content=f"Imported from Sheets. Notes: {submission.notes}",
            is_completed=True,
        )
    db.commit()

    return SheetsWebhookResponse(success=True, lead_id=outcome.lead.id, is_new=outcome.is_new)
