from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from imperium.database import get_db
from imperium.dependencies import get_container
from imperium.services.auth_service import Caller, require_admin
from imperium.services.health_service import DEGRADED, DOWN, OPERATIONAL, run_connection_checks

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/health/connections")
def connection_health(
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    container = get_container(request)
    results = run_connection_checks(db, container.providers, container.telephony)
    statuses = {r.status for r in results}
    if statuses == {OPERATIONAL}:
        overall = OPERATIONAL
    elif DOWN in statuses:
        overall = DOWN
    else:
        overall = DEGRADED
    return {"success": True, "status": overall, "services": [r.as_dict() for r in results]}
