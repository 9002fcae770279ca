"""Resolve who is calling. Session issuance lives outside this service."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from imperium.database import get_db
from imperium.logging_config import get_logger
from imperium.models import User
from imperium.services.signature_service import extract_bearer_token, verify_shared_secret

logger = get_logger("auth_service")

SESSION_COOKIE = "imperium_session"
SYSTEM_CALLER_ID = "crm-system"
ROLE_LEVELS = {"user": 0, "admin": 1, "superadmin": 2}


@dataclass(frozen=True)
class Caller:
    id: str
    role: str = "user"
    name: Optional[str] = None

    @property
    def is_elevated(self) -> bool:
        return has_role(self.role, "admin")


def has_role(role: Optional[str], required: str) -> bool:
    return ROLE_LEVELS.get((role or "").lower(), -1) >= ROLE_LEVELS[required]


def resolve_caller(request: Request, db: Session, api_key: Optional[str]) -> Optional[Caller]:
    """API key (X-API-Key or Bearer) -> system superadmin; else session cookie -> user row.

    X-User-Id is only honoured alongside a valid API key, where the system caller
    acts on behalf of that user.
    """
    provided_key = request.headers.get("x-api-key") or extract_bearer_token(request.headers.get("authorization"))
    if provided_key and verify_shared_secret(provided_key, api_key):
        user_id = request.headers.get("x-user-id")
        if not user_id:
            return Caller(id=SYSTEM_CALLER_ID, role="superadmin", name="CRM System")
        return _load_user(db, user_id)

    user_id = request.cookies.get(SESSION_COOKIE)
    if not user_id:
        return None
    return _load_user(db, user_id)


def _load_user(db: Session, user_id: str) -> Optional[Caller]:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.warning("Unknown caller", extra={"context": {"user_id": user_id}})
        return None
    return Caller(id=user.id, role=user.role or "user", name=user.name)


def require_caller(request: Request, db: Session = Depends(get_db)) -> Caller:
    """FastAPI dependency: 401 unless the request resolves to a caller."""
    caller = resolve_caller(request, db, request.app.state.container.settings.crm_api_key)
    if caller is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return caller


def require_admin(caller: Caller = Depends(require_caller)) -> Caller:
    if not caller.is_elevated:
        raise HTTPException(status_code=403, detail="Forbidden")
    return caller
