from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from imperium.logging_config import get_logger
from imperium.models import AuditLog

logger = get_logger("audit_service")


def record_audit(db: Session, action: str, details: Optional[str] = None, user_id: Optional[str] = None) -> bool:
    """Write an audit row inside a savepoint; failures are logged, never raised."""
    try:
        with db.begin_nested():
            db.add(AuditLog(action=action, details=details, user_id=user_id))
        return True
    except SQLAlchemyError as e:
        logger.error("Failed to write audit log", extra={"context": {"action": action, "error": str(e)}})
        return False
