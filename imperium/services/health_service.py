import time
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from imperium.logging_config import get_logger
from imperium.models import ChannelAccount, Lead, User
from imperium.services.alert_service import alert_warning
from imperium.services.llm import LLMProvider
from imperium.services.zadarma_service import TelephonyError, ZadarmaClient

logger = get_logger("health_service")

OPERATIONAL = "operational"
DEGRADED = "degraded"
DOWN = "down"


@dataclass
class HealthStatus:
    service: str
    status: str
    latency_ms: Optional[int] = None
    message: Optional[str] = None

    def as_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def check_database(db: Session) -> HealthStatus:
    start = time.monotonic()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return HealthStatus("database", DOWN, message=str(e.__class__.__name__))
    return HealthStatus("database", OPERATIONAL, latency_ms=_elapsed_ms(start))


def check_ai_providers(providers: list[LLMProvider]) -> HealthStatus:
    configured = [p.name for p in providers if p.is_configured]
    if not configured:
        return HealthStatus("ai", DOWN, message="No AI provider configured")
    status = OPERATIONAL if len(configured) == len(providers) else DEGRADED
    return HealthStatus("ai", status, message=f"Configured: {', '.join(configured)}")


def check_meta(db: Session) -> HealthStatus:
    """Connected channel accounts must carry an access token."""
    try:
        accounts = db.query(ChannelAccount).filter(ChannelAccount.status == "connected").all()
    except SQLAlchemyError as e:
        return HealthStatus("meta", DOWN, message=str(e.__class__.__name__))

    if not accounts:
        return HealthStatus("meta", DOWN, message="No connected channel accounts")
    missing = [f"{a.channel}:{a.external_account_id}" for a in accounts if not a.access_token]
    if missing:
        return HealthStatus("meta", DEGRADED, message=f"Missing access token: {', '.join(missing)}")
    return HealthStatus("meta", OPERATIONAL, message=f"{len(accounts)} connected account(s)")


def check_zadarma(client: ZadarmaClient) -> HealthStatus:
    if not client.is_configured:
        return HealthStatus("zadarma", DOWN, message="API credentials missing")
    start = time.monotonic()
    try:
        balance = client.get_balance()
    except TelephonyError as e:
        return HealthStatus("zadarma", DEGRADED, message=e.message)
    return HealthStatus(
        "zadarma",
        OPERATIONAL,
        latency_ms=_elapsed_ms(start),
        message=f"Balance: {balance.get('balance')} {balance.get('currency')}",
    )


def run_connection_checks(db: Session, providers: list[LLMProvider], telephony: ZadarmaClient) -> list[HealthStatus]:
    results = [
        check_database(db),
        check_ai_providers(providers),
        check_meta(db),
        check_zadarma(telephony),
    ]
    unhealthy = [r for r in results if r.status != OPERATIONAL]
    if unhealthy:
        logger.warning(
            "Connection checks reported problems",
            extra={"context": {r.service: r.status for r in unhealthy}},
        )
        if any(r.status == DOWN for r in unhealthy):
            alert_warning(
                "Connection check: service down",
                {r.service: r.message or r.status for r in unhealthy},
            )
    return results


def get_system_health(db: Session, now: Optional[datetime] = None) -> dict:
    """Lead velocity and per-agent allocation."""
    now = now or datetime.now(timezone.utc)
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    total = db.query(Lead).count()
    today = db.query(Lead).filter(Lead.created_at >= start_of_day).count()
    week = db.query(Lead).filter(Lead.created_at >= now - timedelta(days=7)).count()

    counts = dict(db.query(Lead.assigned_to, func.count(Lead.id)).group_by(Lead.assigned_to).all())
    users = db.query(User).all()
    allocation = [{"name": u.name or u.id, "role": u.role, "leads": counts.get(u.id, 0)} for u in users]

    return {
        "total_leads": total,
        "leads_today": today,
        "leads_week": week,
        "unassigned_leads": counts.get(None, 0),
        "allocation": allocation,
    }
