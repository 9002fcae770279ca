"""Read-only CRM snapshots rendered as plain text for the assistant's system prompt.

Builders never raise: a failing query degrades to an "unavailable" line so the
chat still answers.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from imperium.logging_config import get_logger
from imperium.models import Activity, Campaign, Lead, Message, Stage, User
from imperium.services import store
from imperium.services.health_service import get_system_health
from imperium.services.store import EntityTag

logger = get_logger("ai_context_service")

NEGLECT_DAYS = 3
CRITICAL_NEGLECT_DAYS = 7


def days_since(moment: Optional[datetime], now: datetime) -> Optional[int]:
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return max(0, (now - moment).days)


def neglect_level(days_silent: Optional[int]) -> str:
    if days_silent is None:
        return "NORMAL"
    if days_silent > CRITICAL_NEGLECT_DAYS:
        return "CRITICAL"
    if days_silent > NEGLECT_DAYS:
        return "HIGH"
    return "NORMAL"


def build_general_context(db: Session) -> str:
    try:
        total_leads = store.count(db, EntityTag.LEAD)
        total_users = store.count(db, EntityTag.USER)
        active_campaigns = store.count(db, EntityTag.CAMPAIGN, Campaign.status == "active")
        statuses = db.query(Lead.status, func.count(Lead.id)).group_by(Lead.status).all()
        recent = db.query(Lead).order_by(Lead.created_at.desc()).limit(5).all()
    except SQLAlchemyError as e:
        logger.warning("General context unavailable", extra={"context": {"error": str(e)}})
        return "System Context: Unavailable."

    status_summary = ", ".join(f"{status}: {count}" for status, count in statuses) or "none"
    recent_summary = ", ".join(f"{lead.name} ({lead.status})" for lead in recent) or "none"
    return (
        "--- SYSTEM OVERVIEW ---\n"
        f"Stats: {total_leads} Leads | {total_users} Agents | {active_campaigns} Active Campaigns\n"
        f"Lead Distribution: {status_summary}\n"
        f"Recent 5 Leads: {recent_summary}\n"
        "--- END OVERVIEW ---"
    )


def build_health_context(db: Session, now: Optional[datetime] = None) -> str:
    try:
        health = get_system_health(db, now=now)
    except SQLAlchemyError as e:
        logger.warning("Health context unavailable", extra={"context": {"error": str(e)}})
        return "System Health: Unavailable."

    agents = "\n".join(f"- {a['name']} ({a['role']}): {a['leads']} Active Leads" for a in health["allocation"])
    return (
        "--- SYSTEM HEALTH REPORT ---\n"
        f"Total Leads: {health['total_leads']}\n"
        f"Velocity: {health['leads_today']} New Today | {health['leads_week']} New This Week\n"
        f"Unassigned: {health['unassigned_leads']}\n"
        "AGENT ALLOCATION:\n"
        f"{agents or '- no agents'}\n"
        "--- END HEALTH REPORT ---"
    )


def build_operational_context(db: Session, now: Optional[datetime] = None) -> str:
    return f"{build_general_context(db)}\n\n{build_health_context(db, now=now)}"


def build_lead_context(db: Session, lead_id, now: Optional[datetime] = None) -> str:
    """Deep profile of one lead: neglect flags, stage sequence, timeline, open tasks."""
    now = now or datetime.now(timezone.utc)
    try:
        lead_uuid = lead_id if isinstance(lead_id, uuid.UUID) else uuid.UUID(str(lead_id))
    except ValueError:
        return "Lead Context: Lead not found."

    try:
        lead = db.query(Lead).filter(Lead.id == lead_uuid).first()
        if lead is None:
            return "Lead Context: Lead not found."
        activities = (
            db.query(Activity)
            .filter(Activity.lead_id == lead.id)
            .order_by(Activity.created_at.desc())
            .limit(10)
            .all()
        )
        messages = (
            db.query(Message)
            .filter(Message.lead_id == lead.id)
            .order_by(Message.timestamp.desc())
            .limit(10)
            .all()
        )
        stages = []
        if lead.pipeline_id:
            stages = db.query(Stage).filter(Stage.pipeline_id == lead.pipeline_id).order_by(Stage.order.asc()).all()
        assignee = None
        if lead.assigned_to:
            assignee = db.query(User).filter(User.id == lead.assigned_to).first()
    except SQLAlchemyError as e:
        logger.error("Lead context failed", extra={"context": {"lead_id": str(lead_id), "error": str(e)}})
        return "Lead Context: Error retrieving detailed data."

    last_activity = activities[0].created_at if activities else lead.created_at
    last_message = messages[0].timestamp if messages else None
    days_since_action = days_since(last_activity, now)
    days_silent = days_since(last_message, now) if last_message else days_since_action
    level = neglect_level(days_silent)

    current_stage = next((s.name for s in stages if s.id == lead.stage_id), None)
    pending = [a for a in activities if not a.is_completed]

    timeline = "\n".join(
        f"- [{m.channel.upper()}/{m.direction}] {m.timestamp.date().isoformat()}: \"{m.body}\"" for m in messages
    )
    tasks = "\n".join(
        f"- [{a.type}] {a.content} (Due: {a.scheduled_for.isoformat() if a.scheduled_for else 'ASAP'})" for a in pending
    )
    history = "\n".join(
        f"- [{a.type}] {a.content} ({'Done' if a.is_completed else 'Pending'})" for a in activities[:5]
    )

    return (
        f"--- LEAD CONTEXT (ID: {lead.id}) ---\n"
        "[FLAGS]\n"
        f"- Days Since Last Interaction: {days_silent if days_silent is not None else 'unknown'}\n"
        f"- Days Since Last Activity: {days_since_action if days_since_action is not None else 'unknown'}\n"
        f"- NEGLECT RISK: {level}\n"
        f"- Follow-up: {'REQUIRED' if level != 'NORMAL' else 'MONITOR'}\n"
        "PROFILE:\n"
        f"Name: {lead.name}\n"
        f"Phone: {lead.phone or 'N/A'}\n"
        f"Email: {lead.email or 'N/A'}\n"
        f"Status: {(lead.status or '').upper()}\n"
        f"Source: {lead.source or 'N/A'}\n"
        f"Budget: {lead.budget or 'Not specified'}\n"
        f"Priority: {lead.priority}\n"
        f"Assigned To: {(assignee.name or assignee.id) if assignee else 'Unassigned'}\n"
        f"Current Stage: {current_stage or 'Unassigned'}\n"
        f"Stage Sequence: {' -> '.join(s.name for s in stages) or 'N/A'}\n"
        "COMMUNICATION LOG:\n"
        f"{timeline or 'No recent messages.'}\n"
        "PENDING ACTIONS:\n"
        f"{tasks or 'No pending actions recorded.'}\n"
        "RECENT ACTIVITY:\n"
        f"{history or 'No activity recorded.'}\n"
        "--- END LEAD CONTEXT ---"
    )
