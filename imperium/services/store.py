"""Closed registry of persisted entities and the persistence verbs services share."""

from enum import Enum
from typing import Any, Optional

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from imperium.models import (
    Activity,
    AuditLog,
    Call,
    Campaign,
    ChannelAccount,
    Lead,
    LeadEvent,
    Message,
    Pipeline,
    Stage,
    User,
)


class EntityTag(str, Enum):
    LEAD = "lead"
    LEAD_EVENT = "lead_event"
    ACTIVITY = "activity"
    PIPELINE = "pipeline"
    STAGE = "stage"
    CAMPAIGN = "campaign"
    MESSAGE = "message"
    CHANNEL_ACCOUNT = "channel_account"
    CALL = "call"
    USER = "user"
    AUDIT_LOG = "audit_log"


ENTITY_MODELS = {
    EntityTag.LEAD: Lead,
    EntityTag.LEAD_EVENT: LeadEvent,
    EntityTag.ACTIVITY: Activity,
    EntityTag.PIPELINE: Pipeline,
    EntityTag.STAGE: Stage,
    EntityTag.CAMPAIGN: Campaign,
    EntityTag.MESSAGE: Message,
    EntityTag.CHANNEL_ACCOUNT: ChannelAccount,
    EntityTag.CALL: Call,
    EntityTag.USER: User,
    EntityTag.AUDIT_LOG: AuditLog,
}


def model_for(tag: EntityTag):
    return ENTITY_MODELS[EntityTag(tag)]


def find_first(db: Session, tag: EntityTag, *criteria, order_by=None) -> Optional[Any]:
    query = db.query(model_for(tag))
    if criteria:
        query = query.filter(*criteria)
    if order_by is not None:
        query = query.order_by(order_by)
    return query.first()


def create(db: Session, tag: EntityTag, **fields) -> Any:
    """Add a new row and flush so generated ids are available."""
    row = model_for(tag)(**fields)
    db.add(row)
    db.flush()
    return row


def insert_if_absent(db: Session, tag: EntityTag, values: dict, key: str = "id") -> bool:
    """INSERT ... ON CONFLICT DO NOTHING. Returns True when a row was written."""
    model = model_for(tag)
    stmt = insert(model.__table__).values(**values).on_conflict_do_nothing(index_elements=[key])
    result = db.execute(stmt)
    return bool(result.rowcount)


def count(db: Session, tag: EntityTag, *criteria) -> int:
    query = db.query(model_for(tag))
    if criteria:
        query = query.filter(*criteria)
    return query.count()
