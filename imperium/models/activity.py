import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from imperium.database import Base


class Activity(Base):
    __tablename__ = "activities"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lead_id = Column(UUID(as_uuid=True), ForeignKey("leads.id"), nullable=False)
    type = Column(Text, nullable=False)  # NOTE, CALL, INSTAGRAM, WHATSAPP, MEETING
    content = Column(Text, nullable=False, default="")
    is_completed = Column(Boolean, nullable=False, default=False)
    scheduled_for = Column(TIMESTAMP(timezone=True))
    performed_by = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
