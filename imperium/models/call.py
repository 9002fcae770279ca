import uuid

from sqlalchemy import Column, ForeignKey, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from imperium.database import Base


class Call(Base):
    __tablename__ = "calls"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    phone_number = Column(Text, nullable=False)
    direction = Column(Text, nullable=False, default="OUTBOUND")
    status = Column(Text, nullable=False, default="INITIATED")  # see CallStatus
    external_call_id = Column(Text, unique=True)
    lead_id = Column(UUID(as_uuid=True), ForeignKey("leads.id"))
    requested_by = Column(Text)  # user id, or the system caller
    error = Column(Text)
    started_at = Column(TIMESTAMP(timezone=True))
    ended_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
