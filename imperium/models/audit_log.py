import uuid

from sqlalchemy import Column, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from imperium.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    action = Column(Text, nullable=False)
    details = Column(Text)
    user_id = Column(Text)  # null for system actions
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
