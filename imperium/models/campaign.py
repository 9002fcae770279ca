import uuid

from sqlalchemy import Column, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from imperium.database import Base


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    platform = Column(Text)  # instagram, facebook, google
    objective = Column(Text)
    status = Column(Text, nullable=False, default="draft")  # draft, active, paused, completed
    external_id = Column(Text, unique=True)  # Meta ad id used by DM referrals
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
