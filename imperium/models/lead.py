import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from imperium.database import Base


class Lead(Base):
    __tablename__ = "leads"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    phone = Column(Text, index=True)  # digits only
    email = Column(Text, index=True)  # lower-cased
    message = Column(Text)

    source = Column(Text, nullable=False, default="MANUAL")
    status = Column(Text, nullable=False, default="new")
    priority = Column(Text, nullable=False, default="MEDIUM")  # LOW, MEDIUM, HIGH
    score = Column(Integer, nullable=False, default=50)

    budget = Column(Text)
    expected_value = Column(Numeric(14, 2))

    pipeline_id = Column(UUID(as_uuid=True), ForeignKey("pipelines.id"))
    stage_id = Column(UUID(as_uuid=True), ForeignKey("stages.id"))
    assigned_to = Column(Text, ForeignKey("users.id"))
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("campaigns.id"))

    country = Column(Text)
    language = Column(Text)
    is_whatsapp_preferred = Column(Boolean, nullable=False, default=False)
    budget_range = Column(Text)
    time_to_invest = Column(Text)
    investment_goal = Column(Text)

    marketing_channel = Column(Text)
    page_slug = Column(Text)
    utm_source = Column(Text)
    utm_medium = Column(Text)
    utm_campaign = Column(Text)
    utm_term = Column(Text)
    utm_content = Column(Text)
    landing_path = Column(Text)
    referer = Column(Text)
    user_agent = Column(Text)
    ip_address = Column(Text)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    pipeline = relationship("Pipeline")
    stage = relationship("Stage")
    campaign = relationship("Campaign")
    events = relationship("LeadEvent", back_populates="lead")


class LeadEvent(Base):
    __tablename__ = "lead_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lead_id = Column(UUID(as_uuid=True), ForeignKey("leads.id"), nullable=False)
    type = Column(Text, nullable=False)  # FORM_SUBMITTED, MESSAGE_RECEIVED
    description = Column(Text)
    meta = Column(JSONB, nullable=False, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    lead = relationship("Lead", back_populates="events")
