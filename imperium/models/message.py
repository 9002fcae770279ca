import uuid

from sqlalchemy import Column, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from imperium.database import Base


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (UniqueConstraint("channel", "message_id", name="uq_messages_channel_message_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel = Column(Text, nullable=False)  # instagram, whatsapp
    message_id = Column(Text, nullable=False)  # provider message id
    account_id = Column(UUID(as_uuid=True), ForeignKey("channel_accounts.id"))
    sender_id = Column(Text, nullable=False)
    recipient_id = Column(Text, nullable=False)
    sender_name = Column(Text)
    body = Column(Text, nullable=False)
    timestamp = Column(TIMESTAMP(timezone=True), nullable=False, index=True)
    direction = Column(Text, nullable=False)  # incoming, outgoing
    lead_id = Column(UUID(as_uuid=True), ForeignKey("leads.id"))
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("campaigns.id"))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    account = relationship("ChannelAccount")
