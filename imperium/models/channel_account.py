import uuid

from sqlalchemy import Column, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from imperium.database import Base


class ChannelAccount(Base):
    __tablename__ = "channel_accounts"
    __table_args__ = (
        UniqueConstraint("channel", "external_account_id", name="uq_channel_accounts_channel_external_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel = Column(Text, nullable=False)  # instagram, whatsapp
    external_account_id = Column(Text, nullable=False)  # IG user id / WhatsApp phone_number_id
    display_name = Column(Text)
    access_token = Column(Text)  # opaque; decrypted outside the core
    status = Column(Text, nullable=False, default="connected")  # connected, disconnected, error
    user_id = Column(Text, ForeignKey("users.id"), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
