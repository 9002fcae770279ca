from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class InboxMessage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    channel: str
    message_id: str
    sender_id: str
    recipient_id: str
    sender_name: Optional[str] = None
    body: str
    timestamp: datetime
    direction: str
    lead_id: Optional[UUID] = None


class InboxListResponse(BaseModel):
    success: bool
    messages: list[InboxMessage]
    count: int


class SendMessageRequest(BaseModel):
    channel: Literal["instagram", "whatsapp"]
    recipient_id: str = Field(min_length=1, validation_alias=AliasChoices("recipient_id", "recipientId", "to"))
    text: str = Field(min_length=1, max_length=4096)
    lead_id: Optional[UUID] = Field(default=None, validation_alias=AliasChoices("lead_id", "leadId"))


class SendMessageResponse(BaseModel):
    success: bool
    message: InboxMessage
