from typing import Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field


class ChatTurn(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=8000)
    mode: Literal["general", "crm", "instagram"] = "general"
    conversation_history: list[ChatTurn] = Field(
        default_factory=list,
        validation_alias=AliasChoices("conversation_history", "conversationHistory", "history"),
    )
    locale: Optional[str] = None
    lead_id: Optional[UUID] = Field(default=None, validation_alias=AliasChoices("lead_id", "leadId"))
