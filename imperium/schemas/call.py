from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class CallRequest(BaseModel):
    lead_id: Optional[UUID] = Field(default=None, validation_alias=AliasChoices("lead_id", "leadId"))
    phone_number: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("phone_number", "phoneNumber", "to"),
    )

    @model_validator(mode="after")
    def lead_or_number(self):
        if self.lead_id is None and not self.phone_number:
            raise ValueError("lead_id or phone_number is required")
        return self


class CallOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    phone_number: str
    status: str
    external_call_id: Optional[str] = None
    lead_id: Optional[UUID] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class CallResponse(BaseModel):
    success: bool
    call: CallOut


class CallEventResponse(BaseModel):
    success: bool
    changed: bool
    status: Optional[str] = None
