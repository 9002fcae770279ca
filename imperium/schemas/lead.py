import re
from typing import Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, field_validator

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _camel(name: str, camel: str):
    return Field(default=None, validation_alias=AliasChoices(name, camel))


class LeadIntakeRequest(BaseModel):
    name: str = Field(min_length=2)
    phone: str = Field(min_length=5)
    email: Optional[str] = None
    message: Optional[str] = Field(default=None, max_length=2000)

    country: Optional[str] = None
    language: Optional[Literal["ar", "en"]] = None
    investment_goal: Optional[str] = _camel("investment_goal", "investmentGoal")
    is_whatsapp_preferred: Optional[bool] = _camel("is_whatsapp_preferred", "isWhatsappPreferred")
    budget_range: Optional[str] = _camel("budget_range", "budgetRange")
    time_to_invest: Optional[str] = _camel("time_to_invest", "timeToInvest")

    marketing_channel: Optional[str] = _camel("marketing_channel", "marketingChannel")
    page_slug: Optional[str] = _camel("page_slug", "pageSlug")
    utm_source: Optional[str] = _camel("utm_source", "utmSource")
    utm_medium: Optional[str] = _camel("utm_medium", "utmMedium")
    utm_campaign: Optional[str] = _camel("utm_campaign", "utmCampaign")
    utm_term: Optional[str] = _camel("utm_term", "utmTerm")
    utm_content: Optional[str] = _camel("utm_content", "utmContent")
    landing_path: Optional[str] = _camel("landing_path", "landingPath")
    referer: Optional[str] = None
    user_agent: Optional[str] = _camel("user_agent", "userAgent")
    ip_address: Optional[str] = _camel("ip_address", "ipAddress")

    @field_validator("email", mode="before")
    @classmethod
    def empty_email_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("email")
    @classmethod
    def email_format(cls, value):
        if value is not None and not EMAIL_RE.match(value.strip()):
            raise ValueError("Invalid email address")
        return value.strip() if value else value


class LeadIntakeResponse(BaseModel):
    ok: bool
    lead_id: UUID
    is_new: bool


class SheetsWebhookResponse(BaseModel):
    success: bool
    lead_id: UUID
    is_new: bool
