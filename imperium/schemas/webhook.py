from pydantic import BaseModel


class MetaWebhookResponse(BaseModel):
    success: bool
    processed: int = 0
    duplicates: int = 0
    skipped: int = 0
