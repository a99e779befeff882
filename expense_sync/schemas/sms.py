from pydantic import BaseModel, Field
from typing import Optional


class SmsWebhookPayload(BaseModel):
    # Fields stay optional so a missing sender/body is answered with 400, not 422
    sender: Optional[str] = Field(None, description="SMS sender id")
    body: Optional[str] = Field(None, description="SMS text")
    timestamp: Optional[float] = Field(None, description="Received time in epoch millis")


class SmsWebhookResponse(BaseModel):
    success: bool
    message: str
