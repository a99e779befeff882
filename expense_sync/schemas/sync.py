from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional


class HistoryEntry(BaseModel):
    name: str
    category: str


class ExtractionContext(BaseModel):
    """Category vocabulary and past name→category pairs used to steer the model"""
    categories: list[str] = Field(default_factory=list)
    context: list[HistoryEntry] = Field(default_factory=list)


class ManualSyncRequest(ExtractionContext):
    access_token: Optional[str] = Field(None, description="Interactive OAuth access token")


class AuthorizeRequest(BaseModel):
    code: str = Field(..., min_length=1, description="One-time authorization code")


class AuthorizeUrlResponse(BaseModel):
    url: str


class AutoSyncStatus(BaseModel):
    is_enabled: bool
    last_synced_at: Optional[datetime] = None


class ActionResult(BaseModel):
    success: bool
    message: str


class SyncResult(ActionResult):
    count: int = 0


class ProcessResult(ActionResult):
    count: int = 0


class TriggerResult(BaseModel):
    triggered: bool
    message: str
    sync: Optional[SyncResult] = None
    process: Optional[ProcessResult] = None
