from datetime import datetime, date as date_type
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Literal, Union, Annotated


class ParsedTransaction(BaseModel):
    """Expense candidate as returned by the extraction model."""
    model_config = ConfigDict(populate_by_name=True)

    amount: float = Field(..., description="Transaction amount")
    expense_name: str = Field(..., alias="expenseName", min_length=1, description="Short title")
    date: date_type = Field(..., description="Transaction date (YYYY-MM-DD)")
    category: str = Field(..., description="Existing or suggested category")
    notes: str = Field("", description="Sender/vendor info")
    refund_required: bool = Field(False, alias="refundRequired", description="Reimbursable or loan")


class ParsedTransactionUpdate(BaseModel):
    """User edits applied before promotion"""
    model_config = ConfigDict(populate_by_name=True)

    amount: Optional[float] = None
    expense_name: Optional[str] = Field(None, alias="expenseName")
    date: Optional[date_type] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    refund_required: Optional[bool] = Field(None, alias="refundRequired")


# -------------------------- STATE VARIANTS ---------------------------------

class PendingState(BaseModel):
    kind: Literal["pending"] = "pending"


class ReviewState(BaseModel):
    kind: Literal["review"] = "review"
    transaction: ParsedTransaction


class ErrorState(BaseModel):
    kind: Literal["error"] = "error"
    reason: Optional[str] = None


class RejectedState(BaseModel):
    kind: Literal["rejected"] = "rejected"
    reason: Optional[str] = None


StagingState = Annotated[
    Union[PendingState, ReviewState, ErrorState, RejectedState],
    Field(discriminator="kind"),
]


# -------------------------- RESPONSE SCHEMAS -------------------------------

class StagingItemResponse(BaseModel):
    id: str
    source: str
    account_key: str
    sender: Optional[str] = None
    subject: Optional[str] = None
    received_at: datetime
    raw_content: str
    parsed_payload: Optional[str] = None
    status: str
    error_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    state: StagingState

    model_config = ConfigDict(from_attributes=True)


class StagingItemListResponse(BaseModel):
    items: list[StagingItemResponse]
    total: int


# -------------------------- REQUEST SCHEMAS --------------------------------

class PromoteRequest(BaseModel):
    overrides: Optional[ParsedTransactionUpdate] = None


class PromoteResponse(BaseModel):
    success: bool
    message: str
    ledger_reference: Optional[str] = None
