import json
import logging
from typing import Optional
from sqlalchemy.orm import Session
from pydantic import ValidationError as PydanticValidationError

from expense_sync.core.config import settings
from expense_sync.core.constants import StagingStatus, ErrorReason
from expense_sync.core.exceptions import StagingItemNotFound
from expense_sync.models.staging_item import StagingItem
from expense_sync.schemas.staging import (
    ParsedTransaction,
    PendingState,
    ReviewState,
    ErrorState,
    RejectedState,
    StagingItemResponse,
)

logger = logging.getLogger(__name__)

# Fields a re-delivery is allowed to refresh while the item is still pending
_CONTENT_FIELDS = ("source", "account_key", "sender", "subject", "received_at", "raw_content")


def upsert(db: Session, item: StagingItem, commit: bool = True) -> bool:
    """
    Stage an item keyed by its message id. Returns True when a new row was inserted.
    An existing pending item gets its content refreshed; any other status is left untouched.
    """
    existing = db.get(StagingItem, item.id)
    if existing is None:
        if item.status is None:
            item.status = StagingStatus.PENDING.value
        db.add(item)
        created = True
    else:
        if existing.status == StagingStatus.PENDING.value:
            for name in _CONTENT_FIELDS:
                setattr(existing, name, getattr(item, name))
        else:
            logger.info(f"Staging item {item.id} already in '{existing.status}', keeping it")
        created = False

    if commit:
        db.commit()
    else:
        db.flush()
    return created


def get(db: Session, item_id: str) -> StagingItem:
    item = db.get(StagingItem, item_id)
    if not item:
        raise StagingItemNotFound(f"Staging item {item_id} not found")
    return item


def list_pending(db: Session, account_key: str, limit: int = 10) -> list[StagingItem]:
    return (
        db.query(StagingItem)
        .filter(StagingItem.account_key == account_key, StagingItem.status == StagingStatus.PENDING.value)
        .order_by(StagingItem.received_at.desc())
        .limit(limit)
        .all()
    )


def list_for_account(
    db: Session,
    account_key: str,
    include_shared: bool = True,
    skip: int = 0,
    limit: int = 100,
):
    keys = [account_key]
    if include_shared and account_key != settings.SMS_ACCOUNT_KEY:
        keys.append(settings.SMS_ACCOUNT_KEY)

    query = db.query(StagingItem).filter(StagingItem.account_key.in_(keys))
    total = query.count()
    items = query.order_by(StagingItem.received_at.desc()).offset(skip).limit(limit).all()
    return items, total


def set_status(
    db: Session,
    item_id: str,
    status: StagingStatus,
    payload: Optional[str] = None,
    reason: Optional[str] = None,
    commit: bool = True,
) -> StagingItem:
    item = get(db, item_id)
    item.status = StagingStatus(status).value
    item.parsed_payload = payload
    item.error_reason = reason
    if commit:
        db.commit()
        db.refresh(item)
    return item


def delete(db: Session, item_id: str) -> None:
    item = get(db, item_id)
    db.delete(item)
    db.commit()


def describe_state(item: StagingItem):
    """Tagged view of an item's lifecycle status."""
    if item.status == StagingStatus.REVIEW.value:
        try:
            return ReviewState(transaction=ParsedTransaction.model_validate(json.loads(item.parsed_payload or "")))
        except (ValueError, PydanticValidationError):
            return ErrorState(reason=ErrorReason.PARSE_ERROR.value)
    if item.status == StagingStatus.REJECTED.value:
        return RejectedState(reason=item.error_reason)
    if item.status == StagingStatus.ERROR.value:
        if item.error_reason == ErrorReason.MODEL_REJECTED.value:
            return RejectedState(reason=item.error_reason)
        return ErrorState(reason=item.error_reason)
    return PendingState()


def to_response(item: StagingItem) -> StagingItemResponse:
    return StagingItemResponse(
        id=item.id,
        source=item.source,
        account_key=item.account_key,
        sender=item.sender,
        subject=item.subject,
        received_at=item.received_at,
        raw_content=item.raw_content,
        parsed_payload=item.parsed_payload,
        status=item.status,
        error_reason=item.error_reason,
        created_at=item.created_at,
        state=describe_state(item),
    )
