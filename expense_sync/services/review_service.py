import json
import logging
from typing import Callable, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from expense_sync.core.constants import StagingStatus
from expense_sync.core.exceptions import InvalidStatusTransition
from expense_sync.schemas.staging import ParsedTransaction, ParsedTransactionUpdate
from expense_sync.schemas.sync import ExtractionContext, ProcessResult
from expense_sync.services import staging_service
from expense_sync.services.extraction_service import process_pending

logger = logging.getLogger(__name__)

RETRYABLE = (StagingStatus.ERROR.value, StagingStatus.REJECTED.value)


def promote(
    db: Session,
    item_id: str,
    ledger,
    overrides: Optional[ParsedTransactionUpdate] = None,
) -> Optional[str]:
    """
    Hand a reviewed item to the ledger; the staging copy is removed only
    after the ledger accepted it. LedgerError leaves the item in place.
    """
    item = staging_service.get(db, item_id)
    if item.status != StagingStatus.REVIEW.value:
        raise InvalidStatusTransition(f"Item {item_id} is '{item.status}', only review items can be promoted")

    try:
        transaction = ParsedTransaction.model_validate(json.loads(item.parsed_payload or ""))
    except (ValueError, PydanticValidationError) as e:
        raise InvalidStatusTransition(f"Item {item_id} has no usable parsed payload") from e

    if overrides:
        transaction = transaction.model_copy(update=overrides.model_dump(exclude_none=True))

    reference = ledger.create_expense(transaction, item.id)
    staging_service.delete(db, item_id)
    logger.info(f"Promoted staging item {item_id} to ledger entry {reference}")
    return reference


def retry(
    db: Session,
    item_id: str,
    ctx: Optional[ExtractionContext] = None,
    generate: Optional[Callable[[str], str]] = None,
) -> ProcessResult:
    item = staging_service.get(db, item_id)
    if item.status not in RETRYABLE:
        raise InvalidStatusTransition(f"Item {item_id} is '{item.status}', only failed items can be retried")

    account_key = item.account_key
    staging_service.set_status(db, item_id, StagingStatus.PENDING)

    ctx = ctx or ExtractionContext()
    return process_pending(db, account_key, ctx.categories, ctx.context, generate=generate)


def discard(db: Session, item_id: str) -> None:
    staging_service.delete(db, item_id)
    logger.info(f"Deleted staging item {item_id}")
