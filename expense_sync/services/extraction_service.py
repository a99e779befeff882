import json
import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from expense_sync.core.config import settings
from expense_sync.core.constants import (
    StagingStatus,
    ErrorReason,
    SyncGateName,
    MIN_EXTRACTABLE_LENGTH,
)
from expense_sync.core.exceptions import (
    ExtractionParseError,
    ModelRejected,
    ModelUnavailableError,
)
from expense_sync.schemas.staging import ParsedTransaction
from expense_sync.schemas.sync import HistoryEntry, ProcessResult
from expense_sync.services import ai_service, staging_service
from expense_sync.services.gate_service import claim_gate, release_gate

logger = logging.getLogger(__name__)


PROMPT_TEMPLATE = """
You are an expense parser. Extract transaction details from this message.

Message Content:
"{content}"

Return JSON String ONLY (no markdown):
{{
  "amount": number,
  "expenseName": "Short Title",
  "date": "YYYY-MM-DD",
  "category": "Suggested Category",
  "notes": "Sender/Vendor info",
  "refundRequired": boolean
}}

Existing Categories: {categories}

Rules:
- If multiple transactions, pick the main one.
- If NO transaction found, return null (the word null).
- Today is {today}; resolve relative dates against it.
- If a category matches (fuzzy match is ok), use the EXACT name from the list. Otherwise suggest a short new Capitalized Category Name (max 1-2 words).
- Set refundRequired to true if the message implies a reimbursable expense (e.g. "Work trip", "Project expenses") or a personal loan.
- HELPFUL CONTEXT: past expenses and their categories from the user. Use them to infer matches for similar names:
{context}
"""


def build_prompt(
    content: str,
    categories: Sequence[str],
    context: Sequence[HistoryEntry],
    today: Optional[date] = None,
) -> str:
    history = context[: settings.EXTRACTION_CONTEXT_LIMIT]
    return PROMPT_TEMPLATE.format(
        content=content[: settings.EXTRACTION_CONTENT_LIMIT],
        categories=", ".join(categories),
        today=(today or date.today()).isoformat(),
        context="\n".join(f"{entry.name}: {entry.category}" for entry in history),
    )


def interpret_response(text: str) -> ParsedTransaction:
    """
    Validate fence-stripped model output.
    Raises ModelRejected for a literal null, ExtractionParseError for anything unusable.
    """
    if text == "null":
        raise ModelRejected("No transaction detected")
    try:
        data = json.loads(text)
    except ValueError as e:
        raise ExtractionParseError(f"Response is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionParseError("Response is not a JSON object")
    try:
        return ParsedTransaction.model_validate(data)
    except PydanticValidationError as e:
        raise ExtractionParseError(f"Response does not match transaction schema: {e}") from e


def process_pending(
    db: Session,
    account_key: str,
    categories: Optional[Sequence[str]] = None,
    context: Optional[Sequence[HistoryEntry]] = None,
    limit: Optional[int] = None,
    generate: Optional[Callable[[str], str]] = None,
    now: Optional[datetime] = None,
) -> ProcessResult:
    """
    Run pending staging items for one account through the model.
    Each item ends in review or error; a bad item never stops the batch.
    """
    if generate is None:
        if not ai_service.is_configured():
            return ProcessResult(success=False, message="Missing Gemini API Key")
        generate = ai_service.generate_text

    categories = list(categories or [])
    context = list(context or [])
    limit = limit or settings.EXTRACTION_BATCH_SIZE

    lease = timedelta(seconds=settings.EXTRACTION_LEASE_SECONDS)
    if not claim_gate(db, account_key, SyncGateName.EXTRACTION_LEASE, lease, now):
        logger.info(f"[{account_key}] Extraction already running, skipping")
        return ProcessResult(success=True, message="Extraction already running", count=0)

    try:
        items = staging_service.list_pending(db, account_key, limit)
        if not items:
            return ProcessResult(success=True, message="No pending items to process", count=0)

        processed = 0
        for item in items:
            content = item.raw_content or ""
            if len(content) < MIN_EXTRACTABLE_LENGTH:
                continue

            try:
                text = ai_service.strip_code_fences(generate(build_prompt(content, categories, context)))
                interpret_response(text)
            except ModelRejected:
                logger.info(f"[Gemini Process] Doc {item.id} -> Rejected (null)")
                staging_service.set_status(
                    db, item.id, StagingStatus.ERROR, reason=ErrorReason.MODEL_REJECTED.value
                )
            except ExtractionParseError as e:
                logger.warning(f"[Gemini Process] Doc {item.id} -> Parse error: {e}")
                staging_service.set_status(
                    db, item.id, StagingStatus.ERROR, reason=ErrorReason.PARSE_ERROR.value
                )
            except ModelUnavailableError as e:
                logger.error(f"[Gemini Process] Doc {item.id} -> Model unavailable: {e}")
                staging_service.set_status(
                    db, item.id, StagingStatus.ERROR, reason=ErrorReason.MODEL_UNAVAILABLE.value
                )
            except Exception as e:
                logger.error(f"[Gemini Process] Doc {item.id} -> Unexpected failure: {e}", exc_info=True)
                db.rollback()
                staging_service.set_status(
                    db, item.id, StagingStatus.ERROR, reason=ErrorReason.MODEL_UNAVAILABLE.value
                )
            else:
                logger.info(f"[Gemini Process] Doc {item.id} -> Success")
                staging_service.set_status(db, item.id, StagingStatus.REVIEW, payload=text)
                processed += 1

        return ProcessResult(success=True, message=f"Processed {processed} items", count=processed)
    finally:
        release_gate(db, account_key, SyncGateName.EXTRACTION_LEASE)
