import logging
import re
import secrets
import string
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from expense_sync.core.config import settings
from expense_sync.core.constants import StagingSource, StagingStatus, SMS_TRANSACTION_PATTERN
from expense_sync.core.exceptions import ValidationError
from expense_sync.models.staging_item import StagingItem
from expense_sync.schemas.sms import SmsWebhookPayload, SmsWebhookResponse
from expense_sync.services import staging_service
from expense_sync.utils.dates import from_epoch_millis, utcnow

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def is_transaction_sms(body: str) -> bool:
    return re.search(SMS_TRANSACTION_PATTERN, body, flags=re.IGNORECASE) is not None


def new_sms_id(now: datetime) -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"sms_{int(now.timestamp() * 1000)}_{suffix}"


def ingest_sms(db: Session, payload: SmsWebhookPayload, now: Optional[datetime] = None) -> SmsWebhookResponse:
    """
    Stage a transaction SMS under the shared mobile pseudo-account.
    Non-transaction texts are acknowledged and dropped.
    """
    sender = (payload.sender or "").strip()
    body = payload.body or ""
    if not sender or not body.strip():
        raise ValidationError("Missing fields")

    if not is_transaction_sms(body):
        logger.info(f"[SMS Skipped] No keywords found: {body[:30]}...")
        return SmsWebhookResponse(success=True, message="SMS Skipped")

    logger.info(f"[SMS Received] From: {sender} | Body: {body}")

    now = now or utcnow()
    item = StagingItem(
        id=new_sms_id(now),
        source=StagingSource.SMS.value,
        account_key=settings.SMS_ACCOUNT_KEY,
        sender=sender,
        received_at=from_epoch_millis(payload.timestamp) if payload.timestamp else now,
        raw_content=body,
        status=StagingStatus.PENDING.value,
    )
    staging_service.upsert(db, item)

    return SmsWebhookResponse(success=True, message="SMS Staged")
