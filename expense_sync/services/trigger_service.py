import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from sqlalchemy.orm import Session

from expense_sync.core.config import settings
from expense_sync.core.constants import StagingStatus, SyncGateName
from expense_sync.models.staging_item import StagingItem
from expense_sync.schemas.sync import ExtractionContext, ProcessResult, TriggerResult
from expense_sync.services import sync_service
from expense_sync.services.credential_service import CredentialService
from expense_sync.services.extraction_service import process_pending
from expense_sync.services.gate_service import claim_gate, stamp_gate
from expense_sync.utils.dates import utcnow

logger = logging.getLogger(__name__)


def _account_keys(account_id: str) -> list[str]:
    # Review screens show the shared SMS items next to the user's own
    keys = [account_id]
    if account_id != settings.SMS_ACCOUNT_KEY:
        keys.append(settings.SMS_ACCOUNT_KEY)
    return keys


def _has_pending(db: Session, account_key: str) -> bool:
    return (
        db.query(StagingItem.id)
        .filter(StagingItem.account_key == account_key, StagingItem.status == StagingStatus.PENDING.value)
        .first()
        is not None
    )


def _queue_processing(account_key: str, ctx: ExtractionContext) -> None:
    from expense_sync.tasks.staging_processing import process_staging

    process_staging.delay(
        account_key,
        ctx.categories,
        [entry.model_dump() for entry in ctx.context],
    )


def auto_sync(
    db: Session,
    account_id: str,
    ctx: Optional[ExtractionContext] = None,
    now: Optional[datetime] = None,
    sync: Optional[Callable] = None,
) -> TriggerResult:
    """
    Debounced background sync. The cooldown is claimed before the sync runs,
    so a slow or failing attempt still blocks repeat fires.
    """
    ctx = ctx or ExtractionContext()

    status = CredentialService.get_auto_sync_status(db, account_id)
    if not status.is_enabled:
        return TriggerResult(triggered=False, message="Auto-Sync not enabled")

    cooldown = timedelta(seconds=settings.AUTO_SYNC_COOLDOWN_SECONDS)
    if not claim_gate(db, account_id, SyncGateName.AUTO_SYNC, cooldown, now):
        logger.info(f"Auto-Sync [{account_id}]: Skipped (Rate Limit Active)")
        return TriggerResult(triggered=False, message="Skipped (rate limit active)")

    logger.info(f"Auto-Sync [{account_id}]: Triggering background sync...")
    result = (sync or sync_service.run_sync)(db, account_id)

    if result.success and result.count > 0:
        _queue_processing(account_id, ctx)

    return TriggerResult(triggered=True, message=result.message, sync=result)


def auto_process(
    db: Session,
    account_id: str,
    ctx: Optional[ExtractionContext] = None,
    now: Optional[datetime] = None,
) -> TriggerResult:
    """Debounced extraction of whatever is pending for the account (and shared SMS items)."""
    ctx = ctx or ExtractionContext()

    keys = [key for key in _account_keys(account_id) if _has_pending(db, key)]
    if not keys:
        return TriggerResult(triggered=False, message="No pending items")

    cooldown = timedelta(seconds=settings.AUTO_PROCESS_COOLDOWN_SECONDS)
    if not claim_gate(db, account_id, SyncGateName.AUTO_PROCESS, cooldown, now):
        return TriggerResult(triggered=False, message="Skipped (rate limit active)")

    logger.info(f"Auto-Process [{account_id}]: Found pending items, triggering Gemini...")
    for key in keys:
        _queue_processing(key, ctx)

    return TriggerResult(triggered=True, message=f"Queued processing for {len(keys)} account(s)")


def manual_sync(
    db: Session,
    account_id: str,
    ctx: Optional[ExtractionContext] = None,
    access_token: Optional[str] = None,
    now: Optional[datetime] = None,
    sync: Optional[Callable] = None,
) -> TriggerResult:
    """
    User-initiated sync: bypasses both cooldowns but restarts them,
    then runs extraction inline.
    """
    ctx = ctx or ExtractionContext()
    now = now or utcnow()

    stamp_gate(db, account_id, SyncGateName.AUTO_SYNC, now)
    stamp_gate(db, account_id, SyncGateName.AUTO_PROCESS, now)

    if sync is None:
        result = sync_service.run_sync(db, account_id, access_token=access_token)
    else:
        result = sync(db, account_id)
    if not result.success:
        return TriggerResult(triggered=True, message=result.message, sync=result)

    processed = 0
    messages = []
    ok = True
    for key in _account_keys(account_id):
        outcome = process_pending(db, key, ctx.categories, ctx.context)
        ok = ok and outcome.success
        processed += outcome.count
        messages.append(outcome.message)

    process = ProcessResult(success=ok, message="; ".join(messages), count=processed)
    if not process.success:
        logger.error(f"Processing warning for {account_id}: {process.message}")

    return TriggerResult(triggered=True, message=result.message, sync=result, process=process)
