import logging
from typing import Callable, Optional
from sqlalchemy.orm import Session

from expense_sync.core.config import settings
from expense_sync.core.constants import StagingSource, StagingStatus, NO_CONTENT_PLACEHOLDER
from expense_sync.core.exceptions import ExpenseSyncError
from expense_sync.models.staging_item import StagingItem
from expense_sync.schemas.sync import SyncResult
from expense_sync.services import staging_service
from expense_sync.services.credential_service import CredentialService
from expense_sync.services.cursor_service import get_cursor, advance_cursor
from expense_sync.services.gmail_service import (
    build_service_for_access_token,
    get_full_message,
    list_message_ids,
)
from expense_sync.utils.dates import from_epoch_millis, to_epoch_seconds
from expense_sync.utils.message_parts import part_from_payload, extract_text

logger = logging.getLogger(__name__)


def build_query(cursor) -> str:
    query = settings.GMAIL_SYNC_QUERY
    if cursor and cursor.last_message_timestamp:
        query += f" after:{to_epoch_seconds(cursor.last_message_timestamp)}"
    return query


def select_new_messages(message_ids: list[str], watermark_id: Optional[str]) -> list[str]:
    """
    Ids newer than the watermark. The page is newest first, so everything
    before the watermark's index is new. When the watermark is not on the
    page at all the whole page is treated as new rather than risk a gap.
    """
    if not watermark_id:
        return list(message_ids)
    if watermark_id in message_ids:
        limit_index = message_ids.index(watermark_id)
        logger.info(f"Found watermark ID {watermark_id} at index {limit_index}. Skipping older.")
        return message_ids[:limit_index]
    logger.warning(f"Watermark ID {watermark_id} not on the fetched page, staging the whole page")
    return list(message_ids)


def fetch_new_messages(db: Session, account_id: str, service) -> SyncResult:
    cursor = get_cursor(db, account_id)
    query = build_query(cursor)
    max_results = settings.GMAIL_WARM_LIMIT if cursor else settings.GMAIL_COLD_START_LIMIT

    logger.info(f"[{account_id}] Query: \"{query}\" | Max: {max_results}")
    message_ids = list_message_ids(service, query, max_results)

    if not message_ids:
        logger.info(f"[{account_id}] No messages found.")
        CredentialService.touch_last_synced(db, account_id)
        return SyncResult(success=True, message="No new emails found", count=0)

    new_ids = select_new_messages(message_ids, cursor.last_message_id if cursor else None)
    if not new_ids:
        logger.info(f"[{account_id}] No new emails after watermark.")
        CredentialService.touch_last_synced(db, account_id)
        return SyncResult(success=True, message="No new emails (up to date)", count=0)

    logger.info(f"[{account_id}] Found {len(new_ids)} NEW messages to fetch.")

    latest_id = None
    latest_millis = 0
    staged = 0
    try:
        # One message at a time to stay inside provider rate limits
        for message_id in new_ids:
            # Newest message processed becomes the watermark
            if latest_id is None:
                latest_id = message_id

            msg = get_full_message(service, message_id)
            if not msg['payload']:
                logger.warning(f"[{account_id}] Message {message_id} has no payload, skipping")
                continue

            latest_millis = max(latest_millis, msg['internal_date'])
            content = extract_text(part_from_payload(msg['payload']))

            staging_service.upsert(
                db,
                StagingItem(
                    id=msg['id'],
                    source=StagingSource.EMAIL.value,
                    account_key=account_id,
                    sender=msg['sender'],
                    subject=msg['subject'],
                    received_at=from_epoch_millis(msg['internal_date']),
                    raw_content=content or NO_CONTENT_PLACEHOLDER,
                    status=StagingStatus.PENDING.value,
                ),
                commit=False,
            )
            staged += 1
            logger.info(f"[{account_id}] Staging: {msg['id']} | {msg['subject']}")

        db.commit()
    except Exception:
        db.rollback()
        raise

    # Cursor moves only once the whole batch is staged
    advance_cursor(
        db,
        account_id,
        latest_id,
        from_epoch_millis(latest_millis) if latest_millis else None,
        commit=False,
    )
    CredentialService.touch_last_synced(db, account_id, commit=False)
    db.commit()

    return SyncResult(success=True, message=f"Synced {staged} emails", count=staged)


def run_sync(
    db: Session,
    account_id: str,
    access_token: Optional[str] = None,
    service_factory: Optional[Callable] = None,
) -> SyncResult:
    """
    Typed-result entry point: auth and transport failures come back as
    SyncResult(success=False) so the caller decides how to surface them.
    """
    if not account_id:
        return SyncResult(success=False, message="Missing email")

    factory = service_factory or build_service_for_access_token
    try:
        token = access_token or CredentialService.get_access_token(db, account_id)
        return fetch_new_messages(db, account_id, factory(token))
    except ExpenseSyncError as e:
        logger.error(f"[{account_id}] Gmail sync failed: {e}")
        return SyncResult(success=False, message=str(e) or "Failed to sync emails")
