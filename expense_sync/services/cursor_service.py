from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session
from expense_sync.models.sync_state import SyncCursor
from expense_sync.utils.dates import as_utc


def get_cursor(db: Session, account_id: str) -> Optional[SyncCursor]:
    return db.get(SyncCursor, account_id)


def advance_cursor(
    db: Session,
    account_id: str,
    message_id: Optional[str],
    message_timestamp: Optional[datetime],
    commit: bool = True,
) -> SyncCursor:
    """
    Move the watermark to the newest processed message.
    The timestamp never moves backwards.
    """
    cursor = db.get(SyncCursor, account_id)
    if not cursor:
        cursor = SyncCursor(account_id=account_id)
        db.add(cursor)

    if message_id:
        cursor.last_message_id = message_id

    current = as_utc(cursor.last_message_timestamp)
    candidate = as_utc(message_timestamp)
    if candidate and (current is None or candidate > current):
        cursor.last_message_timestamp = candidate

    if commit:
        db.commit()
        db.refresh(cursor)
    return cursor
