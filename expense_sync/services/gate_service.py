from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from expense_sync.core.constants import SyncGateName
from expense_sync.models.sync_state import SyncGate
from expense_sync.utils.dates import utcnow


def claim_gate(
    db: Session,
    account_key: str,
    gate: SyncGateName,
    window: timedelta,
    now: Optional[datetime] = None,
) -> bool:
    """
    Atomically stamp the gate if it was last stamped more than `window` ago
    (or never). Returns False when another caller holds the window.
    """
    now = now or utcnow()
    gate_name = SyncGateName(gate).value

    updated = (
        db.query(SyncGate)
        .filter(
            SyncGate.account_key == account_key,
            SyncGate.gate == gate_name,
            SyncGate.stamped_at < now - window,
        )
        .update({SyncGate.stamped_at: now}, synchronize_session=False)
    )
    if updated:
        db.commit()
        return True

    exists = (
        db.query(SyncGate.account_key)
        .filter(SyncGate.account_key == account_key, SyncGate.gate == gate_name)
        .first()
    )
    if exists:
        db.rollback()
        return False

    try:
        db.add(SyncGate(account_key=account_key, gate=gate_name, stamped_at=now))
        db.commit()
        return True
    except IntegrityError:
        # Lost the race to create the row
        db.rollback()
        return False


def stamp_gate(db: Session, account_key: str, gate: SyncGateName, now: Optional[datetime] = None) -> None:
    """Unconditionally reset the gate's window to start at `now`."""
    now = now or utcnow()
    gate_name = SyncGateName(gate).value

    updated = (
        db.query(SyncGate)
        .filter(SyncGate.account_key == account_key, SyncGate.gate == gate_name)
        .update({SyncGate.stamped_at: now}, synchronize_session=False)
    )
    if not updated:
        db.add(SyncGate(account_key=account_key, gate=gate_name, stamped_at=now))
    db.commit()


def release_gate(db: Session, account_key: str, gate: SyncGateName) -> None:
    (
        db.query(SyncGate)
        .filter(SyncGate.account_key == account_key, SyncGate.gate == SyncGateName(gate).value)
        .delete(synchronize_session=False)
    )
    db.commit()
