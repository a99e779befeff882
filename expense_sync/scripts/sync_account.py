"""
Run a manual Gmail sync plus extraction for one account from the shell.

    python -m expense_sync.scripts.sync_account someone@example.com --category Food --category Travel
"""
import argparse

from expense_sync.core.database import Base, SessionLocal, engine
from expense_sync.models import staging_item, sync_state  # noqa: F401
from expense_sync.schemas.sync import ExtractionContext
from expense_sync.services.trigger_service import manual_sync


def sync_account(account_id: str, categories: list[str]):
    db = SessionLocal()
    try:
        result = manual_sync(db, account_id, ctx=ExtractionContext(categories=categories))
        print(f"[{account_id}] sync: {result.sync.message if result.sync else result.message}")
        if result.process:
            print(f"[{account_id}] extraction: {result.process.message}")
        return result
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Sync transaction emails for one account")
    parser.add_argument("account_id", help="Account email with stored Gmail credentials")
    parser.add_argument("--category", action="append", default=[], help="Known expense category (repeatable)")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    sync_account(args.account_id, args.category)
