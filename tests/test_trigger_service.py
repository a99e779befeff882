from datetime import datetime, timedelta, timezone

from expense_sync.core.constants import StagingStatus
from expense_sync.models.staging_item import StagingItem
from expense_sync.models.sync_state import GmailCredential
from expense_sync.schemas.sync import ExtractionContext, SyncResult
from expense_sync.services import staging_service, trigger_service

ACCOUNT = "me@example.com"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class CountingSync:
    def __init__(self, count=0, success=True):
        self.calls = 0
        self.count = count
        self.success = success

    def __call__(self, db, account_id):
        self.calls += 1
        return SyncResult(success=self.success, message="synced", count=self.count)


def _enable(db, account=ACCOUNT):
    db.add(GmailCredential(account_id=account, refresh_token="refresh-token"))
    db.commit()


def _stage(db, item_id, account=ACCOUNT):
    staging_service.upsert(
        db,
        StagingItem(
            id=item_id,
            source="sms",
            account_key=account,
            received_at=NOW,
            raw_content="Rs.500 debited from your account",
        ),
    )


def test_auto_sync_twice_within_cooldown_fetches_once(db):
    _enable(db)
    sync = CountingSync()

    first = trigger_service.auto_sync(db, ACCOUNT, now=NOW, sync=sync)
    second = trigger_service.auto_sync(db, ACCOUNT, now=NOW + timedelta(minutes=5), sync=sync)

    assert first.triggered is True
    assert second.triggered is False
    assert sync.calls == 1


def test_auto_sync_after_cooldown_fetches_again(db):
    _enable(db)
    sync = CountingSync()

    trigger_service.auto_sync(db, ACCOUNT, now=NOW, sync=sync)
    trigger_service.auto_sync(db, ACCOUNT, now=NOW + timedelta(minutes=16), sync=sync)

    assert sync.calls == 2


def test_failed_attempt_still_starts_cooldown(db):
    _enable(db)
    sync = CountingSync(success=False)

    trigger_service.auto_sync(db, ACCOUNT, now=NOW, sync=sync)
    trigger_service.auto_sync(db, ACCOUNT, now=NOW + timedelta(minutes=1), sync=sync)

    assert sync.calls == 1


def test_auto_sync_requires_stored_credentials(db):
    sync = CountingSync()

    result = trigger_service.auto_sync(db, ACCOUNT, now=NOW, sync=sync)

    assert result.triggered is False
    assert sync.calls == 0


def test_cooldowns_are_per_account(db):
    _enable(db)
    _enable(db, "other@example.com")
    sync = CountingSync()

    trigger_service.auto_sync(db, ACCOUNT, now=NOW, sync=sync)
    trigger_service.auto_sync(db, "other@example.com", now=NOW, sync=sync)

    assert sync.calls == 2


def test_manual_sync_bypasses_and_resets_cooldown(db, fake_model):
    _enable(db)
    sync = CountingSync()

    trigger_service.auto_sync(db, ACCOUNT, now=NOW, sync=sync)
    manual = trigger_service.manual_sync(db, ACCOUNT, now=NOW + timedelta(minutes=1), sync=sync)
    # Would have been allowed relative to the first auto attempt, but manual restarted the window
    after = trigger_service.auto_sync(db, ACCOUNT, now=NOW + timedelta(minutes=15, seconds=30), sync=sync)

    assert manual.triggered is True
    assert sync.calls == 2
    assert after.triggered is False


def test_auto_sync_with_new_items_queues_extraction(db, fake_model):
    _enable(db)
    _stage(db, "a")

    result = trigger_service.auto_sync(
        db, ACCOUNT, ctx=ExtractionContext(categories=["Food"]), now=NOW, sync=CountingSync(count=1)
    )

    db.expire_all()
    assert result.triggered is True
    assert db.get(StagingItem, "a").status == StagingStatus.REVIEW.value
    assert "Existing Categories: Food" in fake_model.prompts[0]


def test_auto_process_debounce(db, fake_model):
    _stage(db, "a")

    first = trigger_service.auto_process(db, ACCOUNT, now=NOW)
    _stage(db, "b")
    second = trigger_service.auto_process(db, ACCOUNT, now=NOW + timedelta(seconds=5))
    third = trigger_service.auto_process(db, ACCOUNT, now=NOW + timedelta(seconds=20))

    db.expire_all()
    assert (first.triggered, second.triggered, third.triggered) == (True, False, True)
    assert db.get(StagingItem, "b").status == StagingStatus.REVIEW.value


def test_auto_process_includes_shared_sms_items(db, fake_model):
    _stage(db, "sms_1", account="unknown_mobile")

    result = trigger_service.auto_process(db, ACCOUNT, now=NOW)

    db.expire_all()
    assert result.triggered is True
    assert db.get(StagingItem, "sms_1").status == StagingStatus.REVIEW.value


def test_auto_process_without_pending_items_does_nothing(db):
    result = trigger_service.auto_process(db, ACCOUNT, now=NOW)

    assert result.triggered is False
