import json
from datetime import datetime, timezone

from expense_sync.core.constants import StagingStatus
from expense_sync.core.exceptions import LedgerError
from expense_sync.models.staging_item import StagingItem
from expense_sync.models.sync_state import GmailCredential
from expense_sync.services import staging_service, sync_service
from expense_sync.services.ledger_client import get_ledger_client

ACCOUNT = "me@example.com"


def _stage(db, item_id, account=ACCOUNT, status=StagingStatus.PENDING, payload=None, reason=None):
    staging_service.upsert(
        db,
        StagingItem(
            id=item_id,
            source="email",
            account_key=account,
            received_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
            raw_content="Rs.500 debited from your account at Cafe",
        ),
    )
    if status != StagingStatus.PENDING:
        staging_service.set_status(db, item_id, status, payload=payload, reason=reason)


class StubLedger:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def create_expense(self, transaction, staging_id):
        self.calls.append(staging_id)
        if self.fail:
            raise LedgerError("Ledger returned 503")
        return "exp-42"


# -------------------------- SMS WEBHOOK -----------------------------------

def test_transaction_sms_is_staged(client, db):
    response = client.post(
        "/api/sync/sms",
        json={"sender": "VM-HDFCBK", "body": "Rs.500 debited from your account", "timestamp": 1714550400000},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "SMS Staged"}
    items = db.query(StagingItem).all()
    assert len(items) == 1
    assert items[0].status == "pending"
    assert items[0].source == "sms"
    assert items[0].account_key == "unknown_mobile"
    assert items[0].sender == "VM-HDFCBK"
    assert items[0].id.startswith("sms_")


def test_fractional_timestamp_is_truncated(client, db):
    response = client.post(
        "/api/sync/sms",
        json={"sender": "VM-HDFCBK", "body": "Rs.500 debited from your account", "timestamp": 1714550400000.75},
    )

    assert response.status_code == 200
    item = db.query(StagingItem).one()
    assert item.received_at.replace(tzinfo=timezone.utc) == datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


def test_non_transaction_sms_is_skipped(client, db):
    response = client.post("/api/sync/sms", json={"sender": "VM-HDFCBK", "body": "Your OTP is 1234"})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert db.query(StagingItem).count() == 0


def test_sms_missing_fields_is_a_client_error(client, db):
    response = client.post("/api/sync/sms", json={"sender": "VM-HDFCBK"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Missing fields"}
    assert db.query(StagingItem).count() == 0


def test_each_sms_gets_its_own_item(client, db):
    for _ in range(2):
        client.post("/api/sync/sms", json={"sender": "AX-ICICI", "body": "INR 120 spent on card"})

    assert db.query(StagingItem).count() == 2


def test_sms_internal_failure_returns_500(client, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(staging_service, "upsert", explode)

    response = client.post("/api/sync/sms", json={"sender": "AX-ICICI", "body": "INR 120 spent"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "database is gone"}


# -------------------------- STAGING ---------------------------------------

def test_staging_list_includes_shared_sms_items(client, db, valid_payload):
    _stage(db, "mine", status=StagingStatus.REVIEW, payload=valid_payload)
    _stage(db, "sms_1", account="unknown_mobile")
    _stage(db, "theirs", account="other@example.com")

    response = client.get(f"/staging/{ACCOUNT}")

    body = response.json()
    assert response.status_code == 200
    assert body["total"] == 2
    states = {item["id"]: item["state"] for item in body["items"]}
    assert set(states) == {"mine", "sms_1"}
    assert states["mine"]["kind"] == "review"
    assert states["mine"]["transaction"]["expenseName"] == "Lunch"
    assert states["sms_1"] == {"kind": "pending"}


def test_promote_endpoint(client, db, valid_payload):
    _stage(db, "mine", status=StagingStatus.REVIEW, payload=valid_payload)
    ledger = StubLedger()
    client.app.dependency_overrides[get_ledger_client] = lambda: ledger

    response = client.post("/staging/items/mine/promote", json={"overrides": {"category": "Dining"}})

    assert response.status_code == 200
    assert response.json()["ledger_reference"] == "exp-42"
    assert db.get(StagingItem, "mine") is None


def test_promote_endpoint_ledger_failure(client, db, valid_payload):
    _stage(db, "mine", status=StagingStatus.REVIEW, payload=valid_payload)
    client.app.dependency_overrides[get_ledger_client] = lambda: StubLedger(fail=True)

    response = client.post("/staging/items/mine/promote", json={})

    assert response.status_code == 502
    db.expire_all()
    assert db.get(StagingItem, "mine").status == "review"


def test_promote_pending_item_conflicts(client, db):
    _stage(db, "mine")
    client.app.dependency_overrides[get_ledger_client] = lambda: StubLedger()

    assert client.post("/staging/items/mine/promote", json={}).status_code == 409


def test_retry_endpoint(client, db, fake_model):
    _stage(db, "mine", status=StagingStatus.ERROR, reason="parse_error")

    response = client.post("/staging/items/mine/retry", json={"categories": ["Food"], "context": []})

    assert response.status_code == 200
    assert response.json()["count"] == 1
    db.expire_all()
    item = db.get(StagingItem, "mine")
    assert item.status == "review"
    assert json.loads(item.parsed_payload)["category"] == "Food"


def test_delete_endpoint(client, db):
    _stage(db, "mine", status=StagingStatus.ERROR, reason="parse_error")

    assert client.delete("/staging/items/mine").status_code == 204
    assert client.delete("/staging/items/mine").status_code == 404


# -------------------------- SYNC ------------------------------------------

def test_status_endpoint(client, db):
    db.add(GmailCredential(account_id=ACCOUNT, refresh_token="refresh-1"))
    db.commit()

    response = client.get(f"/sync/{ACCOUNT}/status")

    assert response.json()["is_enabled"] is True


def test_authorize_url_endpoint(client):
    response = client.get(f"/sync/{ACCOUNT}/authorize")

    assert response.status_code == 200
    assert "access_type=offline" in response.json()["url"]


def test_manual_sync_endpoint_with_access_token(client, db, fake_gmail, make_message, fake_model, monkeypatch):
    gmail = fake_gmail(page=[make_message("m1", 1714550400000)])
    monkeypatch.setattr(sync_service, "build_service_for_access_token", lambda token: gmail)

    response = client.post(
        f"/sync/{ACCOUNT}/run",
        json={"access_token": "interactive", "categories": ["Food"], "context": [{"name": "Cafe", "category": "Food"}]},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["sync"]["count"] == 1
    assert body["process"]["count"] == 1
    db.expire_all()
    assert db.get(StagingItem, "m1").status == "review"
    assert "Cafe: Food" in fake_model.prompts[0]


def test_auto_sync_endpoint_reports_missing_credentials(client):
    response = client.post(f"/sync/{ACCOUNT}/auto", json={})

    assert response.status_code == 200
    assert response.json()["triggered"] is False


def test_auto_sync_endpoint_surfaces_expired_session(client, db, monkeypatch):
    from google.auth.exceptions import RefreshError

    db.add(GmailCredential(account_id=ACCOUNT, refresh_token="revoked"))
    db.commit()

    def refuse(self, request):
        raise RefreshError("invalid_grant")

    monkeypatch.setattr("expense_sync.services.credential_service.Credentials.refresh", refuse)

    body = client.post(f"/sync/{ACCOUNT}/auto", json={}).json()

    assert body["triggered"] is True
    assert body["sync"]["success"] is False
    assert body["sync"]["message"] == "Auto-Sync session expired. Please re-enable."
