import base64
import os
import tempfile

# Settings are read at import time, so the environment has to be in place first
_DB_DIR = tempfile.mkdtemp(prefix="expense_sync_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["GMAIL_CLIENT_ID"] = "test-client-id"
os.environ["GMAIL_CLIENT_SECRET"] = "test-client-secret"
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("LEDGER_API_URL", None)

import pytest
from fastapi.testclient import TestClient

from expense_sync.core.database import Base, SessionLocal, engine
from expense_sync.models import staging_item, sync_state  # noqa: F401
from expense_sync.services import ai_service


VALID_PAYLOAD = (
    '{"amount":500,"expenseName":"Lunch","date":"2024-05-01",'
    '"category":"Food","notes":"","refundRequired":false}'
)


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")


class _Request:
    def __init__(self, fn):
        self._fn = fn

    def execute(self):
        return self._fn()


class FakeGmail:
    """
    Stand-in for the googleapiclient Gmail resource.
    `page` is the newest-first list of full messages the mailbox returns.
    """

    def __init__(self, page=None, list_error=None, get_error=None):
        self.page = list(page or [])
        self.list_error = list_error
        self.get_error = get_error
        self.list_calls = []
        self.get_calls = []

    def users(self):
        return self

    def messages(self):
        return self

    def list(self, userId, q, maxResults):
        self.list_calls.append({"q": q, "maxResults": maxResults})

        def run():
            if self.list_error:
                raise self.list_error
            return {"messages": [{"id": m["id"], "threadId": m["id"]} for m in self.page[:maxResults]]}

        return _Request(run)

    def get(self, userId, id, format):
        self.get_calls.append(id)

        def run():
            if self.get_error:
                raise self.get_error
            return next(m for m in self.page if m["id"] == id)

        return _Request(run)


def build_message(msg_id, millis, text="Rs.500 debited from your account at Cafe", html=None, subject="Transaction alert"):
    parts = [{"mimeType": "text/plain", "body": {"data": _b64(text)}}]
    if html is not None:
        parts.append({"mimeType": "text/html", "body": {"data": _b64(html)}})
    return {
        "id": msg_id,
        "internalDate": str(millis),
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "Subject", "value": subject},
                {"name": "From", "value": "alerts@bank.example"},
            ],
            "parts": parts,
        },
    }


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    ai_service.get_client.cache_clear()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client():
    from expense_sync.main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def fake_gmail():
    return FakeGmail


@pytest.fixture
def make_message():
    return build_message


@pytest.fixture
def b64():
    return _b64


@pytest.fixture
def valid_payload():
    return VALID_PAYLOAD


class ScriptedModel:
    """Answers prompts from a queue; the last response repeats once the queue runs dry."""

    def __init__(self, *responses):
        self.responses = list(responses) or [VALID_PAYLOAD]
        self.prompts = []

    def __call__(self, prompt):
        self.prompts.append(prompt)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_model(monkeypatch):
    """Route ai_service through a ScriptedModel for code paths that use the default generator."""
    model = ScriptedModel()
    monkeypatch.setattr(ai_service, "is_configured", lambda: True)
    monkeypatch.setattr(ai_service, "generate_text", model)
    return model


@pytest.fixture
def scripted_model():
    return ScriptedModel
