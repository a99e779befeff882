import logging
from typing import Optional
import requests

from expense_sync.core.config import settings
from expense_sync.core.exceptions import LedgerError
from expense_sync.schemas.staging import ParsedTransaction

logger = logging.getLogger(__name__)


class HttpLedgerClient:
    """Hands reviewed transactions to the expense ledger's create endpoint."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None, timeout: Optional[int] = None):
        self.base_url = base_url or settings.LEDGER_API_URL
        self.api_key = api_key or settings.LEDGER_API_KEY
        self.timeout = timeout or settings.LEDGER_TIMEOUT_SECONDS

    def create_expense(self, transaction: ParsedTransaction, staging_id: str) -> Optional[str]:
        if not self.base_url:
            raise LedgerError("Ledger API URL not configured")

        payload = transaction.model_dump(mode="json", by_alias=True)
        payload["stagingId"] = staging_id

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = requests.post(self.base_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Ledger request failed for {staging_id}: {e}")
            raise LedgerError(f"Ledger unreachable: {e}") from e

        if not response.ok:
            logger.error(f"Ledger rejected {staging_id}: {response.status_code} {response.text}")
            raise LedgerError(f"Ledger returned {response.status_code}")

        try:
            reference = response.json().get("id")
        except (ValueError, AttributeError):
            reference = None
        return str(reference) if reference is not None else None


def get_ledger_client() -> HttpLedgerClient:
    return HttpLedgerClient()
