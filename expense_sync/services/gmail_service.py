import logging
import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from google.auth.exceptions import RefreshError, TransportError
from google.oauth2.credentials import Credentials
from expense_sync.core.exceptions import ProviderFetchError, TokenRefreshFailed


logger = logging.getLogger(__name__)

SCOPES = ['https://www.googleapis.com/auth/gmail.readonly']

# Failures that mean "the provider could not answer", never a bug on our side
PROVIDER_ERRORS = (HttpError, TransportError, httplib2.HttpLib2Error, OSError)


def build_service_for_access_token(access_token: str):
    creds = Credentials(token=access_token, scopes=SCOPES)
    service = build('gmail', 'v1', credentials=creds, cache_discovery=False)
    return service


def _header(headers: list, name: str, default: str = '') -> str:
    return next((h['value'] for h in headers if h.get('name', '').lower() == name.lower()), default)


def list_message_ids(svc, query: str, max_results: int) -> list[str]:
    """Matching message ids, newest first as returned by Gmail."""
    try:
        resp = svc.users().messages().list(userId='me', q=query, maxResults=max_results).execute()
    except RefreshError as e:
        logger.error(f"Gmail access token rejected for query '{query}': {e}")
        raise TokenRefreshFailed("Auto-Sync session expired. Please re-enable.") from e
    except PROVIDER_ERRORS as e:
        logger.error(f"Gmail list failed for query '{query}': {e}")
        raise ProviderFetchError(f"Failed to list messages: {e}") from e

    return [m['id'] for m in resp.get('messages', []) if m.get('id')]


def get_full_message(svc, message_id: str) -> dict:
    try:
        msg = svc.users().messages().get(userId='me', id=message_id, format='full').execute()
    except RefreshError as e:
        logger.error(f"Gmail access token rejected for message {message_id}: {e}")
        raise TokenRefreshFailed("Auto-Sync session expired. Please re-enable.") from e
    except PROVIDER_ERRORS as e:
        logger.error(f"Gmail get failed for message {message_id}: {e}")
        raise ProviderFetchError(f"Failed to fetch message {message_id}: {e}") from e

    payload = msg.get('payload')
    headers = (payload or {}).get('headers', [])

    return {
        'id': msg.get('id', message_id),
        'subject': _header(headers, 'Subject', '(No Subject)'),
        'sender': _header(headers, 'From', '(Unknown)'),
        'internal_date': int(msg.get('internalDate') or 0),  # milliseconds
        'payload': payload,
    }
