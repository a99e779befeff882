import logging
import os
from datetime import datetime
from typing import Optional

import requests
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from oauthlib.oauth2.rfc6749.errors import OAuth2Error
from sqlalchemy.orm import Session

from expense_sync.core.config import settings
from expense_sync.core.exceptions import (
    AuthExchangeError,
    CredentialsMissing,
    GmailConfigError,
    ProviderFetchError,
    TokenRefreshFailed,
)
from expense_sync.models.sync_state import GmailCredential
from expense_sync.schemas.sync import AutoSyncStatus
from expense_sync.services.gmail_service import SCOPES
from expense_sync.utils.dates import utcnow

logger = logging.getLogger(__name__)

# include_granted_scopes can hand back more scopes than requested
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")


class CredentialService:
    # ==================== OAUTH FLOW ====================
    @staticmethod
    def _client_config() -> dict:
        if not settings.GMAIL_CLIENT_ID or not settings.GMAIL_CLIENT_SECRET:
            raise GmailConfigError("Missing Gmail OAuth Credentials")

        return {
            "web": {
                "client_id": settings.GMAIL_CLIENT_ID,
                "client_secret": settings.GMAIL_CLIENT_SECRET,
                "auth_uri": settings.GMAIL_AUTH_URI,
                "token_uri": settings.GMAIL_TOKEN_URI,
                "redirect_uris": [settings.GMAIL_REDIRECT_URI],
            }
        }

    @staticmethod
    def _build_flow(state: Optional[str] = None) -> Flow:
        # The code is exchanged by a different request, so no PKCE verifier can be carried over
        return Flow.from_client_config(
            CredentialService._client_config(),
            scopes=SCOPES,
            redirect_uri=settings.GMAIL_REDIRECT_URI,
            state=state,
            autogenerate_code_verifier=False,
        )

    @staticmethod
    def get_authorization_url(state: Optional[str] = None) -> str:
        """
        URL asking for offline, consent-forced read-only mailbox access.
        Forcing consent makes Google issue a refresh token on every grant.
        """
        flow = CredentialService._build_flow(state)
        url, _ = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
        )
        return url

    @staticmethod
    def exchange_authorization_code(db: Session, code: str, account_id: str) -> GmailCredential:
        """
        Exchange a one-time code and store (merge) the refresh token.
        """
        if not code or not account_id:
            raise AuthExchangeError("Missing code or email")

        flow = CredentialService._build_flow()
        try:
            flow.fetch_token(code=code)
        except (OAuth2Error, requests.RequestException) as e:
            logger.error(f"Token exchange failed for {account_id}: {e}")
            raise AuthExchangeError(str(e) or "Failed to exchange token") from e

        refresh_token = flow.credentials.refresh_token

        credential = db.get(GmailCredential, account_id)
        if not credential:
            credential = GmailCredential(account_id=account_id)
            db.add(credential)

        if refresh_token:
            credential.refresh_token = refresh_token
        else:
            logger.warning(
                f"No refresh token returned for {account_id}. User might need to revoke access first."
            )

        db.commit()
        db.refresh(credential)
        logger.info(f"Stored Gmail credentials for {account_id}")
        return credential

    # ==================== ACCESS TOKENS ====================
    @staticmethod
    def get_access_token(db: Session, account_id: str) -> str:
        credential = db.get(GmailCredential, account_id)
        if not credential or not credential.refresh_token:
            raise CredentialsMissing("No Auto-Sync credentials found. Please enable it.")

        config = CredentialService._client_config()["web"]
        creds = Credentials(
            token=None,
            refresh_token=credential.refresh_token,
            token_uri=config["token_uri"],
            client_id=config["client_id"],
            client_secret=config["client_secret"],
            scopes=SCOPES,
        )

        try:
            creds.refresh(Request())
        except RefreshError as e:
            logger.error(f"Refresh token rejected for {account_id}: {e}")
            raise TokenRefreshFailed("Auto-Sync session expired. Please re-enable.") from e
        except TransportError as e:
            logger.error(f"Token endpoint unreachable for {account_id}: {e}")
            raise ProviderFetchError(f"Failed to refresh access token: {e}") from e

        return creds.token

    # ==================== STATUS ====================
    @staticmethod
    def touch_last_synced(db: Session, account_id: str, when: Optional[datetime] = None, commit: bool = True):
        credential = db.get(GmailCredential, account_id)
        if not credential:
            credential = GmailCredential(account_id=account_id)
            db.add(credential)
        credential.last_synced_at = when or utcnow()
        if commit:
            db.commit()
        return credential

    @staticmethod
    def get_auto_sync_status(db: Session, account_id: str) -> AutoSyncStatus:
        credential = db.get(GmailCredential, account_id)
        if not credential:
            return AutoSyncStatus(is_enabled=False)
        return AutoSyncStatus(
            is_enabled=bool(credential.refresh_token),
            last_synced_at=credential.last_synced_at,
        )
