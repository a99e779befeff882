class ExpenseSyncError(Exception):
    """Base class for every error raised by the ingestion pipeline."""


# ==================== CREDENTIALS ====================
class GmailConfigError(ExpenseSyncError):
    """OAuth client id/secret are not configured."""


class AuthExchangeError(ExpenseSyncError):
    """The provider rejected a one-time authorization code."""


class CredentialsMissing(ExpenseSyncError):
    """No refresh token is stored for the account."""


class TokenRefreshFailed(ExpenseSyncError):
    """The provider rejected the stored refresh token."""


# ==================== FETCH ====================
class ProviderFetchError(ExpenseSyncError):
    """Transport or quota failure while talking to the mailbox provider."""


# ==================== EXTRACTION ====================
class ExtractionParseError(ExpenseSyncError):
    """Model output is not valid JSON or does not match the transaction schema."""


class ModelRejected(ExpenseSyncError):
    """The model answered `null`: no transaction in the message."""


class ModelUnavailableError(ExpenseSyncError):
    """The model call itself failed."""


# ==================== STAGING / REVIEW ====================
class ValidationError(ExpenseSyncError):
    """Malformed inbound payload."""


class StagingItemNotFound(ExpenseSyncError):
    pass


class InvalidStatusTransition(ExpenseSyncError):
    pass


class LedgerError(ExpenseSyncError):
    """The external ledger refused or failed to create the expense."""
