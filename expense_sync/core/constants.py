from enum import Enum


class StagingStatus(str, Enum):
    PENDING = 'pending'
    REVIEW = 'review'
    ERROR = 'error'
    REJECTED = 'rejected'


class StagingSource(str, Enum):
    EMAIL = 'email'
    SMS = 'sms'


# Why an item landed in ERROR
class ErrorReason(str, Enum):
    MODEL_REJECTED = 'model_rejected'
    PARSE_ERROR = 'parse_error'
    MODEL_UNAVAILABLE = 'model_unavailable'


# Durable per-account gates kept in sync_gates
class SyncGateName(str, Enum):
    AUTO_SYNC = 'auto_sync'
    AUTO_PROCESS = 'auto_process'
    EXTRACTION_LEASE = 'extraction_lease'


NO_CONTENT_PLACEHOLDER = "(No Content Extracted)"
MIN_EXTRACTABLE_LENGTH = 10
SMS_TRANSACTION_PATTERN = r"debited|spent"
