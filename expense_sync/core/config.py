from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional



class Settings(BaseSettings):
    # -----------------------------
    # Database
    # -----------------------------
    DATABASE_URL: str = "sqlite:///./expense_sync.db"
    SQL_ECHO: bool = False

    # -----------------------------
    # Gmail OAuth / API Config
    # -----------------------------
    GMAIL_CLIENT_ID: Optional[str] = None
    GMAIL_CLIENT_SECRET: Optional[str] = None
    GMAIL_REDIRECT_URI: str = "http://localhost:3001/dashboard"
    GMAIL_AUTH_URI: str = "https://accounts.google.com/o/oauth2/auth"
    GMAIL_TOKEN_URI: str = "https://oauth2.googleapis.com/token"
    GMAIL_SYNC_QUERY: str = "label:transactions"
    GMAIL_COLD_START_LIMIT: int = 2
    GMAIL_WARM_LIMIT: int = 20

    # -----------------------------
    # Gemini extraction
    # -----------------------------
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    EXTRACTION_BATCH_SIZE: int = 10
    EXTRACTION_CONTENT_LIMIT: int = 15000
    EXTRACTION_CONTEXT_LIMIT: int = 50
    EXTRACTION_LEASE_SECONDS: int = 300

    # -----------------------------
    # Auto-trigger cooldowns
    # -----------------------------
    AUTO_SYNC_COOLDOWN_SECONDS: int = 15 * 60
    AUTO_PROCESS_COOLDOWN_SECONDS: int = 15

    # -----------------------------
    # SMS webhook
    # -----------------------------
    SMS_ACCOUNT_KEY: str = "unknown_mobile"

    # -----------------------------
    # Ledger hand-off
    # -----------------------------
    LEDGER_API_URL: Optional[str] = None
    LEDGER_API_KEY: Optional[str] = None
    LEDGER_TIMEOUT_SECONDS: int = 30

    # -----------------------------
    # Message broker
    # -----------------------------
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    CELERY_TASK_ALWAYS_EAGER: bool = False

    # -----------------------------
    # App Environment
    # -----------------------------
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "info"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance to avoid reloading .env repeatedly"""
    return Settings()


settings = get_settings()
