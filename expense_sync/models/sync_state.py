from sqlalchemy import Column, String, Text, DateTime, func
from expense_sync.core.database import Base


class GmailCredential(Base):
    __tablename__ = 'gmail_credentials'

    account_id = Column(String(255), primary_key=True, index=True)  # account email
    refresh_token = Column(Text, nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SyncCursor(Base):
    __tablename__ = 'sync_cursors'

    account_id = Column(String(255), primary_key=True, index=True)
    last_message_timestamp = Column(DateTime(timezone=True), nullable=True)
    last_message_id = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SyncGate(Base):
    """
    Durable per-account timestamp used for trigger cooldowns and the
    extraction lease. Claimed with a conditional UPDATE so two callers
    never both win the same window.
    """
    __tablename__ = 'sync_gates'

    account_key = Column(String(255), primary_key=True)
    gate = Column(String(50), primary_key=True)
    stamped_at = Column(DateTime(timezone=True), nullable=False)
