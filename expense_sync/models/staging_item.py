from sqlalchemy import Column, String, Text, DateTime, func
from expense_sync.core.database import Base
from expense_sync.core.constants import StagingStatus


class StagingItem(Base):
    __tablename__ = 'staging_items'

    # Provider message id (or synthesized sms id); the dedup key
    id = Column(String(255), primary_key=True, index=True)
    source = Column(String(10), nullable=False) # email or sms
    account_key = Column(String(255), index=True, nullable=False)
    sender = Column(String, nullable=True)
    subject = Column(String, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False, index=True)
    raw_content = Column(Text, nullable=False)
    parsed_payload = Column(Text, nullable=True)
    status = Column(String(20), default=StagingStatus.PENDING.value, nullable=False, index=True)
    error_reason = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
