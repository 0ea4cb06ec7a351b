import uuid
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.dialects.postgresql import UUID
from .base import Base, now_utc


class StripeWebhookEvent(Base):
    __tablename__ = 'stripe_webhook_events'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(String(255), nullable=False, unique=True)
    event_type = Column(String(100), nullable=False)
    # processing|processed|failed
    status = Column(String(20), nullable=False, default='processing')
    error_message = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
