import uuid
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from .base import Base, now_utc

COMMISSION_TYPE_PARTNER = 'partner_commission'
COMMISSION_TYPE_CUSTOMER_CREDIT = 'customer_credit'

COMMISSION_STATUSES = ('pending', 'approved', 'paid', 'disputed', 'redeemed')


class Commission(Base):
    __tablename__ = 'commissions'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # NULL for credits granted outside an order (credit pack bonuses)
    order_id = Column(UUID(as_uuid=True), ForeignKey('orders.id', ondelete='SET NULL'), nullable=True)
    order_amount = Column(Integer, nullable=False, default=0)
    recipient_type = Column(String(20), nullable=False)
    recipient_id = Column(UUID(as_uuid=True), nullable=False)
    recipient_email = Column(String(320), nullable=True)
    referrer_type = Column(String(20), nullable=True)
    referrer_id = Column(UUID(as_uuid=True), nullable=True)
    referral_code = Column(String(50), nullable=True)
    commission_type = Column(String(30), nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False, default=0)
    commission_amount = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default='pending')
    paid_at = Column(DateTime(timezone=True), nullable=True)
    metadata_json = Column('metadata', JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    __table_args__ = (
        Index('idx_commissions_recipient', 'recipient_type', 'recipient_id', 'status'),
        Index('idx_commissions_order_id', 'order_id'),
        Index('idx_commissions_type_status', 'commission_type', 'status'),
    )

    def merge_metadata(self, **values):
        self.metadata_json = {**(self.metadata_json or {}), **values}
