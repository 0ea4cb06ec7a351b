import uuid
from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from .base import Base, now_utc

FREE_CUSTOMIZATION_CREDITS = 2


class CustomizationCredits(Base):
    __tablename__ = 'customization_credits'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_profile_id = Column(UUID(as_uuid=True), ForeignKey('user_profiles.id', ondelete='CASCADE'), nullable=False, unique=True)
    credits_remaining = Column(Integer, nullable=False, default=FREE_CUSTOMIZATION_CREDITS)
    credits_purchased = Column(Integer, nullable=False, default=0)
    credits_used = Column(Integer, nullable=False, default=0)
    total_generations = Column(Integer, nullable=False, default=0)
    total_spent_amount = Column(Integer, nullable=False, default=0)
    last_purchase_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)


class CreditPackConfig(Base):
    __tablename__ = 'credit_pack_configs'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    pack_id = Column(String(50), nullable=False, unique=True)
    pack_name = Column(String(100), nullable=False)
    credits_amount = Column(Integer, nullable=False)
    price_pence = Column(Integer, nullable=False)
    order_credit_pence = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default='GBP')
    is_active = Column(Boolean, nullable=False, default=True)
    is_recommended = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)


class CreditPackPurchase(Base):
    __tablename__ = 'credit_pack_purchases'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(UUID(as_uuid=True), ForeignKey('customers.id', ondelete='SET NULL'), nullable=True)
    user_profile_id = Column(UUID(as_uuid=True), ForeignKey('user_profiles.id', ondelete='SET NULL'), nullable=True)
    pack_id = Column(String(50), nullable=True)
    credits_purchased = Column(Integer, nullable=False)
    amount_paid = Column(Integer, nullable=False, default=0)
    order_credit_granted = Column(Integer, nullable=False, default=0)
    # Stripe payment intent id (or checkout session id when no intent exists)
    payment_reference = Column(String(255), nullable=False, unique=True)
    purchased_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    __table_args__ = (
        Index('idx_credit_pack_purchases_customer', 'customer_id', 'purchased_at'),
    )
