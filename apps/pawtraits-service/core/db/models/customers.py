import uuid
from sqlalchemy import Column, String, Integer, Numeric, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from .base import Base, now_utc


class Partner(Base):
    __tablename__ = 'partners'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(320), nullable=False, unique=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    business_name = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    # Percentages, e.g. 20.00 == 20%
    commission_rate = Column(Numeric(5, 2), nullable=True)
    lifetime_commission_rate = Column(Numeric(5, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    approval_status = Column(String(20), nullable=False, default='pending')
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    @property
    def display_name(self) -> str:
        if self.business_name:
            return self.business_name
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or self.email


class Customer(Base):
    __tablename__ = 'customers'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(320), nullable=False, unique=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    # 'PARTNER' | 'CUSTOMER' | 'ORGANIC' | NULL
    referral_type = Column(String(20), nullable=True)
    # partners.id or customers.id depending on referral_type
    referrer_id = Column(UUID(as_uuid=True), nullable=True)
    referral_code_used = Column(String(50), nullable=True)
    referral_order_id = Column(UUID(as_uuid=True), nullable=True)
    personal_referral_code = Column(String(50), nullable=True, unique=True)
    current_credit_balance = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    __table_args__ = (
        Index('idx_customers_referrer', 'referral_type', 'referrer_id'),
    )


class UserProfile(Base):
    __tablename__ = 'user_profiles'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(320), nullable=False, unique=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    # 'customer' | 'partner' | 'admin'
    user_type = Column(String(20), nullable=False, default='customer')
    partner_id = Column(UUID(as_uuid=True), ForeignKey('partners.id', ondelete='SET NULL'), nullable=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey('customers.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    __table_args__ = (
        Index('idx_user_profiles_user_type', 'user_type'),
    )
