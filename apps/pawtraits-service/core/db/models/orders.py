import uuid
from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from .base import Base, now_utc


class Order(Base):
    __tablename__ = 'orders'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_number = Column(String(64), nullable=False, unique=True)
    # pending|confirmed|processing|printing|printed|shipped|in_transit|delivered|
    # fulfillment_error|cancelled|on_hold
    status = Column(String(30), nullable=False, default='pending')
    customer_email = Column(String(320), nullable=False)
    user_profile_id = Column(UUID(as_uuid=True), ForeignKey('user_profiles.id', ondelete='SET NULL'), nullable=True)

    shipping_first_name = Column(String(100), nullable=True)
    shipping_last_name = Column(String(100), nullable=True)
    shipping_address_line_1 = Column(String(255), nullable=True)
    shipping_address_line_2 = Column(String(255), nullable=True)
    shipping_city = Column(String(100), nullable=True)
    shipping_postcode = Column(String(20), nullable=True)
    shipping_country = Column(String(100), nullable=True)

    # All amounts in pence
    subtotal_amount = Column(Integer, nullable=False, default=0)
    discount_amount = Column(Integer, nullable=False, default=0)
    credit_applied = Column(Integer, nullable=False, default=0)
    shipping_amount = Column(Integer, nullable=False, default=0)
    total_amount = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default='GBP')
    referral_code = Column(String(50), nullable=True)
    estimated_delivery = Column(DateTime(timezone=True), nullable=True)

    payment_intent_id = Column(String(255), nullable=True, unique=True)
    payment_status = Column(String(20), nullable=False, default='pending')

    gelato_order_id = Column(String(255), nullable=True)
    gelato_status = Column(String(50), nullable=True)
    tracking_code = Column(String(255), nullable=True)
    tracking_url = Column(String(500), nullable=True)
    carrier_name = Column(String(100), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    metadata_json = Column('metadata', JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    __table_args__ = (
        Index('idx_orders_customer_email', 'customer_email'),
        Index('idx_orders_gelato_order_id', 'gelato_order_id'),
        Index('idx_orders_status', 'status'),
    )

    def merge_metadata(self, **values):
        """Assign a new dict so JSONB changes are flushed."""
        self.metadata_json = {**(self.metadata_json or {}), **values}


class OrderItem(Base):
    __tablename__ = 'order_items'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    product_id = Column(String(64), nullable=True)
    image_id = Column(UUID(as_uuid=True), nullable=True)
    image_url = Column(String(1000), nullable=True)
    image_title = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Integer, nullable=False, default=0)
    total_price = Column(Integer, nullable=False, default=0)
    gelato_sku = Column(String(255), nullable=True)
    product_data = Column(JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    __table_args__ = (
        Index('idx_order_items_order_id', 'order_id'),
    )


class CartItem(Base):
    __tablename__ = 'cart_items'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_profile_id = Column(UUID(as_uuid=True), ForeignKey('user_profiles.id', ondelete='CASCADE'), nullable=False)
    product_id = Column(String(64), nullable=True)
    image_id = Column(UUID(as_uuid=True), ForeignKey('image_catalog.id', ondelete='SET NULL'), nullable=True)
    image_url = Column(String(1000), nullable=True)
    image_title = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    price_pence = Column(Integer, nullable=False, default=0)
    # gelato_sku, width_cm, height_cm, medium, format
    product_data = Column(JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    __table_args__ = (
        Index('idx_cart_items_user_profile_id', 'user_profile_id'),
    )


class ImageCatalog(Base):
    __tablename__ = 'image_catalog'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=True)
    cloudinary_public_id = Column(String(500), nullable=True)
    public_url = Column(String(1000), nullable=True)
    image_variants = Column(JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
