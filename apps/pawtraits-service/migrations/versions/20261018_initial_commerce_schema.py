"""initial commerce schema

Revision ID: 7d2e4c1a9b30
Revises:
Create Date: 2026-10-18 09:12:44.102311

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '7d2e4c1a9b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk():
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _created_at():
    return sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False)


def _updated_at():
    return sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'partners',
        _uuid_pk(),
        sa.Column('email', sa.String(320), nullable=False, unique=True),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('business_name', sa.String(200), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('lifetime_commission_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('approval_status', sa.String(20), nullable=False, server_default='pending'),
        _created_at(),
        _updated_at(),
    )

    op.create_table(
        'customers',
        _uuid_pk(),
        sa.Column('email', sa.String(320), nullable=False, unique=True),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('referral_type', sa.String(20), nullable=True),
        sa.Column('referrer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('referral_code_used', sa.String(50), nullable=True),
        sa.Column('referral_order_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('personal_referral_code', sa.String(50), nullable=True, unique=True),
        sa.Column('current_credit_balance', sa.Integer(), nullable=False, server_default='0'),
        _created_at(),
        _updated_at(),
    )
    op.create_index('idx_customers_referrer', 'customers', ['referral_type', 'referrer_id'], unique=False)

    op.create_table(
        'user_profiles',
        _uuid_pk(),
        sa.Column('email', sa.String(320), nullable=False, unique=True),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('user_type', sa.String(20), nullable=False, server_default='customer'),
        sa.Column('partner_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('partners.id', ondelete='SET NULL'), nullable=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id', ondelete='SET NULL'), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('idx_user_profiles_user_type', 'user_profiles', ['user_type'], unique=False)

    op.create_table(
        'image_catalog',
        _uuid_pk(),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('cloudinary_public_id', sa.String(500), nullable=True),
        sa.Column('public_url', sa.String(1000), nullable=True),
        sa.Column('image_variants', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
    )

    op.create_table(
        'orders',
        _uuid_pk(),
        sa.Column('order_number', sa.String(64), nullable=False, unique=True),
        sa.Column('status', sa.String(30), nullable=False, server_default='pending'),
        sa.Column('customer_email', sa.String(320), nullable=False),
        sa.Column('user_profile_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('shipping_first_name', sa.String(100), nullable=True),
        sa.Column('shipping_last_name', sa.String(100), nullable=True),
        sa.Column('shipping_address_line_1', sa.String(255), nullable=True),
        sa.Column('shipping_address_line_2', sa.String(255), nullable=True),
        sa.Column('shipping_city', sa.String(100), nullable=True),
        sa.Column('shipping_postcode', sa.String(20), nullable=True),
        sa.Column('shipping_country', sa.String(100), nullable=True),
        sa.Column('subtotal_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credit_applied', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shipping_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='GBP'),
        sa.Column('referral_code', sa.String(50), nullable=True),
        sa.Column('estimated_delivery', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('payment_intent_id', sa.String(255), nullable=True, unique=True),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('gelato_order_id', sa.String(255), nullable=True),
        sa.Column('gelato_status', sa.String(50), nullable=True),
        sa.Column('tracking_code', sa.String(255), nullable=True),
        sa.Column('tracking_url', sa.String(500), nullable=True),
        sa.Column('carrier_name', sa.String(100), nullable=True),
        sa.Column('shipped_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('idx_orders_customer_email', 'orders', ['customer_email'], unique=False)
    op.create_index('idx_orders_gelato_order_id', 'orders', ['gelato_order_id'], unique=False)
    op.create_index('idx_orders_status', 'orders', ['status'], unique=False)

    op.create_table(
        'order_items',
        _uuid_pk(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=True),
        sa.Column('image_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('image_url', sa.String(1000), nullable=True),
        sa.Column('image_title', sa.String(255), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_price', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gelato_sku', sa.String(255), nullable=True),
        sa.Column('product_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
    )
    op.create_index('idx_order_items_order_id', 'order_items', ['order_id'], unique=False)

    op.create_table(
        'cart_items',
        _uuid_pk(),
        sa.Column('user_profile_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=True),
        sa.Column('image_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('image_catalog.id', ondelete='SET NULL'), nullable=True),
        sa.Column('image_url', sa.String(1000), nullable=True),
        sa.Column('image_title', sa.String(255), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price_pence', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('product_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
    )
    op.create_index('idx_cart_items_user_profile_id', 'cart_items', ['user_profile_id'], unique=False)

    op.create_table(
        'customization_credits',
        _uuid_pk(),
        sa.Column('user_profile_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('credits_remaining', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('credits_purchased', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credits_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_generations', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spent_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_purchase_date', sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )

    op.create_table(
        'credit_pack_configs',
        _uuid_pk(),
        sa.Column('pack_id', sa.String(50), nullable=False, unique=True),
        sa.Column('pack_name', sa.String(100), nullable=False),
        sa.Column('credits_amount', sa.Integer(), nullable=False),
        sa.Column('price_pence', sa.Integer(), nullable=False),
        sa.Column('order_credit_pence', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='GBP'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('is_recommended', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        _created_at(),
    )

    op.create_table(
        'credit_pack_purchases',
        _uuid_pk(),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('user_profile_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_profiles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('pack_id', sa.String(50), nullable=True),
        sa.Column('credits_purchased', sa.Integer(), nullable=False),
        sa.Column('amount_paid', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('order_credit_granted', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_reference', sa.String(255), nullable=False, unique=True),
        sa.Column('purchased_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('idx_credit_pack_purchases_customer', 'credit_pack_purchases', ['customer_id', 'purchased_at'], unique=False)

    op.create_table(
        'commissions',
        _uuid_pk(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('order_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('recipient_type', sa.String(20), nullable=False),
        sa.Column('recipient_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('recipient_email', sa.String(320), nullable=True),
        sa.Column('referrer_type', sa.String(20), nullable=True),
        sa.Column('referrer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('referral_code', sa.String(50), nullable=True),
        sa.Column('commission_type', sa.String(30), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('commission_amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('paid_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'paid', 'disputed', 'redeemed')",
            name='ck_commissions_status',
        ),
    )
    op.create_index('idx_commissions_recipient', 'commissions', ['recipient_type', 'recipient_id', 'status'], unique=False)
    op.create_index('idx_commissions_order_id', 'commissions', ['order_id'], unique=False)
    op.create_index('idx_commissions_type_status', 'commissions', ['commission_type', 'status'], unique=False)

    op.create_table(
        'message_templates',
        _uuid_pk(),
        sa.Column('template_key', sa.String(100), nullable=False, unique=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(50), nullable=False, server_default='transactional'),
        sa.Column('channels', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('user_types', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('email_subject_template', sa.Text(), nullable=True),
        sa.Column('email_body_template', sa.Text(), nullable=True),
        sa.Column('sms_body_template', sa.Text(), nullable=True),
        sa.Column('inbox_title_template', sa.Text(), nullable=True),
        sa.Column('inbox_body_template', sa.Text(), nullable=True),
        sa.Column('inbox_action_url', sa.String(500), nullable=True),
        sa.Column('inbox_action_label', sa.String(100), nullable=True),
        sa.Column('inbox_icon', sa.String(50), nullable=True),
        sa.Column('variables', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('priority', sa.String(20), nullable=False, server_default='normal'),
        _created_at(),
        _updated_at(),
    )

    op.create_table(
        'message_queue',
        _uuid_pk(),
        sa.Column('template_key', sa.String(100), nullable=False),
        sa.Column('recipient_type', sa.String(20), nullable=False),
        sa.Column('recipient_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('recipient_email', sa.String(320), nullable=True),
        sa.Column('recipient_phone', sa.String(50), nullable=True),
        sa.Column('channel', sa.String(10), nullable=False),
        sa.Column('subject', sa.Text(), nullable=True),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('variables', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('priority', sa.String(20), nullable=False, server_default='normal'),
        sa.Column('scheduled_for', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_retries', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('sent_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('failed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('idx_message_queue_status_scheduled', 'message_queue', ['status', 'scheduled_for'], unique=False)
    op.create_index('idx_message_queue_recipient', 'message_queue', ['recipient_type', 'recipient_id'], unique=False)

    op.create_table(
        'user_messages',
        _uuid_pk(),
        sa.Column('recipient_type', sa.String(20), nullable=False),
        sa.Column('recipient_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('template_key', sa.String(100), nullable=True),
        sa.Column('message_type', sa.String(50), nullable=False, server_default='transactional'),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('action_url', sa.String(500), nullable=True),
        sa.Column('action_label', sa.String(100), nullable=True),
        sa.Column('icon', sa.String(50), nullable=True),
        sa.Column('related_type', sa.String(50), nullable=True),
        sa.Column('related_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('read_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('queue_message_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('message_queue.id', ondelete='SET NULL'), nullable=True),
        _created_at(),
    )
    op.create_index('idx_user_messages_recipient', 'user_messages', ['recipient_type', 'recipient_id', 'is_read'], unique=False)

    op.create_table(
        'stripe_webhook_events',
        _uuid_pk(),
        sa.Column('event_id', sa.String(255), nullable=False, unique=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='processing'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('received_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('processed_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )

    op.create_table(
        'audit_logs',
        _uuid_pk(),
        sa.Column('actor', sa.Text(), nullable=False),
        sa.Column('action_type', sa.Text(), nullable=False),
        sa.Column('target_type', sa.Text(), nullable=True),
        sa.Column('target_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
    )
    op.create_index('ix_audit_logs_target', 'audit_logs', ['target_type', 'target_id'], unique=False)
    op.create_index('ix_audit_logs_action_type', 'audit_logs', ['action_type'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        'audit_logs',
        'stripe_webhook_events',
        'user_messages',
        'message_queue',
        'message_templates',
        'commissions',
        'credit_pack_purchases',
        'credit_pack_configs',
        'customization_credits',
        'cart_items',
        'order_items',
        'orders',
        'image_catalog',
        'user_profiles',
        'customers',
        'partners',
    ):
        op.drop_table(table)
