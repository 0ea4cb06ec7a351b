"""
Domain-split SQLAlchemy models with a single aggregator.

Exposes `Base`, `now_utc`, and all ORM classes so callers can use
`from core.db import models` and reference `models.Order` etc.
"""

from .base import Base, now_utc  # re-export

# Domain models
from .customers import Partner, Customer, UserProfile
from .credits import CustomizationCredits, CreditPackConfig, CreditPackPurchase, FREE_CUSTOMIZATION_CREDITS
from .orders import Order, OrderItem, CartItem, ImageCatalog
from .commissions import (
    Commission,
    COMMISSION_TYPE_PARTNER,
    COMMISSION_TYPE_CUSTOMER_CREDIT,
    COMMISSION_STATUSES,
)
from .messaging import MessageTemplate, MessageQueue, UserMessage
from .webhooks import StripeWebhookEvent
from .audit import AuditLog

__all__ = [
    # base
    "Base",
    "now_utc",
    # people
    "Partner",
    "Customer",
    "UserProfile",
    # credits
    "CustomizationCredits",
    "CreditPackConfig",
    "CreditPackPurchase",
    "FREE_CUSTOMIZATION_CREDITS",
    # orders
    "Order",
    "OrderItem",
    "CartItem",
    "ImageCatalog",
    # ledger
    "Commission",
    "COMMISSION_TYPE_PARTNER",
    "COMMISSION_TYPE_CUSTOMER_CREDIT",
    "COMMISSION_STATUSES",
    # messaging
    "MessageTemplate",
    "MessageQueue",
    "UserMessage",
    # webhooks/audit
    "StripeWebhookEvent",
    "AuditLog",
]
