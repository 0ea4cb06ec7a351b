"""
Commerce notifications: builds template variables for order, ledger and
fulfillment events and hands them to the message service.

Every notifier swallows its own failures. A notification that cannot be
queued is logged and must not interrupt order or ledger processing.
"""

import calendar
import functools
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from sqlalchemy.orm import Session

from core.db import models
from core.db.repositories import commissions as commission_repo
from core.db.repositories import customers as customer_repo
from core.db.repositories import credits as credit_repo
from core.db.repositories import orders as order_repo
from core.utils.money import format_money
from core.utils.urls import app_url, get_app_base_url

logger = logging.getLogger(__name__)

# Template keys (rows in message_templates)
TEMPLATE_ORDER_CONFIRMATION = 'order_confirmation'
TEMPLATE_PARTNER_COMMISSION_EARNED = 'partner_commission_earned'
TEMPLATE_CUSTOMER_CREDIT_EARNED = 'customer_credit_earned'
TEMPLATE_CREDIT_PACK_PURCHASED = 'credit_pack_purchased'
TEMPLATE_ORDER_SHIPPED = 'order_shipped'
TEMPLATE_ORDER_STATUS_UPDATE = 'order_status_update'

DEFAULT_DELIVERY_TEXT = 'Within 7-10 business days'

STATUS_LABELS = {
    'printed': 'Printed',
    'shipped': 'Shipped',
    'in_transit': 'In transit',
    'delivered': 'Delivered',
    'fulfillment_error': 'Problem with your order',
    'on_hold': 'On hold',
}


def _long_date(value: Optional[datetime]) -> str:
    if value is None:
        return ''
    return f"{value.day} {value:%B %Y}"


def _long_date_with_weekday(value: Optional[datetime]) -> str:
    if value is None:
        return ''
    return f"{value:%A} {value.day} {value:%B %Y}"


def payout_date(today: Optional[datetime] = None) -> datetime:
    """Partner payouts land on the last day of the following month."""
    today = today or datetime.now(timezone.utc)
    year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, last_day, tzinfo=timezone.utc)


def _email_local_part(email: Optional[str]) -> str:
    return (email or '').split('@')[0]


def _never_raises(func):
    """Log and swallow any failure raised while building or queueing a notification."""
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except Exception:
            self.db.rollback()
            logger.exception("notification_failed notifier=%s", func.__name__)
            return None
    return wrapper


class NotificationService:
    """Queue commerce notifications through the message service."""

    def __init__(self, db: Session, message_service=None):
        self.db = db
        if message_service is None:
            from core.services.message_service import MessageService
            message_service = MessageService(db)
        self.message_service = message_service

    def _profile_id(self, email: Optional[str]):
        profile = customer_repo.get_user_profile_by_email(self.db, email)
        return profile.id if profile else None

    def _send(self, template_key: str, **kwargs) -> Optional[Dict[str, Any]]:
        result = self.message_service.send_message(template_key=template_key, **kwargs)
        if not result.get('success'):
            logger.warning("notification_not_queued template=%s errors=%s", template_key, result.get('errors'))
        return result

    # === Orders ===

    def _order_items_payload(self, order: models.Order) -> List[Dict[str, Any]]:
        items = []
        for item in order_repo.list_order_items(self.db, order.id):
            data = item.product_data or {}
            fmt = data.get('format')
            if isinstance(fmt, dict):
                fmt = fmt.get('name')
            items.append({
                'title': item.image_title,
                'format': fmt or 'Custom',
                'size': f"{data.get('width_cm')}x{data.get('height_cm')}cm",
                'quantity': item.quantity,
                'price': format_money(item.unit_price),
            })
        return items

    @_never_raises
    def notify_order_confirmation(self, order: models.Order) -> Optional[Dict[str, Any]]:
        variables = {
            'base_url': get_app_base_url(),
            'customer_name': order.shipping_first_name or _email_local_part(order.customer_email),
            'order_number': order.order_number,
            'order_id': str(order.id),
            'items': self._order_items_payload(order),
            'subtotal': format_money(order.subtotal_amount),
            'discount_amount': format_money(order.discount_amount) if order.discount_amount else None,
            'referral_code': order.referral_code,
            'credit_applied': format_money(order.credit_applied) if order.credit_applied else None,
            'shipping_amount': format_money(order.shipping_amount),
            'total_amount': format_money(order.total_amount),
            'shipping_name': f"{order.shipping_first_name or ''} {order.shipping_last_name or ''}".strip(),
            'shipping_address_line_1': order.shipping_address_line_1,
            'shipping_address_line_2': order.shipping_address_line_2,
            'shipping_city': order.shipping_city,
            'shipping_postcode': order.shipping_postcode,
            'shipping_country': order.shipping_country,
            'estimated_delivery': _long_date_with_weekday(order.estimated_delivery) or DEFAULT_DELIVERY_TEXT,
            'order_url': app_url(f"/customer/orders/{order.id}"),
            'payment_intent_id': order.payment_intent_id,
            'unsubscribe_url': app_url("/preferences/unsubscribe"),
        }
        return self._send(
            TEMPLATE_ORDER_CONFIRMATION,
            recipient_type='customer',
            recipient_id=self._profile_id(order.customer_email),
            recipient_email=order.customer_email,
            variables=variables,
            priority='high',
            metadata={'order_id': str(order.id)},
        )

    @_never_raises
    def notify_order_shipped(self, order: models.Order) -> Optional[Dict[str, Any]]:
        return self._notify_fulfillment(TEMPLATE_ORDER_SHIPPED, order, 'shipped')

    @_never_raises
    def notify_order_status_update(self, order: models.Order, status: str) -> Optional[Dict[str, Any]]:
        return self._notify_fulfillment(TEMPLATE_ORDER_STATUS_UPDATE, order, status)

    def _notify_fulfillment(self, template_key: str, order: models.Order, status: str):
        variables = {
            'base_url': get_app_base_url(),
            'customer_name': order.shipping_first_name or _email_local_part(order.customer_email),
            'order_number': order.order_number,
            'order_id': str(order.id),
            'status': status,
            'status_label': STATUS_LABELS.get(status, status.replace('_', ' ').capitalize()),
            'tracking_code': order.tracking_code,
            'tracking_url': order.tracking_url,
            'carrier_name': order.carrier_name,
            'order_url': app_url(f"/customer/orders/{order.id}"),
        }
        return self._send(
            template_key,
            recipient_type='customer',
            recipient_id=self._profile_id(order.customer_email),
            recipient_email=order.customer_email,
            variables=variables,
            metadata={'order_id': str(order.id), 'status': status},
        )

    # === Ledger ===

    @_never_raises
    def notify_partner_commission(
        self,
        partner: models.Partner,
        commission: models.Commission,
        order: models.Order,
        subtotal_amount: int,
    ) -> Optional[Dict[str, Any]]:
        total_commissions = commission_repo.sum_commissions(
            self.db, 'partner', partner.id, commission_type=models.COMMISSION_TYPE_PARTNER
        )
        total_referrals = customer_repo.count_referred_customers(self.db, 'PARTNER', partner.id)
        variables = {
            'base_url': get_app_base_url(),
            'partner_name': partner.display_name,
            'partner_id': str(partner.id),
            'commission_id': str(commission.id),
            'commission_amount': format_money(commission.commission_amount),
            'commission_rate': f"{float(commission.commission_rate):g}",
            'order_number': order.order_number,
            'order_amount': format_money(subtotal_amount),
            'order_date': _long_date(order.created_at),
            'customer_name': f"{order.shipping_first_name or ''} {order.shipping_last_name or ''}".strip(),
            'total_commissions': format_money(total_commissions),
            'total_referrals': str(total_referrals),
            'payout_date': _long_date(payout_date()),
            'payment_method': 'Bank Transfer',
            'dashboard_url': app_url("/partners/dashboard"),
            'unsubscribe_url': app_url("/preferences/unsubscribe"),
        }
        return self._send(
            TEMPLATE_PARTNER_COMMISSION_EARNED,
            recipient_type='partner',
            recipient_id=self._profile_id(partner.email),
            recipient_email=partner.email,
            variables=variables,
            priority='normal',
            metadata={'commission_id': str(commission.id)},
        )

    @_never_raises
    def notify_customer_credit(
        self,
        referrer: models.Customer,
        commission: models.Commission,
        referred_email: str,
        new_balance: int,
    ) -> Optional[Dict[str, Any]]:
        variables = {
            'base_url': get_app_base_url(),
            'customer_name': referrer.first_name or _email_local_part(referrer.email),
            'referred_customer_name': _email_local_part(referred_email),
            'credit_amount': format_money(commission.commission_amount),
            'total_credit_balance': format_money(new_balance),
            'shop_url': app_url("/shop"),
            'referrals_url': app_url("/customer/referrals"),
        }
        return self._send(
            TEMPLATE_CUSTOMER_CREDIT_EARNED,
            recipient_type='customer',
            recipient_id=self._profile_id(referrer.email),
            recipient_email=referrer.email,
            variables=variables,
            priority='normal',
            metadata={'commission_id': str(commission.id)},
        )

    @_never_raises
    def notify_credit_pack_purchase(
        self,
        customer: models.Customer,
        customer_email: str,
        pack_id: Optional[str],
        credits: int,
        order_credit_amount: int,
        amount_paid: int,
        previous_customization_balance: int,
        previous_order_credit: int,
        new_customization_balance: int,
    ) -> Optional[Dict[str, Any]]:
        pack = credit_repo.get_credit_pack_config(self.db, pack_id)
        self.db.refresh(customer)
        variables = {
            'base_url': get_app_base_url(),
            'customer_name': customer.first_name or _email_local_part(customer_email),
            'pack_name': pack.pack_name if pack else 'Credit Pack',
            'credits_added': credits,
            'order_credit': format_money(order_credit_amount),
            'amount_paid': format_money(amount_paid),
            'previous_customization_credits': previous_customization_balance,
            'previous_order_credit': format_money(previous_order_credit),
            'total_customization_credits': new_customization_balance,
            'total_order_credit': format_money(customer.current_credit_balance),
            'customize_url': app_url("/customize"),
            'browse_url': app_url("/browse"),
            'referrals_url': app_url("/referrals"),
            'unsubscribe_url': app_url("/preferences/unsubscribe"),
        }
        return self._send(
            TEMPLATE_CREDIT_PACK_PURCHASED,
            recipient_type='customer',
            recipient_id=self._profile_id(customer_email),
            recipient_email=customer_email,
            variables=variables,
            priority='high',
        )
