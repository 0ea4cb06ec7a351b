"""
Referral commission ledger.

Turns a paid order into at most one ledger entry:

- a *partner commission* (pending, paid out later) when the buyer was
  referred by a partner: the initial rate applies to the buyer's first
  order, the lifetime rate to every later one;
- a *customer credit* (auto-approved, added to the referrer's spendable
  balance) when the buyer was referred by another customer.

Rates are percentages and amounts are pence, rounded half-up.
"""
from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core import audit
from core.audit import AuditAction
from core.db import models
from core.db.repositories import commissions as commission_repo
from core.db.repositories import customers as customer_repo
from core.db.repositories import orders as order_repo
from core.utils.feature_flags import referral_commissions_enabled
from core.utils.money import percentage_of

logger = logging.getLogger(__name__)

CUSTOMER_CREDIT_RATE = Decimal('10')
DEFAULT_PARTNER_RATE = Decimal('10')

REFERRAL_PARTNER = 'PARTNER'
REFERRAL_CUSTOMER = 'CUSTOMER'
REFERRAL_ORGANIC = 'ORGANIC'

ADMIN_SETTABLE_STATUSES = ('pending', 'approved', 'paid', 'disputed')


class CommissionService:
    def __init__(self, db: Session, notifications=None):
        self.db = db
        if notifications is None:
            from core.services.notification_service import NotificationService
            notifications = NotificationService(db)
        self.notifications = notifications

    # === Order commissions ===

    def process_order_commissions(
        self,
        order: models.Order,
        ordering_profile: Optional[models.UserProfile],
        customer_email: str,
        subtotal_amount: int,
        metadata: Dict[str, Any],
    ) -> List[models.Commission]:
        """Create the referral commission or credit owed for ``order``.

        ``subtotal_amount`` is the pre-discount product subtotal in pence.
        """
        if not referral_commissions_enabled():
            logger.info("referral_commissions_disabled order=%s", order.order_number)
            return []

        if ordering_profile is not None and ordering_profile.user_type == 'partner':
            logger.info("partner_order_no_commission order=%s", order.order_number)
            return []

        referral_code = metadata.get('referralCode')
        referral_type = (metadata.get('referralType') or '').lower()
        if referral_code and referral_type:
            return self._process_metadata_referral(order, customer_email, subtotal_amount, referral_code, referral_type)

        customer = customer_repo.get_customer_by_email(self.db, customer_email)
        if not customer:
            logger.info("no_customer_record email=%s order=%s", customer_email, order.order_number)
            return []
        if not customer.referral_type or customer.referral_type == REFERRAL_ORGANIC or not customer.referrer_id:
            logger.info("organic_customer_no_commission customer=%s", customer.id)
            return []

        created: List[models.Commission] = []
        if customer.referral_type == REFERRAL_PARTNER:
            commission = self._create_partner_commission(order, customer, subtotal_amount)
            if commission:
                created.append(commission)
        elif customer.referral_type == REFERRAL_CUSTOMER:
            referrer = customer_repo.get_customer(self.db, customer.referrer_id)
            if not referrer:
                logger.error("referring_customer_missing referrer_id=%s", customer.referrer_id)
            else:
                created.append(self._create_customer_credit(
                    order,
                    referrer,
                    customer_email,
                    subtotal_amount,
                    referral_code=customer.referral_code_used,
                    created_via='webhook',
                    referred_customer=customer,
                ))
        else:
            logger.warning("unknown_referral_type type=%s customer=%s", customer.referral_type, customer.id)

        if created and customer.referral_order_id is None:
            customer_repo.set_referral_order(self.db, customer, order.id)
        return created

    def _process_metadata_referral(
        self,
        order: models.Order,
        customer_email: str,
        subtotal_amount: int,
        referral_code: str,
        referral_type: str,
    ) -> List[models.Commission]:
        if referral_type == 'partner':
            logger.warning(
                "metadata_partner_referral_ignored code=%s order=%s", referral_code, order.order_number
            )
            return []
        if referral_type != 'customer':
            logger.warning("unknown_metadata_referral_type type=%s", referral_type)
            return []

        referrer = customer_repo.get_customer_by_referral_code(self.db, referral_code)
        if not referrer:
            logger.error("referral_code_not_found code=%s order=%s", referral_code.upper(), order.order_number)
            return []
        credit = self._create_customer_credit(
            order,
            referrer,
            customer_email,
            subtotal_amount,
            referral_code=referral_code.upper(),
            created_via='webhook_metadata',
        )
        return [credit]

    def _create_partner_commission(
        self,
        order: models.Order,
        customer: models.Customer,
        subtotal_amount: int,
    ) -> Optional[models.Commission]:
        partner = customer_repo.get_partner(self.db, customer.referrer_id)
        if not partner:
            logger.error("referring_partner_missing partner_id=%s", customer.referrer_id)
            return None

        is_first_order = order_repo.count_other_orders_for_email(self.db, customer.email, order.id) == 0
        if is_first_order:
            rate = Decimal(partner.commission_rate or DEFAULT_PARTNER_RATE)
        else:
            rate = Decimal(partner.lifetime_commission_rate or DEFAULT_PARTNER_RATE)
        amount = percentage_of(subtotal_amount, rate)
        commission_kind = 'initial' if is_first_order else 'lifetime'

        commission = commission_repo.create_commission(
            self.db,
            order_id=order.id,
            order_amount=subtotal_amount,
            recipient_type='partner',
            recipient_id=partner.id,
            recipient_email=partner.email,
            referrer_type='partner',
            referrer_id=partner.id,
            referral_code=customer.referral_code_used,
            commission_type=models.COMMISSION_TYPE_PARTNER,
            commission_rate=rate,
            commission_amount=amount,
            status='pending',
            metadata={
                'customer_id': str(customer.id),
                'customer_email': customer.email,
                'referral_type': REFERRAL_PARTNER,
                'commission_type': commission_kind,
                'created_via': 'webhook',
            },
        )
        logger.info(
            "partner_commission_created partner=%s order=%s rate=%s amount=%d kind=%s",
            partner.id, order.order_number, rate, amount, commission_kind,
        )
        audit.log_commission(
            self.db,
            commission_id=commission.id,
            action=AuditAction.COMMISSION_CREATE,
            metadata={'order_id': order.id, 'amount': amount, 'rate': rate, 'kind': commission_kind},
        )
        self.notifications.notify_partner_commission(partner, commission, order, subtotal_amount)
        return commission

    def _create_customer_credit(
        self,
        order: models.Order,
        referrer: models.Customer,
        customer_email: str,
        subtotal_amount: int,
        referral_code: Optional[str],
        created_via: str,
        referred_customer: Optional[models.Customer] = None,
    ) -> models.Commission:
        amount = percentage_of(subtotal_amount, CUSTOMER_CREDIT_RATE)
        metadata = {
            'referred_customer_email': customer_email,
            'referral_type': REFERRAL_CUSTOMER,
            'created_via': created_via,
        }
        if referred_customer is not None:
            metadata['customer_id'] = str(referred_customer.id)

        credit = commission_repo.create_commission(
            self.db,
            order_id=order.id,
            order_amount=subtotal_amount,
            recipient_type='customer',
            recipient_id=referrer.id,
            recipient_email=referrer.email,
            referrer_type='customer',
            referrer_id=referrer.id,
            referral_code=referral_code,
            commission_type=models.COMMISSION_TYPE_CUSTOMER_CREDIT,
            commission_rate=CUSTOMER_CREDIT_RATE,
            commission_amount=amount,
            status='approved',
            metadata=metadata,
        )
        new_balance = customer_repo.adjust_credit_balance(self.db, referrer.id, amount)
        logger.info(
            "customer_credit_granted referrer=%s order=%s amount=%d new_balance=%s",
            referrer.id, order.order_number, amount, new_balance,
        )
        audit.log_customer(
            self.db,
            customer_id=referrer.id,
            action=AuditAction.CREDIT_GRANT,
            metadata={'commission_id': credit.id, 'order_id': order.id, 'amount': amount},
        )
        self.notifications.notify_customer_credit(referrer, credit, customer_email, new_balance or 0)
        return credit

    # === Admin / dashboard ===

    def update_status(self, commission_id: uuid.UUID, status: str, actor: str) -> Optional[models.Commission]:
        if status not in ADMIN_SETTABLE_STATUSES:
            raise ValueError(f"Invalid commission status: {status}")
        commission = commission_repo.get_commission(self.db, commission_id)
        if not commission:
            return None
        previous = commission.status
        commission = commission_repo.update_commission_status(self.db, commission, status)
        audit.log_commission(
            self.db,
            commission_id=commission.id,
            action=AuditAction.COMMISSION_STATUS_CHANGE,
            actor=actor,
            metadata={'from': previous, 'to': status},
        )
        return commission

    def partner_summary(self, partner_id: uuid.UUID, status_filter: Optional[str] = None) -> Dict[str, Any]:
        """Totals across all of a partner's commissions plus the filtered list.

        ``status_filter`` is 'paid', 'unpaid' or None.
        """
        rows = commission_repo.list_commissions(
            self.db,
            recipient_type='partner',
            recipient_id=partner_id,
            commission_type=models.COMMISSION_TYPE_PARTNER,
            limit=None,
        )
        paid = [c for c in rows if c.status == 'paid']
        unpaid = [c for c in rows if c.status != 'paid']
        kinds = [(c.metadata_json or {}).get('commission_type') for c in rows]
        summary = {
            'total_commissions': len(rows),
            'paid_commissions': len(paid),
            'unpaid_commissions': len(unpaid),
            'total_amount': sum(c.commission_amount for c in rows),
            'paid_amount': sum(c.commission_amount for c in paid),
            'unpaid_amount': sum(c.commission_amount for c in unpaid),
            'initial_commissions': kinds.count('initial'),
            'lifetime_commissions': kinds.count('lifetime'),
        }
        if status_filter == 'paid':
            listed = paid
        elif status_filter == 'unpaid':
            listed = unpaid
        else:
            listed = rows
        return {'partner_id': partner_id, 'summary': summary, 'commissions': listed}
