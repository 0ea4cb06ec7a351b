"""
Customer credit bookkeeping: redemption at checkout, credit pack purchases
and balance summaries.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core import audit
from core.audit import AuditAction
from core.db import models
from core.db.repositories import commissions as commission_repo
from core.db.repositories import credits as credit_repo
from core.db.repositories import customers as customer_repo
from core.utils.money import parse_pence

logger = logging.getLogger(__name__)


def _parse_uuid(value) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class CreditService:
    def __init__(self, db: Session, notifications=None):
        self.db = db
        if notifications is None:
            from core.services.notification_service import NotificationService
            notifications = NotificationService(db)
        self.notifications = notifications

    # === Redemption ===

    def redeem_credit(self, order: models.Order, customer_email: str, amount: int) -> bool:
        """Deduct ``amount`` pence of order credit and mark earned credits redeemed.

        Credits are consumed oldest first until ``amount`` is covered. A
        balance that would go negative is logged but still applied, since
        the payment has already been taken.
        """
        customer = customer_repo.get_customer_by_email(self.db, customer_email)
        if not customer:
            logger.error("credit_redeem_customer_missing email=%s order=%s", customer_email, order.order_number)
            return False

        if customer.current_credit_balance < amount:
            logger.warning(
                "credit_redeem_exceeds_balance customer=%s balance=%d amount=%d",
                customer.id, customer.current_credit_balance, amount,
            )
        new_balance = customer_repo.adjust_credit_balance(self.db, customer.id, -amount)

        redeemable = commission_repo.list_redeemable_credits(self.db, customer.id)
        if not redeemable:
            logger.warning("credit_redeem_no_credit_rows customer=%s order=%s", customer.id, order.order_number)

        redeemed_ids = []
        covered = 0
        redeemed_date = datetime.now(timezone.utc).isoformat()
        for credit in redeemable:
            if covered >= amount:
                break
            credit.status = 'redeemed'
            credit.merge_metadata(
                redeemed_on_order_id=str(order.id),
                redeemed_on_order_number=order.order_number,
                redeemed_date=redeemed_date,
            )
            covered += credit.commission_amount
            redeemed_ids.append(credit.id)
        self.db.commit()

        logger.info(
            "credit_redeemed customer=%s order=%s amount=%d new_balance=%s rows=%d",
            customer.id, order.order_number, amount, new_balance, len(redeemed_ids),
        )
        audit.log_customer(
            self.db,
            customer_id=customer.id,
            action=AuditAction.CREDIT_REDEEM,
            metadata={'order_id': order.id, 'amount': amount, 'new_balance': new_balance, 'commission_ids': redeemed_ids},
        )
        return True

    # === Credit packs ===

    def process_credit_pack_purchase(
        self,
        payment_reference: str,
        amount_paid: int,
        metadata: Dict[str, Any],
        fallback_email: Optional[str] = None,
        require_pack_id: bool = True,
    ) -> bool:
        """Grant the customization credits (and optional order credit) bought in a pack.

        Idempotent per ``payment_reference``: a repeated reference is skipped.
        """
        customer_id = _parse_uuid(metadata.get('customerId'))
        profile_id = _parse_uuid(metadata.get('userProfileId'))
        credits = parse_pence(metadata.get('credits'))
        pack_id = metadata.get('packId')
        order_credit_amount = parse_pence(metadata.get('orderCreditAmount'))

        if not customer_id or not profile_id or credits <= 0 or (require_pack_id and not pack_id):
            logger.error(
                "credit_pack_metadata_invalid reference=%s keys=%s", payment_reference, sorted(metadata.keys())
            )
            return False

        if credit_repo.get_purchase_by_reference(self.db, payment_reference):
            logger.info("credit_pack_already_processed reference=%s", payment_reference)
            return False

        customer = customer_repo.get_customer(self.db, customer_id)
        if not customer:
            logger.error("credit_pack_customer_missing customer=%s", customer_id)
            return False
        customer_email = metadata.get('customerEmail') or fallback_email or customer.email

        existing_credits = credit_repo.get_customization_credits(self.db, profile_id)
        previous_customization = existing_credits.credits_remaining if existing_credits else 0
        previous_order_credit = customer.current_credit_balance

        # Claim the reference first so a concurrent redelivery cannot double-grant.
        try:
            purchase = credit_repo.record_credit_pack_purchase(
                self.db,
                customer_id=customer_id,
                user_profile_id=profile_id,
                pack_id=pack_id,
                credits_purchased=credits,
                amount_paid=amount_paid,
                order_credit_granted=order_credit_amount,
                payment_reference=payment_reference,
            )
        except IntegrityError:
            self.db.rollback()
            logger.info("credit_pack_already_processed reference=%s", payment_reference)
            return False

        if not credit_repo.add_customization_credits(self.db, profile_id, credits, amount_paid):
            logger.error("customization_credits_row_missing profile=%s reference=%s", profile_id, payment_reference)
            self.db.delete(purchase)
            self.db.commit()
            return False

        if order_credit_amount > 0:
            try:
                commission_repo.create_commission(
                    self.db,
                    order_id=None,
                    order_amount=amount_paid,
                    recipient_type='customer',
                    recipient_id=customer.id,
                    recipient_email=customer_email,
                    commission_type=models.COMMISSION_TYPE_CUSTOMER_CREDIT,
                    commission_rate=0,
                    commission_amount=order_credit_amount,
                    status='approved',
                    metadata={
                        'source': 'credit_pack_purchase',
                        'pack_id': pack_id,
                        'pack_price': amount_paid,
                        'credits_purchased': credits,
                        'payment_reference': payment_reference,
                    },
                )
            except Exception:
                self.db.rollback()
                logger.exception("credit_pack_commission_failed customer=%s", customer.id)
            # The balance is what checkout spends, so grant it even without a ledger row.
            customer_repo.adjust_credit_balance(self.db, customer.id, order_credit_amount)

        new_customization = previous_customization + credits
        logger.info(
            "credit_pack_processed customer=%s pack=%s credits=%d order_credit=%d reference=%s",
            customer.id, pack_id, credits, order_credit_amount, payment_reference,
        )
        audit.log_customer(
            self.db,
            customer_id=customer.id,
            action=AuditAction.CREDIT_PACK_PURCHASE,
            metadata={
                'pack_id': pack_id,
                'credits': credits,
                'order_credit': order_credit_amount,
                'amount_paid': amount_paid,
                'payment_reference': payment_reference,
            },
        )
        self.notifications.notify_credit_pack_purchase(
            customer=customer,
            customer_email=customer_email,
            pack_id=pack_id,
            credits=credits,
            order_credit_amount=order_credit_amount,
            amount_paid=amount_paid,
            previous_customization_balance=previous_customization,
            previous_order_credit=previous_order_credit,
            new_customization_balance=new_customization,
        )
        return True

    # === Summaries ===

    def customer_summary(self, customer_id: uuid.UUID) -> Optional[Dict[str, Any]]:
        customer = customer_repo.get_customer(self.db, customer_id)
        if not customer:
            return None
        profile = (
            self.db.query(models.UserProfile)
            .filter(models.UserProfile.customer_id == customer.id)
            .first()
        ) or customer_repo.get_user_profile_by_email(self.db, customer.email)
        credits_row = credit_repo.get_customization_credits(self.db, profile.id) if profile else None
        if credits_row:
            customization = {
                'credits_remaining': credits_row.credits_remaining,
                'credits_purchased': credits_row.credits_purchased,
                'credits_used': credits_row.credits_used,
                'total_generations': credits_row.total_generations,
                'total_spent_amount': credits_row.total_spent_amount,
                'last_purchase_date': credits_row.last_purchase_date,
            }
        else:
            customization = {
                'credits_remaining': models.FREE_CUSTOMIZATION_CREDITS,
                'credits_purchased': 0,
                'credits_used': 0,
                'total_generations': 0,
                'total_spent_amount': 0,
                'last_purchase_date': None,
            }
        return {
            'customer_id': customer.id,
            'email': customer.email,
            'current_credit_balance': customer.current_credit_balance,
            'available_credits_earned': commission_repo.sum_commissions(
                self.db, 'customer', customer.id,
                commission_type=models.COMMISSION_TYPE_CUSTOMER_CREDIT,
                statuses=['approved', 'paid'],
            ),
            'redeemed_credits': commission_repo.sum_commissions(
                self.db, 'customer', customer.id,
                commission_type=models.COMMISSION_TYPE_CUSTOMER_CREDIT,
                statuses=['redeemed'],
            ),
            'customization_credits': customization,
        }
