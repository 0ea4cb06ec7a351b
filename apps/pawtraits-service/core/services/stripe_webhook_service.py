"""
Stripe webhook processing.

Verifies the signed payload, records the event id so redeliveries are
acknowledged without side effects, and dispatches each event type. The
payment-succeeded flow creates the order and then runs credit redemption,
referral commissions, Gelato fulfillment and the confirmation email as
independent steps: one failing step is logged and the rest still run,
because the customer has already been charged.
"""
from __future__ import annotations

import json
import logging
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core import audit
from core.audit import AuditAction
from core.db import models
from core.db.repositories import customers as customer_repo
from core.db.repositories import orders as order_repo
from core.db.repositories import webhook_events as event_repo
from core.utils.money import parse_pence
from core.utils.runtime import dev_mode_active

logger = logging.getLogger(__name__)

PURCHASE_TYPE_CREDITS = 'customization_credits'
DEFAULT_DELIVERY_DAYS = 7


class WebhookSignatureError(Exception):
    """Raised when a Stripe payload cannot be authenticated."""


def _skip_signature_verification() -> bool:
    if os.getenv('STRIPE_SKIP_SIGNATURE_VERIFICATION', 'false').lower() != 'true':
        return False
    if not dev_mode_active():
        logger.warning("stripe_skip_signature_ignored reason=dev_mode_inactive")
        return False
    return True


def verify_and_parse(payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
    """Authenticate a webhook body and return the decoded event."""
    try:
        body = payload.decode('utf-8') if isinstance(payload, bytes) else payload
    except UnicodeDecodeError as exc:
        raise WebhookSignatureError('Invalid webhook payload') from exc
    if not sig_header:
        raise WebhookSignatureError('Missing stripe-signature header')
    if _skip_signature_verification():
        logger.warning("stripe_signature_verification_skipped")
    else:
        secret = os.getenv('STRIPE_WEBHOOK_SECRET')
        if not secret:
            logger.error("stripe_webhook_secret_missing")
            raise WebhookSignatureError('Webhook signature verification failed')
        try:
            stripe.WebhookSignature.verify_header(body, sig_header, secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE)
        except stripe.SignatureVerificationError as exc:
            logger.warning("stripe_signature_invalid detail=%s", exc)
            raise WebhookSignatureError('Webhook signature verification failed') from exc
    try:
        event = json.loads(body)
    except ValueError as exc:
        raise WebhookSignatureError('Invalid webhook payload') from exc
    if not isinstance(event, dict) or 'type' not in event:
        raise WebhookSignatureError('Invalid webhook payload')
    return event


def _parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        logger.warning("invalid_delivery_estimate value=%s", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class StripeWebhookService:
    def __init__(
        self,
        db: Session,
        notifications=None,
        commission_service=None,
        credit_service=None,
        fulfillment_service=None,
    ):
        self.db = db
        if notifications is None:
            from core.services.notification_service import NotificationService
            notifications = NotificationService(db)
        self.notifications = notifications
        if commission_service is None:
            from core.services.commission_service import CommissionService
            commission_service = CommissionService(db, notifications=notifications)
        self.commissions = commission_service
        if credit_service is None:
            from core.services.credit_service import CreditService
            credit_service = CreditService(db, notifications=notifications)
        self.credits = credit_service
        self._fulfillment = fulfillment_service

    @property
    def fulfillment(self):
        if self._fulfillment is None:
            from core.services.fulfillment_service import FulfillmentService
            self._fulfillment = FulfillmentService(self.db)
        return self._fulfillment

    def _handlers(self) -> Dict[str, Callable[[Dict[str, Any]], None]]:
        return {
            'payment_intent.succeeded': self.handle_payment_succeeded,
            'payment_intent.payment_failed': self.handle_payment_failed,
            'payment_intent.canceled': self.handle_payment_canceled,
            'payment_intent.processing': self.handle_payment_processing,
            'charge.dispute.created': self.handle_dispute_created,
            'checkout.session.completed': self.handle_checkout_session_completed,
        }

    def handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Process a verified event exactly once. Returns the response body."""
        event_id = event.get('id')
        event_type = event.get('type')
        logger.info("stripe_event_received id=%s type=%s created=%s", event_id, event_type, event.get('created'))

        record, duplicate = event_repo.claim_stripe_event(self.db, event_id, event_type)
        if duplicate:
            logger.info("stripe_event_duplicate id=%s status=%s", event_id, record.status if record else None)
            return {'received': True, 'duplicate': True}

        handler = self._handlers().get(event_type)
        try:
            if handler is None:
                logger.info("Unhandled event type: %s", event_type)
            else:
                handler(event.get('data', {}).get('object') or {})
        except Exception as exc:
            self.db.rollback()
            event_repo.fail_stripe_event(self.db, record, str(exc))
            raise
        event_repo.complete_stripe_event(self.db, record)
        return {'received': True}

    # === Payment intents ===

    def _run_step(self, name: str, order: models.Order, func: Callable[[], Any]) -> None:
        try:
            func()
        except Exception:
            self.db.rollback()
            logger.exception("order_step_failed step=%s order=%s", name, order.order_number)

    def handle_payment_succeeded(self, payment_intent: Dict[str, Any]) -> Optional[models.Order]:
        metadata = payment_intent.get('metadata') or {}
        logger.info(
            "payment_succeeded id=%s amount=%s currency=%s",
            payment_intent.get('id'), payment_intent.get('amount'), payment_intent.get('currency'),
        )

        if metadata.get('purchaseType') == PURCHASE_TYPE_CREDITS:
            self.credits.process_credit_pack_purchase(
                payment_reference=payment_intent['id'],
                amount_paid=payment_intent.get('amount') or 0,
                metadata=metadata,
                fallback_email=payment_intent.get('receipt_email'),
            )
            return None

        customer_email = metadata.get('customerEmail')
        if not customer_email:
            logger.error("payment_missing_customer_email id=%s", payment_intent.get('id'))
            return None

        has_shipping = metadata.get('shippingAddress') or metadata.get('shippingAddressLine1')
        if not has_shipping and not metadata.get('orderType'):
            logger.warning("payment_not_an_order id=%s reason=no_shipping_or_order_type", payment_intent.get('id'))
            return None

        existing = order_repo.get_order_by_payment_intent(self.db, payment_intent['id'])
        if existing:
            logger.info("order_exists_for_payment id=%s order=%s", payment_intent['id'], existing.order_number)
            return existing

        amount = payment_intent.get('amount') or 0
        shipping_cost = parse_pence(metadata.get('shippingCost'))
        referral_discount = parse_pence(metadata.get('referralDiscount'))
        credit_applied = parse_pence(metadata.get('rewardRedemption'))
        # Partners earn on what the goods cost before referral discount and credit.
        pre_discount_subtotal = amount + referral_discount + credit_applied - shipping_cost
        subtotal_amount = amount - shipping_cost

        profile = customer_repo.get_user_profile_by_email(self.db, customer_email)
        order = self._create_order(payment_intent, metadata, profile, amount, shipping_cost,
                                   referral_discount, credit_applied, subtotal_amount)
        if order is None:
            return None

        if credit_applied > 0:
            self._run_step('credit_redemption', order,
                           lambda: self.credits.redeem_credit(order, customer_email, credit_applied))
        self._run_step('commissions', order, lambda: self.commissions.process_order_commissions(
            order, profile, customer_email, pre_discount_subtotal, metadata))
        self._run_step('fulfillment', order, lambda: self.fulfillment.dispatch_order(
            order, amount, metadata, receipt_email=payment_intent.get('receipt_email')))
        self._run_step('confirmation_email', order, lambda: self.notifications.notify_order_confirmation(order))

        audit.log_order(
            self.db,
            order_id=order.id,
            action=AuditAction.ORDER_CREATE,
            metadata={
                'order_number': order.order_number,
                'payment_intent_id': payment_intent['id'],
                'total_amount': amount,
                'pre_discount_subtotal': pre_discount_subtotal,
            },
        )
        return order

    def _create_order(self, payment_intent, metadata, profile, amount, shipping_cost,
                      referral_discount, credit_applied, subtotal_amount) -> Optional[models.Order]:
        payment_intent_id = payment_intent['id']
        referral_code = metadata.get('referralCode')
        method_types = payment_intent.get('payment_method_types') or []
        user_type = profile.user_type if profile else 'customer'
        estimated_delivery = _parse_iso_datetime(metadata.get('shippingDeliveryEstimate')) or (
            datetime.now(timezone.utc) + timedelta(days=DEFAULT_DELIVERY_DAYS)
        )
        try:
            order = order_repo.create_order(
                self.db,
                order_number=f"PW-{int(time.time() * 1000)}-{payment_intent_id[-6:]}",
                status='confirmed',
                customer_email=metadata['customerEmail'],
                user_profile_id=profile.id if profile else None,
                shipping_first_name=metadata.get('shippingFirstName') or '',
                shipping_last_name=metadata.get('shippingLastName') or '',
                shipping_address_line_1=metadata.get('shippingAddressLine1') or metadata.get('shippingAddress') or '',
                shipping_address_line_2=metadata.get('shippingAddressLine2') or None,
                shipping_city=metadata.get('shippingCity') or '',
                shipping_postcode=metadata.get('shippingPostcode') or '',
                shipping_country=metadata.get('shippingCountry') or 'United Kingdom',
                subtotal_amount=subtotal_amount,
                discount_amount=referral_discount,
                referral_code=referral_code if referral_discount > 0 and referral_code else None,
                credit_applied=credit_applied,
                shipping_amount=shipping_cost,
                total_amount=amount,
                currency=(payment_intent.get('currency') or 'gbp').upper(),
                estimated_delivery=estimated_delivery,
                payment_intent_id=payment_intent_id,
                payment_status='paid',
                metadata={
                    'stripePaymentIntentId': payment_intent_id,
                    'stripeChargeId': payment_intent.get('latest_charge'),
                    'referralCode': referral_code,
                    'paymentMethod': method_types[0] if method_types else 'card',
                    'shippingMethodUid': metadata.get('shippingMethodUid'),
                    'shippingMethodName': metadata.get('shippingMethodName'),
                    'userType': user_type,
                    'isPartnerOrder': user_type == 'partner' or str(metadata.get('isPartnerOrder', '')).lower() == 'true',
                },
            )
        except IntegrityError:
            self.db.rollback()
            logger.info("order_exists_for_payment id=%s reason=concurrent_insert", payment_intent_id)
            return None

        logger.info(
            "order_created id=%s number=%s email=%s total=%d user_type=%s",
            order.id, order.order_number, order.customer_email, order.total_amount, user_type,
        )
        return order

    def _set_payment_status(self, payment_intent_id: Optional[str], status: str) -> Optional[models.Order]:
        if not payment_intent_id:
            return None
        order = order_repo.get_order_by_payment_intent(self.db, payment_intent_id)
        if order is None:
            return None
        return order_repo.update_order(self.db, order, payment_status=status)

    def handle_payment_failed(self, payment_intent: Dict[str, Any]) -> None:
        last_error = payment_intent.get('last_payment_error') or {}
        logger.warning(
            "payment_failed id=%s amount=%s currency=%s error=%s",
            payment_intent.get('id'), payment_intent.get('amount'), payment_intent.get('currency'),
            last_error.get('message') if isinstance(last_error, dict) else last_error,
        )
        self._set_payment_status(payment_intent.get('id'), 'failed')

    def handle_payment_canceled(self, payment_intent: Dict[str, Any]) -> None:
        logger.info("payment_canceled id=%s", payment_intent.get('id'))
        self._set_payment_status(payment_intent.get('id'), 'canceled')

    def handle_payment_processing(self, payment_intent: Dict[str, Any]) -> None:
        logger.info("payment_processing id=%s", payment_intent.get('id'))
        self._set_payment_status(payment_intent.get('id'), 'processing')

    # === Disputes ===

    def handle_dispute_created(self, dispute: Dict[str, Any]) -> None:
        logger.warning(
            "dispute_created id=%s amount=%s currency=%s reason=%s status=%s",
            dispute.get('id'), dispute.get('amount'), dispute.get('currency'),
            dispute.get('reason'), dispute.get('status'),
        )
        order = self._set_payment_status(dispute.get('payment_intent'), 'disputed')
        if order is None:
            logger.warning("dispute_order_not_found payment_intent=%s", dispute.get('payment_intent'))
            return
        audit.log_order(
            self.db,
            order_id=order.id,
            action=AuditAction.PAYMENT_DISPUTED,
            reason=dispute.get('reason'),
            metadata={'dispute_id': dispute.get('id'), 'amount': dispute.get('amount'), 'status': dispute.get('status')},
        )

    # === Checkout sessions ===

    def handle_checkout_session_completed(self, session: Dict[str, Any]) -> None:
        metadata = session.get('metadata') or {}
        if metadata.get('purchaseType') != PURCHASE_TYPE_CREDITS:
            logger.info("checkout_session_ignored id=%s", session.get('id'))
            return
        customer_details = session.get('customer_details') or {}
        self.credits.process_credit_pack_purchase(
            payment_reference=session.get('payment_intent') or session.get('id'),
            amount_paid=session.get('amount_total') or 0,
            metadata=metadata,
            fallback_email=session.get('customer_email') or customer_details.get('email'),
            require_pack_id=False,
        )
