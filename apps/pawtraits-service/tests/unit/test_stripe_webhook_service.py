import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from core.db import models
from core.db.repositories import audits as audit_repo
from core.db.repositories import commissions as commission_repo
from core.db.repositories import customers as customer_repo
from core.db.repositories import orders as order_repo
from core.db.repositories import webhook_events as event_repo
from core.services.stripe_webhook_service import (
    StripeWebhookService,
    WebhookSignatureError,
    verify_and_parse,
)


@pytest.fixture
def notifications():
    return MagicMock()


@pytest.fixture
def fulfillment():
    return MagicMock()


@pytest.fixture
def service(db_session, notifications, fulfillment):
    return StripeWebhookService(db_session, notifications=notifications, fulfillment_service=fulfillment)


def _payment_intent(email="buyer@example.com", amount=5500, **metadata):
    meta = {
        "customerEmail": email,
        "shippingFirstName": "Jamie",
        "shippingLastName": "Smith",
        "shippingAddressLine1": "1 High Street",
        "shippingCity": "London",
        "shippingPostcode": "N1 1AA",
        "shippingCountry": "United Kingdom",
        "shippingCost": "500",
    }
    meta.update(metadata)
    return {
        "id": f"pi_{uuid.uuid4().hex[:20]}",
        "object": "payment_intent",
        "amount": amount,
        "currency": "gbp",
        "receipt_email": email,
        "latest_charge": "ch_123",
        "payment_method_types": ["card"],
        "metadata": meta,
    }


def _event(event_type, obj, event_id=None):
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:20]}",
        "type": event_type,
        "created": 1760000000,
        "data": {"object": obj},
    }


# === Signature verification ===

def test_verify_and_parse_accepts_signed_payload(sign_stripe_payload):
    event = _event("payment_intent.succeeded", {"id": "pi_1"})
    body, header = sign_stripe_payload(event)

    assert verify_and_parse(body.encode("utf-8"), header) == event


def test_verify_and_parse_rejects_wrong_secret(sign_stripe_payload):
    body, header = sign_stripe_payload(_event("payment_intent.succeeded", {}), secret="whsec_other")

    with pytest.raises(WebhookSignatureError, match="Webhook signature verification failed"):
        verify_and_parse(body.encode("utf-8"), header)


def test_verify_and_parse_rejects_stale_timestamp(sign_stripe_payload):
    body, header = sign_stripe_payload(_event("payment_intent.succeeded", {}), timestamp=1000)

    with pytest.raises(WebhookSignatureError):
        verify_and_parse(body.encode("utf-8"), header)


def test_verify_and_parse_requires_header():
    with pytest.raises(WebhookSignatureError, match="Missing stripe-signature header"):
        verify_and_parse(b'{"type": "x"}', None)


def test_verify_and_parse_requires_configured_secret(monkeypatch, sign_stripe_payload):
    body, header = sign_stripe_payload(_event("payment_intent.succeeded", {}))
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET")

    with pytest.raises(WebhookSignatureError):
        verify_and_parse(body.encode("utf-8"), header)


def test_skip_verification_only_in_dev_mode(monkeypatch):
    monkeypatch.setenv("STRIPE_SKIP_SIGNATURE_VERIFICATION", "true")
    with pytest.raises(WebhookSignatureError):
        verify_and_parse(b'{"type": "payment_intent.succeeded"}', "t=1,v1=unchecked")

    monkeypatch.setenv("DEV_MODE", "true")
    monkeypatch.setenv("APP_BASE_URL", "http://localhost:3000")
    event = verify_and_parse(b'{"type": "payment_intent.succeeded"}', "t=1,v1=unchecked")
    assert event["type"] == "payment_intent.succeeded"


def test_skip_verification_still_requires_header(monkeypatch):
    monkeypatch.setenv("STRIPE_SKIP_SIGNATURE_VERIFICATION", "true")
    monkeypatch.setenv("DEV_MODE", "true")
    monkeypatch.setenv("APP_BASE_URL", "http://localhost:3000")

    with pytest.raises(WebhookSignatureError, match="Missing stripe-signature header"):
        verify_and_parse(b'{"type": "payment_intent.succeeded"}', None)


def test_verify_and_parse_rejects_non_event_json(monkeypatch, sign_stripe_payload):
    body, header = sign_stripe_payload({"hello": "world"})

    with pytest.raises(WebhookSignatureError, match="Invalid webhook payload"):
        verify_and_parse(body.encode("utf-8"), header)


# === Payment succeeded ===

def test_payment_succeeded_creates_order(service, db_session, notifications, fulfillment):
    intent = _payment_intent(shippingMethodName="Standard")

    order = service.handle_payment_succeeded(intent)

    assert order.order_number.startswith("PW-")
    assert order.order_number.endswith(intent["id"][-6:])
    assert order.status == "confirmed"
    assert order.payment_status == "paid"
    assert order.currency == "GBP"
    assert order.total_amount == 5500
    assert order.shipping_amount == 500
    assert order.subtotal_amount == 5000
    assert order.shipping_city == "London"
    assert order.estimated_delivery is not None
    assert order.metadata_json["stripeChargeId"] == "ch_123"
    assert order.metadata_json["paymentMethod"] == "card"
    assert order.metadata_json["shippingMethodName"] == "Standard"
    assert order.metadata_json["isPartnerOrder"] is False

    fulfillment.dispatch_order.assert_called_once_with(
        order, 5500, intent["metadata"], receipt_email="buyer@example.com"
    )
    notifications.notify_order_confirmation.assert_called_once_with(order)
    audits = audit_repo.get_audit_logs(db_session, target_type="order", target_id=order.id)
    assert audits[0].action_type == "order_create"


def test_payment_succeeded_uses_delivery_estimate(service):
    order = service.handle_payment_succeeded(_payment_intent(shippingDeliveryEstimate="2026-11-02T00:00:00Z"))

    assert order.estimated_delivery.replace(tzinfo=None).date().isoformat() == "2026-11-02"


def test_payment_succeeded_is_idempotent_per_intent(service, db_session):
    intent = _payment_intent()

    first = service.handle_payment_succeeded(intent)
    second = service.handle_payment_succeeded(intent)

    assert first.id == second.id
    assert db_session.query(models.Order).count() == 1


def test_payment_without_email_or_shipping_is_ignored(service, db_session):
    no_email = _payment_intent()
    no_email["metadata"].pop("customerEmail")
    not_an_order = _payment_intent()
    for key in ("shippingAddressLine1",):
        not_an_order["metadata"].pop(key)

    assert service.handle_payment_succeeded(no_email) is None
    assert service.handle_payment_succeeded(not_an_order) is None
    assert db_session.query(models.Order).count() == 0


def test_order_type_without_shipping_still_creates_order(service):
    intent = _payment_intent(orderType="digital")
    intent["metadata"].pop("shippingAddressLine1")

    assert service.handle_payment_succeeded(intent) is not None


def test_partner_commission_uses_pre_discount_subtotal(service, db_session, make_partner, make_customer):
    partner = make_partner(commission_rate=20)
    customer = make_customer(referral_type="PARTNER", referrer_id=partner.id, referral_code_used="HAPPYPAWS")
    intent = _payment_intent(
        email=customer.email, amount=4500, referralCode="HAPPYPAWS", referralDiscount="500", shippingCost="500"
    )

    order = service.handle_payment_succeeded(intent)

    assert order.discount_amount == 500
    assert order.referral_code == "HAPPYPAWS"
    commissions = commission_repo.list_commissions(db_session, recipient_id=partner.id)
    assert len(commissions) == 1
    # (4500 + 500 discount - 500 shipping) * 20%
    assert commissions[0].order_amount == 4500
    assert commissions[0].commission_amount == 900


def test_credit_redemption_reduces_balance(service, db_session, make_customer):
    customer = make_customer(current_credit_balance=1000)

    order = service.handle_payment_succeeded(_payment_intent(email=customer.email, rewardRedemption="300"))

    assert order.credit_applied == 300
    assert customer_repo.get_customer(db_session, customer.id).current_credit_balance == 700


def test_failing_step_does_not_block_later_steps(service, db_session, notifications, fulfillment):
    fulfillment.dispatch_order.side_effect = RuntimeError("gelato down")

    order = service.handle_payment_succeeded(_payment_intent())

    assert order is not None
    notifications.notify_order_confirmation.assert_called_once()
    assert order_repo.get_order(db_session, order.id) is not None


def test_partner_profile_marks_partner_order(service, make_profile):
    profile = make_profile(user_type="partner")

    order = service.handle_payment_succeeded(_payment_intent(email=profile.email))

    assert order.user_profile_id == profile.id
    assert order.metadata_json["userType"] == "partner"
    assert order.metadata_json["isPartnerOrder"] is True


def test_credit_pack_payment_routes_to_credit_service(db_session, notifications, fulfillment):
    credits = MagicMock()
    service = StripeWebhookService(
        db_session, notifications=notifications, credit_service=credits, fulfillment_service=fulfillment
    )
    intent = _payment_intent(purchaseType="customization_credits", credits="10", packId="pack_10")

    assert service.handle_payment_succeeded(intent) is None

    credits.process_credit_pack_purchase.assert_called_once_with(
        payment_reference=intent["id"],
        amount_paid=5500,
        metadata=intent["metadata"],
        fallback_email="buyer@example.com",
    )
    fulfillment.dispatch_order.assert_not_called()
    assert db_session.query(models.Order).count() == 0


# === Other events ===

@pytest.mark.parametrize(
    "event_type,expected",
    [
        ("payment_intent.payment_failed", "failed"),
        ("payment_intent.canceled", "canceled"),
        ("payment_intent.processing", "processing"),
    ],
)
def test_payment_status_events(service, db_session, make_order, event_type, expected):
    order = make_order()

    service.handle_event(_event(event_type, {"id": order.payment_intent_id, "last_payment_error": {"message": "declined"}}))

    db_session.refresh(order)
    assert order.payment_status == expected


def test_dispute_marks_order_and_audits(service, db_session, make_order):
    order = make_order()

    service.handle_event(_event("charge.dispute.created", {
        "id": "dp_1", "payment_intent": order.payment_intent_id, "amount": 5500, "reason": "fraudulent",
    }))

    db_session.refresh(order)
    assert order.payment_status == "disputed"
    audits = audit_repo.get_audit_logs(db_session, action_type="payment_disputed")
    assert audits[0].target_id == order.id
    assert audits[0].reason == "fraudulent"


def test_checkout_session_credit_pack(db_session, notifications):
    credits = MagicMock()
    service = StripeWebhookService(db_session, notifications=notifications, credit_service=credits)
    session = {
        "id": "cs_1",
        "payment_intent": None,
        "amount_total": 999,
        "customer_details": {"email": "pack@example.com"},
        "metadata": {"purchaseType": "customization_credits", "credits": "5"},
    }

    service.handle_checkout_session_completed(session)
    service.handle_checkout_session_completed({"id": "cs_2", "metadata": {}})

    credits.process_credit_pack_purchase.assert_called_once_with(
        payment_reference="cs_1",
        amount_paid=999,
        metadata=session["metadata"],
        fallback_email="pack@example.com",
        require_pack_id=False,
    )


# === Event ledger ===

def test_duplicate_event_is_acknowledged_once(service, db_session, fulfillment):
    event = _event("payment_intent.succeeded", _payment_intent(), event_id="evt_dupe")

    first = service.handle_event(event)
    second = service.handle_event(event)

    assert first == {"received": True}
    assert second == {"received": True, "duplicate": True}
    assert db_session.query(models.Order).count() == 1
    assert fulfillment.dispatch_order.call_count == 1
    assert event_repo.get_stripe_event(db_session, "evt_dupe").status == "processed"


def test_unhandled_event_type_is_acknowledged(service, db_session):
    assert service.handle_event(_event("customer.created", {"id": "cus_1"}, event_id="evt_other")) == {"received": True}
    assert event_repo.get_stripe_event(db_session, "evt_other").status == "processed"


def test_failed_event_is_recorded_and_retried(service, db_session):
    def boom(payment_intent):
        raise RuntimeError("database unavailable")

    service.handle_payment_failed = boom
    event = _event("payment_intent.payment_failed", {"id": "pi_x"}, event_id="evt_fail")

    with pytest.raises(RuntimeError):
        service.handle_event(event)
    record = event_repo.get_stripe_event(db_session, "evt_fail")
    assert record.status == "failed"
    assert record.error_message == "database unavailable"

    del service.handle_payment_failed
    assert service.handle_event(event) == {"received": True}
    assert event_repo.get_stripe_event(db_session, "evt_fail").status == "processed"


def _stuck_event(db_session, event_id, age):
    record = models.StripeWebhookEvent(
        event_id=event_id,
        event_type="payment_intent.succeeded",
        status="processing",
        received_at=datetime.now(timezone.utc) - age,
    )
    db_session.add(record)
    db_session.commit()
    return record


def test_abandoned_processing_event_is_reclaimed(service, db_session):
    _stuck_event(db_session, "evt_stuck", event_repo.PROCESSING_LEASE + timedelta(minutes=1))
    event = _event("payment_intent.succeeded", _payment_intent(), event_id="evt_stuck")

    assert service.handle_event(event) == {"received": True}
    assert db_session.query(models.Order).count() == 1
    assert event_repo.get_stripe_event(db_session, "evt_stuck").status == "processed"


def test_in_flight_processing_event_is_a_duplicate(service, db_session):
    _stuck_event(db_session, "evt_busy", timedelta(seconds=10))
    event = _event("payment_intent.succeeded", _payment_intent(), event_id="evt_busy")

    assert service.handle_event(event) == {"received": True, "duplicate": True}
    assert db_session.query(models.Order).count() == 0
    assert event_repo.get_stripe_event(db_session, "evt_busy").status == "processing"
