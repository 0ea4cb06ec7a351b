import threading
import uuid

import pytest

from core.db import models
from core.db.repositories import commissions as commission_repo
from core.db.repositories import messaging as messaging_repo
from core.services import transactional_email_service
from core.services.message_service import MessageService


class FakeEmailService:
    def __init__(self):
        self.sent = []

    async def send_email(self, to_email, subject, html_content, text_content=None, tags=None):
        self.sent.append(to_email)
        return {"success": True, "provider": "fake", "message_id": "em_1"}


def _commission(db_session, partner, status="pending", amount=1000):
    return commission_repo.create_commission(
        db_session,
        order_amount=amount * 5,
        recipient_type="partner",
        recipient_id=partner.id,
        recipient_email=partner.email,
        commission_type=models.COMMISSION_TYPE_PARTNER,
        commission_rate=20,
        commission_amount=amount,
        status=status,
        metadata={"commission_type": "initial"},
    )


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["features"]["feature_messaging_enabled"] is True


# === Commissions ===

def test_list_commissions_requires_admin(client):
    assert client.get("/commissions").status_code == 401
    assert client.get("/commissions", headers={"x-auth-request-email": "someone@example.com"}).status_code == 403


def test_list_commissions_filters(client, db_session, admin_headers, make_partner):
    partner = make_partner()
    _commission(db_session, partner, status="pending")
    _commission(db_session, partner, status="paid")

    response = client.get("/commissions", params={"status": "paid"}, headers=admin_headers)

    assert response.status_code == 200
    rows = response.json()
    assert len(rows) == 1
    assert rows[0]["status"] == "paid"
    assert rows[0]["metadata"] == {"commission_type": "initial"}


def test_update_commission_status(client, db_session, admin_headers, make_partner):
    commission = _commission(db_session, make_partner())

    response = client.patch(f"/commissions/{commission.id}", json={"status": "approved"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "approved"


def test_update_commission_status_validation(client, admin_headers):
    missing = client.patch(f"/commissions/{uuid.uuid4()}", json={"status": "paid"}, headers=admin_headers)
    invalid = client.patch(f"/commissions/{uuid.uuid4()}", json={"status": "redeemed"}, headers=admin_headers)

    assert missing.status_code == 404
    assert invalid.status_code == 422


def test_partner_reads_own_commissions(client, db_session, make_partner):
    partner = make_partner()
    other = make_partner()
    _commission(db_session, partner, status="paid", amount=1000)
    _commission(db_session, partner, status="pending", amount=250)

    own = client.get(
        f"/partners/{partner.id}/commissions",
        params={"status": "unpaid"},
        headers={"x-auth-request-email": partner.email},
    )
    foreign = client.get(f"/partners/{partner.id}/commissions", headers={"x-auth-request-email": other.email})

    assert own.status_code == 200
    body = own.json()
    assert body["summary"]["total_amount"] == 1250
    assert body["summary"]["unpaid_amount"] == 250
    assert [c["commission_amount"] for c in body["commissions"]] == [250]
    assert foreign.status_code == 403


def test_unknown_partner_is_404(client, admin_headers):
    assert client.get(f"/partners/{uuid.uuid4()}/commissions", headers=admin_headers).status_code == 404


def test_customer_credit_summary(client, make_customer, admin_headers):
    customer = make_customer(current_credit_balance=450)

    own = client.get(f"/customers/{customer.id}/credits", headers={"x-auth-request-email": customer.email})
    as_admin = client.get(f"/customers/{customer.id}/credits", headers=admin_headers)
    stranger = client.get(f"/customers/{customer.id}/credits", headers={"x-auth-request-email": "x@example.com"})

    assert own.status_code == 200
    assert own.json()["current_credit_balance"] == 450
    assert own.json()["customization_credits"]["credits_remaining"] == 2
    assert as_admin.status_code == 200
    assert stranger.status_code == 403


# === Messaging ===

def test_queue_process_requires_cron_secret(client):
    assert client.post("/messaging/queue/process").status_code == 401
    assert client.post("/messaging/queue/process", headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_send_then_process_queue(client, db_session, admin_headers, cron_headers, make_template, monkeypatch):
    fake = FakeEmailService()
    monkeypatch.setattr(transactional_email_service, "get_transactional_email_service", lambda: fake)
    make_template()

    sent = client.post(
        "/messaging/send",
        json={
            "template_key": "order_confirmation",
            "recipient_type": "customer",
            "recipient_email": "sam@example.com",
            "variables": {"order_number": "PW-1", "customer_name": "Sam"},
        },
        headers=admin_headers,
    )
    assert sent.status_code == 200
    assert sent.json()["success"] is True

    stats = client.get("/messaging/queue/stats", headers=admin_headers).json()
    assert stats["pending"] == 1
    assert stats["total"] == 1

    processed = client.post("/messaging/queue/process", params={"batch_size": 10}, headers=cron_headers)

    assert processed.status_code == 200
    assert processed.json() == {"processed": 1, "failed": 0, "skipped": 0, "errors": []}
    assert fake.sent == ["sam@example.com"]
    message_id = sent.json()["message_ids"][0]
    assert messaging_repo.get_message(db_session, uuid.UUID(message_id)).status == "sent"


def test_queue_process_runs_in_worker_thread(client, cron_headers, monkeypatch):
    seen = {}

    async def fake_process(self, batch_size=100):
        seen["thread"] = threading.current_thread().name
        seen["batch_size"] = batch_size
        return {"processed": 0, "failed": 0, "skipped": 0, "errors": []}

    monkeypatch.setattr(MessageService, "process_message_queue", fake_process)

    response = client.post("/messaging/queue/process", params={"batch_size": 5}, headers=cron_headers)

    assert response.status_code == 200
    assert seen == {"thread": "AnyIO worker thread", "batch_size": 5}


def test_send_unknown_template(client, admin_headers):
    response = client.post(
        "/messaging/send",
        json={"template_key": "missing", "recipient_type": "customer", "recipient_email": "sam@example.com"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["errors"] == ["Template not found or inactive: missing"]


@pytest.mark.parametrize("batch_size", [0, 1001])
def test_queue_process_batch_size_bounds(client, cron_headers, batch_size):
    response = client.post("/messaging/queue/process", params={"batch_size": batch_size}, headers=cron_headers)
    assert response.status_code == 422


def test_template_preview_endpoint(client, admin_headers, make_template):
    make_template()

    response = client.post(
        "/messaging/templates/order_confirmation/test",
        json={"variables": {"order_number": "PW-5", "customer_name": "Sam"}},
        headers=admin_headers,
    )
    missing = client.post("/messaging/templates/nope/test", json={"variables": {}}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["subject"] == "Order PW-5 confirmed"
    assert response.json()["missing_variables"] == []
    assert missing.status_code == 404
