from types import SimpleNamespace

import pytest

from core.services.transactional_email_service import (
    EmailProvider,
    TransactionalEmailConfig,
    TransactionalEmailService,
)


@pytest.fixture
def resend_env(monkeypatch):
    monkeypatch.setenv("EMAIL_PROVIDER", "resend")
    monkeypatch.setenv("RESEND_API_KEY", "re_test_key")
    monkeypatch.setenv("FROM_EMAIL", "hello@pawtraits.test")
    monkeypatch.setenv("FROM_NAME", "Pawtraits")
    monkeypatch.setenv("REPLY_TO_EMAIL", "support@pawtraits.test")


def test_config_reads_environment(resend_env):
    config = TransactionalEmailConfig()

    assert config.provider == EmailProvider.RESEND
    assert config.is_configured() is True
    assert config.validate() == []
    assert config.sender == "Pawtraits <hello@pawtraits.test>"


def test_config_validation_lists_missing_keys(monkeypatch):
    monkeypatch.setenv("EMAIL_PROVIDER", "sendgrid")
    monkeypatch.delenv("SENDGRID_API_KEY", raising=False)

    config = TransactionalEmailConfig()

    assert config.is_configured() is False
    assert config.validate() == ["SENDGRID_API_KEY is required for SendGrid provider"]


async def test_resend_payload(resend_env):
    service = TransactionalEmailService()
    captured = {}

    def fake_send(params):
        captured.update(params)
        return {"id": "re_123"}

    service.provider_service.client = SimpleNamespace(Emails=SimpleNamespace(send=fake_send))

    result = await service.send_email(
        to_email="sam@example.com",
        subject="Order PW-1 confirmed",
        html_content="<p>Thanks</p>",
        tags={"template": "order_confirmation"},
    )

    assert result == {"success": True, "provider": "resend", "message_id": "re_123"}
    assert captured["from"] == "Pawtraits <hello@pawtraits.test>"
    assert captured["to"] == ["sam@example.com"]
    assert captured["reply_to"] == "support@pawtraits.test"
    assert captured["tags"] == [{"name": "template", "value": "order_confirmation"}]


async def test_provider_exception_becomes_failed_result(resend_env):
    service = TransactionalEmailService()

    def boom(params):
        raise RuntimeError("rate limited")

    service.provider_service.client = SimpleNamespace(Emails=SimpleNamespace(send=boom))

    result = await service.send_email("sam@example.com", "Hi", "<p>Hi</p>")

    assert result["success"] is False
    assert result["error"] == "rate limited"


async def test_missing_fields_rejected(resend_env):
    service = TransactionalEmailService()

    result = await service.send_email("", "Hi", "<p>Hi</p>")

    assert result == {"success": False, "error": "Missing required fields: to, subject, html"}


async def test_unconfigured_service_reports_error(monkeypatch):
    monkeypatch.setenv("EMAIL_PROVIDER", "resend")
    monkeypatch.delenv("RESEND_API_KEY", raising=False)

    service = TransactionalEmailService()
    result = await service.send_email("sam@example.com", "Hi", "<p>Hi</p>")
    connection = await service.test_connection()

    assert service.provider_service is None
    assert result["success"] is False
    assert result["error"] == "Email service not configured or initialization failed"
    assert connection["success"] is False
