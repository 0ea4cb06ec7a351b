from types import SimpleNamespace

import pytest

from core.services.sms_service import MAX_SMS_LENGTH, SmsConfig, SmsService


class FakeMessages:
    def __init__(self):
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(sid="SM0001")


@pytest.fixture
def twilio_env(monkeypatch):
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "token")
    monkeypatch.setenv("TWILIO_PHONE_NUMBER", "+441234567890")


@pytest.fixture
def messages():
    return FakeMessages()


@pytest.fixture
def sms(twilio_env, messages):
    return SmsService(SmsConfig(), client=SimpleNamespace(messages=messages))


async def test_send_sms_success(sms, messages):
    result = await sms.send_sms(to="+447700900123", body="Your order has shipped")

    assert result == {"success": True, "provider": "twilio", "message_id": "SM0001"}
    call = messages.calls[0]
    assert call["from_"] == "+441234567890"
    assert call["to"] == "+447700900123"
    assert call["status_callback"] == "https://pawtraits.test/api/messaging/webhooks/twilio"


@pytest.mark.parametrize(
    "to,body,error",
    [
        ("07700900123", "hi", "E.164"),
        ("", "hi", "Missing required parameter: to"),
        ("+447700900123", "", "Missing required parameter: body"),
        ("+447700900123", "x" * (MAX_SMS_LENGTH + 1), "maximum length"),
    ],
)
async def test_send_sms_validation(sms, messages, to, body, error):
    result = await sms.send_sms(to=to, body=body)

    assert result["success"] is False
    assert error in result["error"]
    assert messages.calls == []


async def test_unconfigured_client_reports_error(monkeypatch):
    monkeypatch.delenv("TWILIO_ACCOUNT_SID", raising=False)
    monkeypatch.delenv("TWILIO_AUTH_TOKEN", raising=False)
    monkeypatch.setenv("TWILIO_PHONE_NUMBER", "+441234567890")

    result = await SmsService().send_sms(to="+447700900123", body="hi")

    assert result["success"] is False
    assert "TWILIO_ACCOUNT_SID" in result["error"]


async def test_provider_exception_is_returned(twilio_env):
    def explode(**kwargs):
        raise RuntimeError("queue overflow")

    service = SmsService(SmsConfig(), client=SimpleNamespace(messages=SimpleNamespace(create=explode)))

    result = await service.send_sms(to="+447700900123", body="hi")

    assert result == {"success": False, "provider": "twilio", "error": "queue overflow"}
