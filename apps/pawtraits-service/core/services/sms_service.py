"""
SMS delivery through Twilio.

Mirrors the transactional email service contract: ``send_sms`` returns a
result dict with 'success', 'provider', 'message_id' and 'error' keys.
"""
import os
import logging
from typing import Optional, Dict, Any

from core.utils.urls import get_app_base_url

logger = logging.getLogger(__name__)

MAX_SMS_LENGTH = 1600


class ProviderError(Exception):
    """Raised when a message provider is misconfigured or rejects input."""

    def __init__(self, message: str, provider: str):
        super().__init__(message)
        self.provider = provider


class SmsConfig:
    def __init__(self):
        self.account_sid = os.getenv('TWILIO_ACCOUNT_SID', '')
        self.auth_token = os.getenv('TWILIO_AUTH_TOKEN', '')
        self.from_number = os.getenv('TWILIO_PHONE_NUMBER', '')

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)


class SmsService:
    def __init__(self, config: Optional[SmsConfig] = None, client=None):
        self.config = config or SmsConfig()
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.config.is_configured():
                raise ProviderError(
                    'TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN environment variables must be set',
                    'twilio',
                )
            from twilio.rest import Client
            self._client = Client(self.config.account_sid, self.config.auth_token)
        return self._client

    def _validate(self, to: str, body: str, from_number: str) -> None:
        if not to:
            raise ProviderError('Missing required parameter: to', 'twilio')
        if not body:
            raise ProviderError('Missing required parameter: body', 'twilio')
        if not to.startswith('+'):
            raise ProviderError('Phone number must be in E.164 format (e.g., +441234567890)', 'twilio')
        if len(body) > MAX_SMS_LENGTH:
            raise ProviderError(f'SMS body exceeds maximum length of {MAX_SMS_LENGTH} characters', 'twilio')
        if not from_number:
            raise ProviderError('TWILIO_PHONE_NUMBER environment variable not set', 'twilio')

    async def send_sms(self, to: str, body: str, from_number: Optional[str] = None) -> Dict[str, Any]:
        sender = from_number or self.config.from_number
        try:
            self._validate(to, body, sender)
            message = self.client.messages.create(
                body=body,
                from_=sender,
                to=to,
                status_callback=f"{get_app_base_url()}/api/messaging/webhooks/twilio",
            )
            logger.info("SMS sent to=%s sid=%s", to, message.sid)
            return {'success': True, 'provider': 'twilio', 'message_id': message.sid}
        except ProviderError as e:
            logger.error("SMS rejected: %s", e)
            return {'success': False, 'provider': 'twilio', 'error': str(e)}
        except Exception as e:
            logger.error("SMS sending failed: %s", e, exc_info=True)
            return {'success': False, 'provider': 'twilio', 'error': str(e)}


_sms_service = None


def get_sms_service() -> SmsService:
    """Get singleton SMS service instance."""
    global _sms_service
    if _sms_service is None:
        _sms_service = SmsService()
    return _sms_service
