"""Business logic services package with public service helpers."""

from .transactional_email_service import (
    TransactionalEmailConfig,
    TransactionalEmailService,
    get_transactional_email_service,
)
from .sms_service import SmsConfig, SmsService, get_sms_service
from .gelato_client import GelatoClient, GelatoConfig, GelatoError

__all__ = [
    "TransactionalEmailConfig",
    "TransactionalEmailService",
    "get_transactional_email_service",
    "SmsConfig",
    "SmsService",
    "get_sms_service",
    "GelatoClient",
    "GelatoConfig",
    "GelatoError",
]
