"""
Transactional Email Service

Delivers rendered message-queue emails through a transactional provider.

Supports:
- Resend (default)
- SendGrid
"""

import os
import logging
from typing import Optional, Dict, Any, List
from enum import Enum

logger = logging.getLogger(__name__)


class EmailProvider(Enum):
    """Supported email service providers."""
    RESEND = "resend"
    SENDGRID = "sendgrid"


class TransactionalEmailConfig:
    """Configuration for transactional email services."""

    def __init__(self):
        self.provider = EmailProvider(os.getenv('EMAIL_PROVIDER', 'resend').lower())

        self.from_email = os.getenv('FROM_EMAIL', 'noreply@pawtraits.pics')
        self.from_name = os.getenv('FROM_NAME', 'Pawtraits')
        self.reply_to_email = os.getenv('REPLY_TO_EMAIL') or os.getenv('SUPPORT_EMAIL', '')

        self.resend_api_key = os.getenv('RESEND_API_KEY', '')
        self.sendgrid_api_key = os.getenv('SENDGRID_API_KEY', '')

    def is_configured(self) -> bool:
        if self.provider == EmailProvider.RESEND:
            return bool(self.resend_api_key and self.from_email)
        if self.provider == EmailProvider.SENDGRID:
            return bool(self.sendgrid_api_key and self.from_email)
        return False

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []
        if not self.from_email:
            errors.append("FROM_EMAIL is required")
        if self.provider == EmailProvider.RESEND and not self.resend_api_key:
            errors.append("RESEND_API_KEY is required for Resend provider")
        elif self.provider == EmailProvider.SENDGRID and not self.sendgrid_api_key:
            errors.append("SENDGRID_API_KEY is required for SendGrid provider")
        return errors

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_email}>"


class ResendEmailService:
    """Email service implementation for Resend."""

    def __init__(self, config: TransactionalEmailConfig):
        import resend
        resend.api_key = config.resend_api_key
        self.config = config
        self.client = resend

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        try:
            email_data: Dict[str, Any] = {
                "from": self.config.sender,
                "to": [to_email],
                "subject": subject,
                "html": html_content,
            }
            if text_content:
                email_data["text"] = text_content
            if self.config.reply_to_email:
                email_data["reply_to"] = self.config.reply_to_email
            if tags:
                email_data["tags"] = [{"name": k, "value": v} for k, v in tags.items()]

            result = self.client.Emails.send(email_data)
            return {
                'success': True,
                'provider': 'resend',
                'message_id': result['id'],
            }
        except Exception as e:
            return {
                'success': False,
                'provider': 'resend',
                'error': str(e),
            }


class SendGridEmailService:
    """Email service implementation for SendGrid."""

    def __init__(self, config: TransactionalEmailConfig):
        from sendgrid import SendGridAPIClient
        self.config = config
        self.client = SendGridAPIClient(api_key=config.sendgrid_api_key)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        try:
            from sendgrid.helpers.mail import Mail, From, To, Subject, HtmlContent, PlainTextContent

            mail = Mail(
                from_email=From(self.config.from_email, self.config.from_name),
                to_emails=To(to_email),
                subject=Subject(subject),
                html_content=HtmlContent(html_content),
            )
            if text_content:
                mail.plain_text_content = PlainTextContent(text_content)
            if self.config.reply_to_email:
                mail.reply_to = self.config.reply_to_email

            response = self.client.send(mail)
            return {
                'success': True,
                'provider': 'sendgrid',
                'message_id': response.headers.get('X-Message-Id', ''),
                'status_code': response.status_code,
            }
        except Exception as e:
            return {
                'success': False,
                'provider': 'sendgrid',
                'error': str(e),
            }


class TransactionalEmailService:
    """Main transactional email service that delegates to provider implementations."""

    def __init__(self, config: Optional[TransactionalEmailConfig] = None):
        self.config = config or TransactionalEmailConfig()
        self.provider_service = None
        self._setup_provider()

    def _setup_provider(self):
        if not self.config.is_configured():
            logger.warning("Email service not configured")
            return
        try:
            if self.config.provider == EmailProvider.RESEND:
                self.provider_service = ResendEmailService(self.config)
            elif self.config.provider == EmailProvider.SENDGRID:
                self.provider_service = SendGridEmailService(self.config)
            logger.info("Initialized %s email service", self.config.provider.value)
        except Exception as e:
            logger.error(f"Failed to initialize email provider {self.config.provider}: {e}")

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Send an email via the configured provider.

        Returns:
            Dict with 'success', 'provider', 'message_id', and 'error' keys
        """
        if not to_email or not subject or not html_content:
            return {
                'success': False,
                'error': 'Missing required fields: to, subject, html',
            }
        if not self.provider_service:
            return {
                'success': False,
                'error': 'Email service not configured or initialization failed',
            }

        try:
            logger.info(f"Sending email to {to_email} via {self.config.provider.value}")
            result = await self.provider_service.send_email(
                to_email=to_email,
                subject=subject,
                html_content=html_content,
                text_content=text_content,
                tags=tags,
            )
            if result['success']:
                logger.info(f"Email sent successfully to {to_email} via {result['provider']}")
            else:
                logger.error(f"Email sending failed: {result['error']}")
            return result
        except Exception as e:
            error_msg = f"Email service error: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return {
                'success': False,
                'error': error_msg,
            }

    async def test_connection(self) -> Dict[str, Any]:
        """Report whether the provider is configured and initialised."""
        validation_errors = self.config.validate()
        if validation_errors:
            return {
                'success': False,
                'error': f"Configuration errors: {', '.join(validation_errors)}",
            }
        if not self.provider_service:
            return {
                'success': False,
                'error': 'Email provider service not initialized',
            }
        return {
            'success': True,
            'provider': self.config.provider.value,
        }


_email_service = None


def get_transactional_email_service() -> TransactionalEmailService:
    """Get singleton transactional email service instance."""
    global _email_service
    if _email_service is None:
        _email_service = TransactionalEmailService()
    return _email_service
