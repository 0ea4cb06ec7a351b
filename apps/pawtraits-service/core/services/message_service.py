"""
Message service: template-driven email, SMS and inbox messaging.

`send_message` renders an active template for each of its channels and puts
the results on the `message_queue`. A cron job drains the queue with
`process_message_queue`, which hands each message to the email provider,
Twilio, or the in-app inbox, retrying failures with exponential backoff.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core.db import models
from core.db.repositories import messaging as messaging_repo
from core.services import template_engine
from core.services.template_engine import TemplateRenderError
from core.utils.feature_flags import messaging_enabled

logger = logging.getLogger(__name__)

CHANNEL_EMAIL = 'email'
CHANNEL_SMS = 'sms'
CHANNEL_INBOX = 'inbox'
DEFAULT_SUBJECT = 'Message from Pawtraits'


class MessageService:
    """Queue and deliver templated messages."""

    def __init__(self, db: Session, email_service=None, sms_service=None):
        self.db = db
        # Providers are resolved lazily so tests can patch the factories.
        self._email_service = email_service
        self._sms_service = sms_service

    @property
    def email_service(self):
        if self._email_service is None:
            from core.services import transactional_email_service
            self._email_service = transactional_email_service.get_transactional_email_service()
        return self._email_service

    @property
    def sms_service(self):
        if self._sms_service is None:
            from core.services import sms_service
            self._sms_service = sms_service.get_sms_service()
        return self._sms_service

    # === Enqueue ===

    def _render_channel(self, template: models.MessageTemplate, channel: str, variables: Dict[str, Any]):
        """Return (subject, body) for a channel, or None when the template has no body for it."""
        if channel == CHANNEL_EMAIL and template.email_body_template:
            subject = template_engine.render_template(template.email_subject_template or DEFAULT_SUBJECT, variables)
            body = template_engine.render_template(template.email_body_template, variables, html=True)
            return subject, body
        if channel == CHANNEL_SMS and template.sms_body_template:
            return None, template_engine.render_template(template.sms_body_template, variables)
        if channel == CHANNEL_INBOX and template.inbox_body_template:
            title = template_engine.render_template(template.inbox_title_template or template.name, variables)
            return title, template_engine.render_template(template.inbox_body_template, variables)
        return None

    def send_message(
        self,
        template_key: str,
        recipient_type: str,
        recipient_id: Optional[uuid.UUID] = None,
        recipient_email: Optional[str] = None,
        recipient_phone: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
        priority: Optional[str] = None,
        scheduled_for: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Render a template for every channel it supports and enqueue the results.

        Returns a dict with 'success' (at least one message queued),
        'message_ids' and 'errors'.
        """
        if not messaging_enabled():
            logger.info("messaging_disabled template=%s", template_key)
            return {'success': False, 'message_ids': [], 'errors': ['messaging disabled']}

        variables = variables or {}
        template = messaging_repo.get_active_template(self.db, template_key)
        if not template:
            logger.error("Template not found or inactive: %s", template_key)
            return {'success': False, 'message_ids': [], 'errors': [f'Template not found or inactive: {template_key}']}

        if template.user_types and recipient_type not in template.user_types:
            return {
                'success': False,
                'message_ids': [],
                'errors': [f'Template {template_key} is not available for user type {recipient_type}'],
            }

        message_ids: List[uuid.UUID] = []
        errors: List[str] = []
        for channel in template.channels or []:
            try:
                rendered = self._render_channel(template, channel, variables)
            except TemplateRenderError as exc:
                errors.append(f'{channel}: {exc}')
                continue
            if rendered is None:
                continue
            subject, body = rendered

            if channel == CHANNEL_EMAIL and not recipient_email:
                errors.append('Email channel requires recipient_email')
                continue
            if channel == CHANNEL_SMS and not recipient_phone:
                errors.append('SMS channel requires recipient_phone')
                continue
            if channel == CHANNEL_INBOX and not recipient_id:
                errors.append('Inbox channel requires recipient_id')
                continue

            queue_metadata = dict(metadata or {})
            if channel == CHANNEL_INBOX:
                queue_metadata.update({
                    'action_url': template.inbox_action_url,
                    'action_label': template.inbox_action_label,
                    'icon': template.inbox_icon,
                })

            try:
                queued = messaging_repo.enqueue_message(
                    self.db,
                    template_key=template_key,
                    recipient_type=recipient_type,
                    recipient_id=recipient_id,
                    recipient_email=recipient_email,
                    recipient_phone=recipient_phone,
                    channel=channel,
                    subject=subject,
                    body=body,
                    variables=variables,
                    status='pending',
                    priority=priority or template.priority or 'normal',
                    scheduled_for=scheduled_for or datetime.now(timezone.utc),
                    retry_count=0,
                    max_retries=3,
                    metadata=queue_metadata,
                )
            except Exception as exc:
                self.db.rollback()
                logger.error("enqueue_failed template=%s channel=%s error=%s", template_key, channel, exc, exc_info=True)
                errors.append(f'{channel}: failed to queue message')
                continue
            message_ids.append(queued.id)

        logger.info(
            "message_queued template=%s recipient_type=%s queued=%d errors=%d",
            template_key, recipient_type, len(message_ids), len(errors),
        )
        return {'success': bool(message_ids), 'message_ids': message_ids, 'errors': errors}

    # === Delivery ===

    async def _deliver(self, message: models.MessageQueue) -> Dict[str, Any]:
        if message.channel == CHANNEL_EMAIL:
            return await self.email_service.send_email(
                to_email=message.recipient_email,
                subject=message.subject or DEFAULT_SUBJECT,
                html_content=message.body,
                tags={'template': message.template_key},
            )
        if message.channel == CHANNEL_SMS:
            return await self.sms_service.send_sms(to=message.recipient_phone, body=message.body)
        if message.channel == CHANNEL_INBOX:
            meta = message.metadata_json or {}
            inbox = messaging_repo.create_inbox_message(
                self.db,
                recipient_type=message.recipient_type,
                recipient_id=message.recipient_id,
                template_key=message.template_key,
                title=message.subject or DEFAULT_SUBJECT,
                message=message.body,
                action_url=meta.get('action_url'),
                action_label=meta.get('action_label'),
                icon=meta.get('icon'),
                queue_message_id=message.id,
            )
            return {'success': True, 'provider': 'inbox', 'message_id': str(inbox.id)}
        raise ValueError(f'Unknown channel: {message.channel}')

    async def process_message_queue(self, batch_size: int = 100) -> Dict[str, Any]:
        """Deliver due pending messages; returns processed/failed/skipped counts."""
        messages = messaging_repo.get_pending_messages(self.db, limit=batch_size)
        result: Dict[str, Any] = {'processed': 0, 'failed': 0, 'skipped': 0, 'errors': []}
        logger.info("queue_batch_start size=%d", len(messages))

        for message in messages:
            messaging_repo.mark_message_processing(self.db, message)
            if message.channel not in (CHANNEL_EMAIL, CHANNEL_SMS, CHANNEL_INBOX):
                error = f'Unknown channel: {message.channel}'
                messaging_repo.mark_message_failed(self.db, message, error, should_retry=False)
                result['skipped'] += 1
                result['errors'].append({'message_id': message.id, 'error': error})
                continue
            try:
                outcome = await self._deliver(message)
            except Exception as exc:
                self.db.rollback()
                logger.error("delivery_error message_id=%s error=%s", message.id, exc, exc_info=True)
                outcome = {'success': False, 'error': str(exc)}

            if outcome.get('success'):
                messaging_repo.mark_message_sent(self.db, message, external_id=outcome.get('message_id'))
                result['processed'] += 1
            else:
                error = outcome.get('error') or 'Unknown delivery error'
                messaging_repo.mark_message_failed(self.db, message, error, should_retry=True)
                result['failed'] += 1
                result['errors'].append({'message_id': message.id, 'error': error})

        logger.info(
            "queue_batch_done processed=%d failed=%d skipped=%d",
            result['processed'], result['failed'], result['skipped'],
        )
        return result

    async def send_message_immediate(
        self,
        channel: str,
        body: str,
        recipient_email: Optional[str] = None,
        recipient_phone: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send without queueing (urgent/admin messages)."""
        if channel == CHANNEL_EMAIL:
            if not recipient_email:
                return {'success': False, 'error': 'recipient_email is required'}
            return await self.email_service.send_email(
                to_email=recipient_email,
                subject=subject or DEFAULT_SUBJECT,
                html_content=body,
            )
        if channel == CHANNEL_SMS:
            if not recipient_phone:
                return {'success': False, 'error': 'recipient_phone is required'}
            return await self.sms_service.send_sms(to=recipient_phone, body=body)
        return {'success': False, 'error': f'Unsupported channel for immediate send: {channel}'}

    # === Admin helpers ===

    def queue_stats(self) -> Dict[str, int]:
        return messaging_repo.get_queue_stats(self.db)

    def test_template(self, template_key: str, variables: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Preview a template's email subject/body (or SMS body) with sample data."""
        template = messaging_repo.get_template(self.db, template_key)
        if not template:
            return None
        body_source = template.email_body_template or template.sms_body_template or template.inbox_body_template or ''
        subject_preview = template_engine.test_template(template.email_subject_template or '', variables)
        body_preview = template_engine.test_template(body_source, variables, html=bool(template.email_body_template))
        missing = sorted(set(subject_preview['missing']) | set(body_preview['missing']))
        error = subject_preview['error'] or body_preview['error']
        return {
            'success': subject_preview['success'] and body_preview['success'],
            'subject': subject_preview['rendered'],
            'body': body_preview['rendered'],
            'missing_variables': missing,
            'error': error,
        }
