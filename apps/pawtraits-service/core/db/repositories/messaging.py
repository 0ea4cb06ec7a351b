"""
Message template, queue and inbox repository functions.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from core.db import models

PRIORITY_RANK = {'critical': 4, 'high': 3, 'normal': 2, 'low': 1}
QUEUE_STATUSES = ('pending', 'processing', 'sent', 'failed', 'cancelled')


def get_active_template(db: Session, template_key: str) -> Optional[models.MessageTemplate]:
    return (
        db.query(models.MessageTemplate)
        .filter(
            models.MessageTemplate.template_key == template_key,
            models.MessageTemplate.is_active.is_(True),
        )
        .first()
    )


def get_template(db: Session, template_key: str) -> Optional[models.MessageTemplate]:
    return db.query(models.MessageTemplate).filter(models.MessageTemplate.template_key == template_key).first()


def enqueue_message(db: Session, **fields) -> models.MessageQueue:
    metadata = fields.pop('metadata', None)
    message = models.MessageQueue(**fields, metadata_json=metadata)
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def get_message(db: Session, message_id: uuid.UUID) -> Optional[models.MessageQueue]:
    return db.query(models.MessageQueue).filter(models.MessageQueue.id == message_id).first()


def get_pending_messages(db: Session, limit: int = 100) -> List[models.MessageQueue]:
    """Due pending messages, highest priority first, then oldest first."""
    rank = case(PRIORITY_RANK, value=models.MessageQueue.priority, else_=0)
    return (
        db.query(models.MessageQueue)
        .filter(
            models.MessageQueue.status == 'pending',
            models.MessageQueue.scheduled_for <= datetime.now(timezone.utc),
        )
        .order_by(rank.desc(), models.MessageQueue.created_at.asc())
        .limit(limit)
        .all()
    )


def mark_message_processing(db: Session, message: models.MessageQueue) -> models.MessageQueue:
    message.status = 'processing'
    db.commit()
    db.refresh(message)
    return message


def mark_message_sent(db: Session, message: models.MessageQueue, external_id: Optional[str] = None) -> models.MessageQueue:
    message.status = 'sent'
    message.sent_at = datetime.now(timezone.utc)
    if external_id:
        message.external_id = external_id
    db.commit()
    db.refresh(message)
    return message


def mark_message_failed(
    db: Session,
    message: models.MessageQueue,
    error: str,
    should_retry: bool = True,
) -> models.MessageQueue:
    """Record a delivery failure.

    Retries use exponential backoff of 2**retry_count minutes until
    ``max_retries`` attempts have been made.
    """
    retry_count = (message.retry_count or 0) + 1
    message.retry_count = retry_count
    message.error_message = error
    if should_retry and retry_count < (message.max_retries or 0):
        message.status = 'pending'
        message.scheduled_for = datetime.now(timezone.utc) + timedelta(minutes=2 ** retry_count)
    else:
        message.status = 'failed'
        message.failed_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(message)
    return message


def create_inbox_message(db: Session, **fields) -> models.UserMessage:
    inbox = models.UserMessage(**fields)
    db.add(inbox)
    db.commit()
    db.refresh(inbox)
    return inbox


def get_queue_stats(db: Session) -> Dict[str, int]:
    rows = (
        db.query(models.MessageQueue.status, func.count(models.MessageQueue.id))
        .group_by(models.MessageQueue.status)
        .all()
    )
    stats: Dict[str, int] = {status: 0 for status in QUEUE_STATUSES}
    for status, count in rows:
        stats[status] = count
    stats['total'] = sum(count for _status, count in rows)
    return stats
