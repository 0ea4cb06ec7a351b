"""
Stripe webhook event ledger used to acknowledge redeliveries without side effects.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.db import models

# A delivery still marked processing after this long is treated as abandoned.
PROCESSING_LEASE = timedelta(minutes=5)


def get_stripe_event(db: Session, event_id: str) -> Optional[models.StripeWebhookEvent]:
    return db.query(models.StripeWebhookEvent).filter(models.StripeWebhookEvent.event_id == event_id).first()


def _lease_expired(record: models.StripeWebhookEvent, now: datetime) -> bool:
    claimed_at = record.received_at
    if claimed_at is None:
        return True
    if claimed_at.tzinfo is None:
        claimed_at = claimed_at.replace(tzinfo=timezone.utc)
    return now - claimed_at >= PROCESSING_LEASE


def claim_stripe_event(db: Session, event_id: str, event_type: str) -> Tuple[models.StripeWebhookEvent, bool]:
    """Record an incoming event. Returns ``(record, is_duplicate)``.

    Processed events are duplicates, as are events another delivery is still
    working on. Failed events, and processing events whose lease has expired,
    are reclaimed so Stripe retries run the handler again. ``received_at`` is
    reset on every claim and marks the start of the current lease.
    """
    now = datetime.now(timezone.utc)
    existing = get_stripe_event(db, event_id)
    if existing:
        reclaimable = existing.status == 'failed' or (
            existing.status == 'processing' and _lease_expired(existing, now)
        )
        if reclaimable:
            existing.status = 'processing'
            existing.error_message = None
            existing.received_at = now
            db.commit()
            db.refresh(existing)
            return existing, False
        return existing, True

    record = models.StripeWebhookEvent(event_id=event_id, event_type=event_type, status='processing', received_at=now)
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return get_stripe_event(db, event_id), True
    db.refresh(record)
    return record, False


def complete_stripe_event(db: Session, record: models.StripeWebhookEvent) -> models.StripeWebhookEvent:
    record.status = 'processed'
    record.processed_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(record)
    return record


def fail_stripe_event(db: Session, record: models.StripeWebhookEvent, error: str) -> models.StripeWebhookEvent:
    record.status = 'failed'
    record.error_message = error[:2000]
    db.commit()
    db.refresh(record)
    return record
