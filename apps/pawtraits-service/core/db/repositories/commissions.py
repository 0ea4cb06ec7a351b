"""
Commission and customer credit ledger repository functions.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional, List
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.db import models


def create_commission(db: Session, **fields) -> models.Commission:
    metadata = fields.pop('metadata', None)
    commission = models.Commission(**fields, metadata_json=metadata)
    db.add(commission)
    db.commit()
    db.refresh(commission)
    return commission


def get_commission(db: Session, commission_id: uuid.UUID) -> Optional[models.Commission]:
    return db.query(models.Commission).filter(models.Commission.id == commission_id).first()


def list_commissions(
    db: Session,
    status: Optional[str] = None,
    recipient_type: Optional[str] = None,
    commission_type: Optional[str] = None,
    recipient_id: Optional[uuid.UUID] = None,
    skip: int = 0,
    limit: Optional[int] = 100,
) -> List[models.Commission]:
    query = db.query(models.Commission)
    if status:
        query = query.filter(models.Commission.status == status)
    if recipient_type:
        query = query.filter(models.Commission.recipient_type == recipient_type)
    if commission_type:
        query = query.filter(models.Commission.commission_type == commission_type)
    if recipient_id:
        query = query.filter(models.Commission.recipient_id == recipient_id)
    query = query.order_by(models.Commission.created_at.desc()).offset(skip)
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def update_commission_status(db: Session, commission: models.Commission, status: str) -> models.Commission:
    commission.status = status
    if status == 'paid':
        commission.paid_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(commission)
    return commission


def list_redeemable_credits(db: Session, customer_id: uuid.UUID) -> List[models.Commission]:
    """Approved or paid customer credits for a customer, oldest first."""
    return (
        db.query(models.Commission)
        .filter(
            models.Commission.recipient_type == 'customer',
            models.Commission.recipient_id == customer_id,
            models.Commission.commission_type == models.COMMISSION_TYPE_CUSTOMER_CREDIT,
            models.Commission.status.in_(('approved', 'paid')),
        )
        .order_by(models.Commission.created_at.asc())
        .all()
    )


def sum_commissions(
    db: Session,
    recipient_type: str,
    recipient_id: uuid.UUID,
    commission_type: Optional[str] = None,
    statuses: Optional[List[str]] = None,
) -> int:
    query = db.query(func.coalesce(func.sum(models.Commission.commission_amount), 0)).filter(
        models.Commission.recipient_type == recipient_type,
        models.Commission.recipient_id == recipient_id,
    )
    if commission_type:
        query = query.filter(models.Commission.commission_type == commission_type)
    if statuses:
        query = query.filter(models.Commission.status.in_(statuses))
    return int(query.scalar() or 0)
