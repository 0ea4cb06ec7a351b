"""
Audit logging helpers and enums.

Centralized helpers to persist normalized audit records for ledger and
fulfillment events. Writing an audit record must never break the business
flow that triggered it, so failures are logged and swallowed here.
"""
from __future__ import annotations
import json
import logging
import uuid
from enum import Enum
from typing import Any, Optional, Dict
from sqlalchemy.orm import Session

from core.db import models, schemas
from core.db.repositories import audits as audit_repo

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    # Orders
    ORDER_CREATE = "order_create"
    PAYMENT_DISPUTED = "payment_disputed"
    # Ledger
    COMMISSION_CREATE = "commission_create"
    COMMISSION_STATUS_CHANGE = "commission_status_change"
    CREDIT_GRANT = "credit_grant"
    CREDIT_REDEEM = "credit_redeem"
    CREDIT_PACK_PURCHASE = "credit_pack_purchase"
    # Fulfillment
    FULFILLMENT_DISPATCH = "fulfillment_dispatch"
    FULFILLMENT_FAILED = "fulfillment_failed"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


ACTOR_STRIPE_WEBHOOK = "stripe_webhook"
ACTOR_GELATO_WEBHOOK = "gelato_webhook"


def log(
    db: Session,
    *,
    action: AuditAction | str,
    status: AuditStatus | str = AuditStatus.SUCCESS,
    target_type: str,
    target_id: Optional[uuid.UUID] = None,
    actor: str = ACTOR_STRIPE_WEBHOOK,
    reason: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[models.AuditLog]:
    """Central audit logging helper. Returns None when the write failed."""
    # Persist pure string values, not Enum reprs
    action_value = action.value if isinstance(action, AuditAction) else str(action)
    status_value = status.value if isinstance(status, AuditStatus) else str(status)
    audit_log = schemas.AuditLogCreate(
        action_type=action_value,
        status=status_value,
        target_type=target_type,
        target_id=target_id,
        reason=reason,
        metadata=json.loads(json.dumps(metadata or {}, default=str)),
    )
    try:
        return audit_repo.create_audit_log(db, audit_log=audit_log, actor=actor)
    except Exception:
        db.rollback()
        logger.exception("audit_write_failed action=%s target=%s:%s", action_value, target_type, target_id)
        return None


def log_order(db: Session, *, order_id: uuid.UUID, action: AuditAction, actor: str = ACTOR_STRIPE_WEBHOOK,
              status: AuditStatus | str = AuditStatus.SUCCESS, reason: Optional[str] = None,
              metadata: Optional[Dict[str, Any]] = None):
    return log(
        db,
        action=action,
        status=status,
        target_type="order",
        target_id=order_id,
        actor=actor,
        reason=reason,
        metadata=metadata,
    )


def log_commission(db: Session, *, commission_id: uuid.UUID, action: AuditAction, actor: str = ACTOR_STRIPE_WEBHOOK,
                   metadata: Optional[Dict[str, Any]] = None):
    return log(
        db,
        action=action,
        target_type="commission",
        target_id=commission_id,
        actor=actor,
        metadata=metadata,
    )


def log_customer(db: Session, *, customer_id: uuid.UUID, action: AuditAction, actor: str = ACTOR_STRIPE_WEBHOOK,
                 metadata: Optional[Dict[str, Any]] = None):
    return log(
        db,
        action=action,
        target_type="customer",
        target_id=customer_id,
        actor=actor,
        metadata=metadata,
    )


__all__ = [
    "AuditAction",
    "AuditStatus",
    "ACTOR_STRIPE_WEBHOOK",
    "ACTOR_GELATO_WEBHOOK",
    "log",
    "log_order",
    "log_commission",
    "log_customer",
]
