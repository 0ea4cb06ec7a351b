"""
Customization credit and credit pack repository functions.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.orm import Session

from core.db import models


def get_customization_credits(db: Session, user_profile_id: uuid.UUID) -> Optional[models.CustomizationCredits]:
    return (
        db.query(models.CustomizationCredits)
        .filter(models.CustomizationCredits.user_profile_id == user_profile_id)
        .first()
    )


def add_customization_credits(db: Session, user_profile_id: uuid.UUID, credits: int, amount_paid: int) -> bool:
    """Increment purchased credits for a profile. Returns False when no row exists."""
    updated = (
        db.query(models.CustomizationCredits)
        .filter(models.CustomizationCredits.user_profile_id == user_profile_id)
        .update(
            {
                models.CustomizationCredits.credits_remaining: models.CustomizationCredits.credits_remaining + credits,
                models.CustomizationCredits.credits_purchased: models.CustomizationCredits.credits_purchased + credits,
                models.CustomizationCredits.total_spent_amount: models.CustomizationCredits.total_spent_amount + amount_paid,
                models.CustomizationCredits.last_purchase_date: datetime.now(timezone.utc),
            },
            synchronize_session=False,
        )
    )
    if not updated:
        db.rollback()
        return False
    db.commit()
    return True


def get_credit_pack_config(db: Session, pack_id: Optional[str]) -> Optional[models.CreditPackConfig]:
    if not pack_id:
        return None
    return db.query(models.CreditPackConfig).filter(models.CreditPackConfig.pack_id == pack_id).first()


def get_purchase_by_reference(db: Session, payment_reference: str) -> Optional[models.CreditPackPurchase]:
    return (
        db.query(models.CreditPackPurchase)
        .filter(models.CreditPackPurchase.payment_reference == payment_reference)
        .first()
    )


def record_credit_pack_purchase(db: Session, **fields) -> models.CreditPackPurchase:
    purchase = models.CreditPackPurchase(**fields)
    db.add(purchase)
    db.commit()
    db.refresh(purchase)
    return purchase
