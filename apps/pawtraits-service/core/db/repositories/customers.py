"""
Customer, partner and user profile repository functions.
"""
from __future__ import annotations

import uuid
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.db import models


def _normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower()


def get_user_profile_by_email(db: Session, email: Optional[str]) -> Optional[models.UserProfile]:
    normalized = _normalize_email(email)
    if not normalized:
        return None
    return (
        db.query(models.UserProfile)
        .filter(func.lower(models.UserProfile.email) == normalized)
        .first()
    )


def get_customer(db: Session, customer_id: uuid.UUID) -> Optional[models.Customer]:
    return db.query(models.Customer).filter(models.Customer.id == customer_id).first()


def get_customer_by_email(db: Session, email: Optional[str]) -> Optional[models.Customer]:
    normalized = _normalize_email(email)
    if not normalized:
        return None
    return (
        db.query(models.Customer)
        .filter(func.lower(models.Customer.email) == normalized)
        .first()
    )


def get_customer_by_referral_code(db: Session, code: Optional[str]) -> Optional[models.Customer]:
    if not code:
        return None
    return (
        db.query(models.Customer)
        .filter(models.Customer.personal_referral_code == code.strip().upper())
        .first()
    )


def get_partner(db: Session, partner_id: uuid.UUID) -> Optional[models.Partner]:
    return db.query(models.Partner).filter(models.Partner.id == partner_id).first()


def adjust_credit_balance(db: Session, customer_id: uuid.UUID, delta_pence: int) -> Optional[int]:
    """Atomically add ``delta_pence`` (may be negative) to a customer's balance.

    Returns the new balance or None when the customer does not exist.
    """
    updated = (
        db.query(models.Customer)
        .filter(models.Customer.id == customer_id)
        .update(
            {models.Customer.current_credit_balance: models.Customer.current_credit_balance + delta_pence},
            synchronize_session=False,
        )
    )
    if not updated:
        db.rollback()
        return None
    db.commit()
    customer = get_customer(db, customer_id)
    db.refresh(customer)
    return customer.current_credit_balance


def set_referral_order(db: Session, customer: models.Customer, order_id: uuid.UUID) -> models.Customer:
    customer.referral_order_id = order_id
    db.commit()
    db.refresh(customer)
    return customer


def count_referred_customers(db: Session, referral_type: str, referrer_id: uuid.UUID) -> int:
    return (
        db.query(func.count(models.Customer.id))
        .filter(
            models.Customer.referral_type == referral_type,
            models.Customer.referrer_id == referrer_id,
        )
        .scalar()
        or 0
    )
