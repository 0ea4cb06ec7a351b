"""
Order, order item, cart and image catalog repository functions.
"""
from __future__ import annotations

import uuid
from typing import Optional, List, Dict, Any
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from core.db import models


def get_order(db: Session, order_id: uuid.UUID) -> Optional[models.Order]:
    return db.query(models.Order).filter(models.Order.id == order_id).first()


def get_order_by_payment_intent(db: Session, payment_intent_id: str) -> Optional[models.Order]:
    return db.query(models.Order).filter(models.Order.payment_intent_id == payment_intent_id).first()


def create_order(db: Session, **fields) -> models.Order:
    metadata = fields.pop('metadata', None)
    order = models.Order(**fields, metadata_json=metadata)
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def update_order(db: Session, order: models.Order, metadata: Optional[Dict[str, Any]] = None, **fields) -> models.Order:
    """Set columns on an order; ``metadata`` is merged into the JSONB column."""
    for key, value in fields.items():
        setattr(order, key, value)
    if metadata:
        order.merge_metadata(**metadata)
    db.commit()
    db.refresh(order)
    return order


def count_other_orders_for_email(db: Session, email: str, exclude_order_id: uuid.UUID) -> int:
    return (
        db.query(func.count(models.Order.id))
        .filter(
            func.lower(models.Order.customer_email) == email.strip().lower(),
            models.Order.id != exclude_order_id,
        )
        .scalar()
        or 0
    )


def find_order_for_fulfillment_event(
    db: Session,
    order_reference_id: Optional[str],
    gelato_order_id: Optional[str],
) -> Optional[models.Order]:
    """Resolve a Gelato callback to an order.

    ``orderReferenceId`` is our order number; older orders were sent with the
    order UUID, so both are accepted before falling back to Gelato's own id.
    """
    if order_reference_id:
        clauses = [models.Order.order_number == order_reference_id]
        try:
            clauses.append(models.Order.id == uuid.UUID(str(order_reference_id)))
        except ValueError:
            pass
        order = db.query(models.Order).filter(or_(*clauses)).first()
        if order:
            return order
    if gelato_order_id:
        return db.query(models.Order).filter(models.Order.gelato_order_id == gelato_order_id).first()
    return None


def list_cart_items(db: Session, user_profile_id: uuid.UUID) -> List[models.CartItem]:
    return (
        db.query(models.CartItem)
        .filter(models.CartItem.user_profile_id == user_profile_id)
        .order_by(models.CartItem.created_at.asc())
        .all()
    )


def get_image(db: Session, image_id) -> Optional[models.ImageCatalog]:
    if not image_id:
        return None
    try:
        key = image_id if isinstance(image_id, uuid.UUID) else uuid.UUID(str(image_id))
    except ValueError:
        return None
    return db.query(models.ImageCatalog).filter(models.ImageCatalog.id == key).first()


def list_order_items(db: Session, order_id: uuid.UUID) -> List[models.OrderItem]:
    return db.query(models.OrderItem).filter(models.OrderItem.order_id == order_id).all()


def create_order_items(db: Session, order_id: uuid.UUID, items: List[Dict[str, Any]]) -> List[models.OrderItem]:
    rows = [models.OrderItem(order_id=order_id, **item) for item in items]
    db.add_all(rows)
    db.commit()
    for row in rows:
        db.refresh(row)
    return rows
