"""
Gelato fulfillment callbacks: order status, item status, tracking codes and
delivery estimates.
"""
from __future__ import annotations

import hmac
import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from core import audit
from core.audit import AuditAction, AuditStatus
from core.db import models
from core.db.repositories import orders as order_repo

logger = logging.getLogger(__name__)

GELATO_STATUS_MAP = {
    'created': 'confirmed',
    'uploading': 'processing',
    'passed': 'confirmed',
    'in_production': 'printing',
    'printed': 'printed',
    'shipped': 'shipped',
    'in_transit': 'in_transit',
    'delivered': 'delivered',
    'failed': 'fulfillment_error',
    'canceled': 'cancelled',
    'on_hold': 'on_hold',
}
DEFAULT_ORDER_STATUS = 'processing'
NOTIFY_GELATO_STATUSES = frozenset({'printed', 'shipped', 'delivered', 'failed', 'on_hold'})


def map_gelato_status(gelato_status: Optional[str]) -> str:
    return GELATO_STATUS_MAP.get(gelato_status or '', DEFAULT_ORDER_STATUS)


def verify_gelato_secret(signature: Optional[str]) -> bool:
    """True when no secret is configured or ``signature`` matches it."""
    secret = os.getenv('GELATO_WEBHOOK_SECRET')
    if not secret:
        return True
    if not signature:
        return False
    return hmac.compare_digest(signature.encode('utf-8'), secret.encode('utf-8'))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class GelatoWebhookService:
    def __init__(self, db: Session, notifications=None):
        self.db = db
        if notifications is None:
            from core.services.notification_service import NotificationService
            notifications = NotificationService(db)
        self.notifications = notifications

    def handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        event_type = event.get('eventType') or event.get('type') or event.get('event_type')
        logger.info(
            "gelato_event_received type=%s order_id=%s reference=%s",
            event_type, event.get('orderId'), event.get('orderReferenceId'),
        )
        handlers: Dict[str, Callable[[models.Order, Dict[str, Any]], None]] = {
            'order_status_updated': self._order_status_updated,
            'order_item_status_updated': self._item_status_updated,
            'order_item_tracking_code_updated': self._tracking_code_updated,
            'order_delivery_estimate_updated': self._delivery_estimate_updated,
        }
        handler = handlers.get(event_type)
        if handler is None:
            logger.info("gelato_event_unhandled type=%s", event_type)
            return {'received': True}

        order = order_repo.find_order_for_fulfillment_event(
            self.db,
            event.get('orderReferenceId') or event.get('order_reference_id'),
            event.get('orderId') or event.get('order_id'),
        )
        if order is None:
            logger.error(
                "gelato_order_not_found reference=%s gelato_id=%s",
                event.get('orderReferenceId'), event.get('orderId'),
            )
            return {'received': True}
        handler(order, event)
        return {'received': True}

    def _order_status_updated(self, order: models.Order, event: Dict[str, Any]) -> None:
        gelato_order = event.get('order') or {}
        gelato_status = gelato_order.get('status') or event.get('status')
        new_status = map_gelato_status(gelato_status)
        order_repo.update_order(
            self.db,
            order,
            status=new_status,
            gelato_status=gelato_status,
            metadata={
                'last_gelato_update': _now_iso(),
                'gelato_fulfillment_status': gelato_order.get('fulfillmentStatus') or event.get('fulfillmentStatus'),
            },
        )
        logger.info("gelato_order_status order=%s status=%s gelato=%s", order.order_number, new_status, gelato_status)
        if new_status == 'fulfillment_error':
            audit.log_order(
                self.db,
                order_id=order.id,
                action=AuditAction.FULFILLMENT_FAILED,
                actor=audit.ACTOR_GELATO_WEBHOOK,
                status=AuditStatus.FAILURE,
                reason=f"Gelato reported status {gelato_status}",
                metadata={'gelato_order_id': order.gelato_order_id},
            )
        if gelato_status in NOTIFY_GELATO_STATUSES:
            self.notifications.notify_order_status_update(order, new_status)

    def _item_status_updated(self, order: models.Order, event: Dict[str, Any]) -> None:
        item = event.get('orderItem') or {}
        history = list((order.metadata_json or {}).get('item_status_history') or [])
        history.append({
            'item_id': item.get('id'),
            'status': item.get('status'),
            'updated_at': _now_iso(),
            'fulfillment_country': item.get('fulfillmentCountry'),
            'facility_id': item.get('fulfillmentFacilityId'),
        })
        order_repo.update_order(
            self.db, order, metadata={'item_status_history': history, 'last_item_update': _now_iso()}
        )
        logger.info("gelato_item_status order=%s item=%s status=%s", order.order_number, item.get('id'), item.get('status'))

    def _tracking_code_updated(self, order: models.Order, event: Dict[str, Any]) -> None:
        item = event.get('orderItem') or {}
        shipped_at = datetime.now(timezone.utc)
        order_repo.update_order(
            self.db,
            order,
            tracking_code=item.get('trackingCode'),
            tracking_url=item.get('trackingUrl'),
            carrier_name=item.get('shipmentMethodName'),
            shipped_at=shipped_at,
            status='shipped',
            gelato_status='shipped',
            metadata={
                'tracking_info': {
                    'tracking_code': item.get('trackingCode'),
                    'tracking_url': item.get('trackingUrl'),
                    'shipment_method': item.get('shipmentMethodName'),
                    'fulfillment_country': item.get('fulfillmentCountry'),
                    'facility_id': item.get('fulfillmentFacilityId'),
                    'shipped_at': shipped_at.isoformat(),
                },
            },
        )
        logger.info("gelato_tracking order=%s code=%s", order.order_number, item.get('trackingCode'))
        self.notifications.notify_order_shipped(order)

    def _delivery_estimate_updated(self, order: models.Order, event: Dict[str, Any]) -> None:
        raw = event.get('estimatedDeliveryDate')
        try:
            estimate = datetime.fromisoformat(str(raw).replace('Z', '+00:00'))
        except ValueError:
            logger.warning("gelato_delivery_estimate_invalid order=%s value=%s", order.order_number, raw)
            return
        if estimate.tzinfo is None:
            estimate = estimate.replace(tzinfo=timezone.utc)
        order_repo.update_order(
            self.db, order, estimated_delivery=estimate, metadata={'delivery_estimate_updated': _now_iso()}
        )
        logger.info("gelato_delivery_estimate order=%s estimate=%s", order.order_number, raw)
