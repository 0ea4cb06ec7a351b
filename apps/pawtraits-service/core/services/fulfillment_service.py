"""
Gelato fulfillment dispatch for paid orders.

Builds the print request from the buyer's cart (or, when the cart is gone,
from the item slots the storefront wrote into the payment metadata), posts
it to Gelato and records the resulting order items.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core import audit
from core.audit import AuditAction, AuditStatus
from core.db import models
from core.db.repositories import customers as customer_repo
from core.db.repositories import orders as order_repo
from core.services.gelato_client import GelatoClient, GelatoError
from core.utils.feature_flags import fulfillment_enabled
from core.utils.money import parse_pence, round_half_up

logger = logging.getLogger(__name__)

MAX_METADATA_ITEMS = 10

COUNTRY_CODES = {
    'United Kingdom': 'GB',
    'United States': 'US',
    'Canada': 'CA',
    'Australia': 'AU',
    'Germany': 'DE',
    'France': 'FR',
    'Spain': 'ES',
    'Italy': 'IT',
    'Netherlands': 'NL',
    'Sweden': 'SE',
    'Norway': 'NO',
    'Denmark': 'DK',
}
DEFAULT_COUNTRY_CODE = 'GB'

MEDIUM_PRODUCT_UIDS = {
    'canvas': 'premium-canvas-prints_premium-canvas-portrait-210gsm',
    'paper': 'premium-posters_premium-poster-portrait-210gsm',
    'metal': 'metal-prints_metal-print-white-base',
    'aluminum': 'metal-prints_metal-print-white-base',
    'acrylic': 'acrylic-prints_acrylic-print-3mm',
}


class PrintImageError(GelatoError):
    """Raised when an item's image has no printable URL."""


def country_code(country: Optional[str]) -> str:
    if not country:
        return DEFAULT_COUNTRY_CODE
    if len(country) == 2 and country.isupper():
        return country
    return COUNTRY_CODES.get(country, DEFAULT_COUNTRY_CODE)


def product_uid_for(item: Dict[str, Any]) -> str:
    if item.get('gelato_sku'):
        return item['gelato_sku']
    medium = (item.get('medium') or 'Canvas').lower()
    return MEDIUM_PRODUCT_UIDS.get(medium, MEDIUM_PRODUCT_UIDS['canvas'])


def print_url_for(image: Optional[models.ImageCatalog]) -> Optional[str]:
    """Full-resolution URL Gelato should download for ``image``."""
    if image is None:
        return None
    variants = image.image_variants or {}
    original = variants.get('original') if isinstance(variants, dict) else None
    if isinstance(original, dict) and original.get('url'):
        return original['url']
    cloud_name = os.getenv('CLOUDINARY_CLOUD_NAME')
    if image.cloudinary_public_id and cloud_name:
        return f"https://res.cloudinary.com/{cloud_name}/image/upload/{image.cloudinary_public_id}"
    return image.public_url or None


def items_from_metadata(metadata: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Rebuild cart lines from the ``item{n}_*`` metadata slots."""
    items = []
    for index in range(1, MAX_METADATA_ITEMS + 1):
        prefix = f"item{index}_"
        image_id = metadata.get(f"{prefix}id")
        if not image_id:
            continue
        unit_price = parse_pence(metadata.get(f"{prefix}unit_price"))
        items.append({
            'image_id': image_id,
            'product_id': metadata.get(f"{prefix}product_id"),
            'title': metadata.get(f"{prefix}title") or 'Custom Print',
            'quantity': parse_pence(metadata.get(f"{prefix}qty"), default=1) or 1,
            'unit_price': unit_price,
            'original_price': parse_pence(metadata.get(f"{prefix}original_price"), default=unit_price),
            'gelato_sku': metadata.get(f"{prefix}gelato_uid"),
            'width_cm': parse_pence(metadata.get(f"{prefix}width"), default=30),
            'height_cm': parse_pence(metadata.get(f"{prefix}height"), default=30),
            'medium': metadata.get(f"{prefix}medium") or 'Canvas',
            'format': metadata.get(f"{prefix}format") or 'Portrait',
        })
    return items


def items_from_cart(cart_items: List[models.CartItem]) -> List[Dict[str, Any]]:
    items = []
    for cart_item in cart_items:
        data = cart_item.product_data or {}
        fmt = data.get('format')
        if isinstance(fmt, dict):
            fmt = fmt.get('name')
        medium = data.get('medium')
        if isinstance(medium, dict):
            medium = medium.get('name')
        items.append({
            'image_id': cart_item.image_id,
            'product_id': cart_item.product_id,
            'title': cart_item.image_title or 'Custom Print',
            'quantity': cart_item.quantity or 1,
            'unit_price': cart_item.price_pence,
            'original_price': data.get('original_price', cart_item.price_pence),
            'gelato_sku': data.get('gelato_sku'),
            'width_cm': data.get('width_cm', 30),
            'height_cm': data.get('height_cm', 30),
            'medium': medium or 'Canvas',
            'format': fmt or 'Portrait',
        })
    return items


def map_order_to_gelato(order: models.Order, items: List[Dict[str, Any]], metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Translate an order plus resolved print lines into a Gelato order request.

    Each entry in ``items`` must already carry ``print_url``.
    """
    is_partner_order = str(metadata.get('isPartnerOrder', '')).lower() == 'true'
    gelato_metadata: Dict[str, Any] = {
        'orderId': str(order.id),
        'paymentIntentId': order.payment_intent_id,
        'customerEmail': order.customer_email,
        'isPartnerOrder': is_partner_order,
    }
    if is_partner_order:
        gelato_metadata['partnerDiscount'] = metadata.get('partnerDiscount')
        gelato_metadata['businessName'] = metadata.get('businessName')
        if str(metadata.get('isForClient', '')).lower() == 'true':
            gelato_metadata['clientName'] = metadata.get('clientName')
            gelato_metadata['clientEmail'] = metadata.get('clientEmail')

    return {
        'orderReferenceId': order.order_number,
        'customerReferenceId': order.customer_email,
        'currency': order.currency or 'GBP',
        'orderType': 'order',
        'shippingAddress': {
            'firstName': order.shipping_first_name or '',
            'lastName': order.shipping_last_name or '',
            'addressLine1': order.shipping_address_line_1 or '',
            'addressLine2': order.shipping_address_line_2 or '',
            'city': order.shipping_city or '',
            'postCode': order.shipping_postcode or '',
            'country': country_code(order.shipping_country),
            'email': order.customer_email,
        },
        'items': [
            {
                'itemReferenceId': f"{order.order_number}-{index}",
                'productUid': product_uid_for(item),
                'files': [{'type': 'default', 'url': item['print_url']}],
                'quantity': item['quantity'],
            }
            for index, item in enumerate(items, start=1)
        ],
        'metadata': gelato_metadata,
    }


class FulfillmentService:
    def __init__(self, db: Session, client: Optional[GelatoClient] = None):
        self.db = db
        self.client = client or GelatoClient()

    def _load_items(self, order: models.Order, receipt_email: Optional[str], metadata: Dict[str, Any]):
        profile = None
        if receipt_email:
            profile = customer_repo.get_user_profile_by_email(self.db, receipt_email)
        if profile is None:
            profile = customer_repo.get_user_profile_by_email(self.db, order.customer_email)
        if profile is not None:
            cart_items = order_repo.list_cart_items(self.db, profile.id)
            if cart_items:
                return items_from_cart(cart_items)
        return items_from_metadata(metadata)

    def _resolve_print_urls(self, items: List[Dict[str, Any]]) -> None:
        for item in items:
            image = order_repo.get_image(self.db, item['image_id'])
            url = print_url_for(image)
            if not url:
                raise PrintImageError(f"No printable image found for image {item['image_id']}")
            item['print_url'] = url
            item['catalog_image_id'] = image.id

    def _record_order_items(self, order: models.Order, items: List[Dict[str, Any]], amount: int) -> None:
        if order_repo.list_order_items(self.db, order.id):
            return
        total_qty = sum(item['quantity'] for item in items) or 1
        fallback_unit = round_half_up(amount / total_qty)
        rows = []
        for item in items:
            unit_price = item.get('unit_price') or fallback_unit
            rows.append({
                'product_id': item.get('product_id'),
                'image_id': item['catalog_image_id'],
                'image_url': item['print_url'],
                'image_title': item['title'],
                'quantity': item['quantity'],
                'unit_price': unit_price,
                'total_price': unit_price * item['quantity'],
                'gelato_sku': product_uid_for(item),
                'product_data': {
                    'gelato_sku': product_uid_for(item),
                    'width_cm': item.get('width_cm'),
                    'height_cm': item.get('height_cm'),
                    'medium': item.get('medium'),
                    'format': item.get('format'),
                    'original_price': item.get('original_price'),
                },
            })
        order_repo.create_order_items(self.db, order.id, rows)

    def dispatch_order(
        self,
        order: models.Order,
        amount: int,
        metadata: Dict[str, Any],
        receipt_email: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Send ``order`` to Gelato. Returns the Gelato order or None when skipped or failed."""
        if not fulfillment_enabled():
            logger.info("fulfillment_disabled order=%s", order.order_number)
            return None
        try:
            items = self._load_items(order, receipt_email, metadata)
            if not items:
                logger.warning("fulfillment_no_items order=%s", order.order_number)
                return None
            self._resolve_print_urls(items)

            gelato_order = self.client.create_order(map_order_to_gelato(order, items, metadata))
            order_repo.update_order(
                self.db,
                order,
                gelato_order_id=gelato_order.get('id'),
                gelato_status=gelato_order.get('status') or gelato_order.get('fulfillmentStatus') or 'created',
            )
        except Exception as exc:
            self.db.rollback()
            logger.exception("fulfillment_failed order=%s", order.order_number)
            order_repo.update_order(self.db, order, status='fulfillment_error', error_message=str(exc))
            audit.log_order(
                self.db,
                order_id=order.id,
                action=AuditAction.FULFILLMENT_FAILED,
                status=AuditStatus.FAILURE,
                reason=str(exc),
            )
            return None

        logger.info(
            "fulfillment_dispatched order=%s gelato_id=%s items=%d",
            order.order_number, order.gelato_order_id, len(items),
        )
        audit.log_order(
            self.db,
            order_id=order.id,
            action=AuditAction.FULFILLMENT_DISPATCH,
            metadata={'gelato_order_id': order.gelato_order_id, 'items': len(items)},
        )
        # Gelato already holds the order; a bookkeeping failure must not mark it as failed.
        try:
            self._record_order_items(order, items, amount)
        except Exception:
            self.db.rollback()
            logger.exception(
                "order_items_record_failed order=%s gelato_id=%s", order.order_number, order.gelato_order_id
            )
        return gelato_order
