"""
Inbound webhooks from Stripe (payments) and Gelato (fulfillment).

Both routes read the raw body and hand the synchronous services off to the
threadpool so the event loop is not blocked on database or HTTP calls.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from starlette.responses import JSONResponse
from sqlalchemy.orm import Session

from core.db.database import get_db
from core.services.gelato_webhook_service import GelatoWebhookService, verify_gelato_secret
from core.services.stripe_webhook_service import (
    StripeWebhookService,
    WebhookSignatureError,
    verify_and_parse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

PROCESSING_FAILED = {"error": "Webhook processing failed"}


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
):
    payload = await request.body()
    try:
        event = verify_and_parse(payload, stripe_signature)
    except WebhookSignatureError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)

    try:
        result = await run_in_threadpool(StripeWebhookService(db).handle_event, event)
    except Exception:
        logger.exception("stripe_webhook_failed id=%s type=%s", event.get("id"), event.get("type"))
        return JSONResponse(PROCESSING_FAILED, status_code=500)
    return result


@router.post("/gelato")
async def gelato_webhook(
    request: Request,
    x_gelato_signature: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
):
    if not verify_gelato_secret(x_gelato_signature):
        logger.warning("gelato_webhook_signature_invalid")
        return JSONResponse({"error": "Invalid webhook signature"}, status_code=401)

    payload = await request.body()
    try:
        event = json.loads(payload)
    except ValueError:
        return JSONResponse({"error": "Invalid JSON payload"}, status_code=400)
    if not isinstance(event, dict):
        return JSONResponse({"error": "Invalid JSON payload"}, status_code=400)

    try:
        return await run_in_threadpool(GelatoWebhookService(db).handle_event, event)
    except Exception:
        logger.exception("gelato_webhook_failed type=%s", event.get("eventType"))
        return JSONResponse(PROCESSING_FAILED, status_code=500)
