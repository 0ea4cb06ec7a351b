"""
Messaging endpoints: queue processing for cron, queue statistics, ad-hoc
sends and template previews for operators.
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from core.api.deps import require_admin, require_cron
from core.db import schemas
from core.db.database import get_db
from core.services.message_service import MessageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messaging", tags=["messaging"])


def _process_queue_blocking(db: Session, batch_size: int):
    # Runs in a worker thread with its own event loop; queue bookkeeping is synchronous SQLAlchemy.
    return asyncio.run(MessageService(db).process_message_queue(batch_size=batch_size))


@router.post("/queue/process", response_model=schemas.QueueProcessResult, dependencies=[Depends(require_cron)])
async def process_queue(
    batch_size: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    result = await run_in_threadpool(_process_queue_blocking, db, batch_size)
    logger.info("queue_process_endpoint processed=%d failed=%d", result["processed"], result["failed"])
    return result


@router.get("/queue/stats", response_model=schemas.QueueStats)
def queue_stats(
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    return MessageService(db).queue_stats()


@router.post("/send", response_model=schemas.SendMessageResult)
async def send_message(
    request: schemas.SendMessageRequest,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    service = MessageService(db)
    result = await run_in_threadpool(
        service.send_message,
        template_key=request.template_key,
        recipient_type=request.recipient_type,
        recipient_id=request.recipient_id,
        recipient_email=request.recipient_email,
        recipient_phone=request.recipient_phone,
        variables=request.variables,
        priority=request.priority,
        scheduled_for=request.scheduled_for,
        metadata=request.metadata,
    )
    logger.info("admin_send_message by=%s template=%s success=%s", admin["email"], request.template_key, result["success"])
    return result


@router.post("/templates/{template_key}/test", response_model=schemas.TemplateTestResult)
def test_message_template(
    template_key: str,
    request: schemas.TemplateTestRequest,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    result = MessageService(db).test_template(template_key, request.variables)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return result
