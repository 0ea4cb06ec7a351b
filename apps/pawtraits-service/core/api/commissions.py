"""
Commission ledger and customer credit endpoints.

Operators can list and update every commission; partners and customers may
read their own summaries.
"""
import logging
import uuid
from typing import Optional, List, Literal

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from core.api.deps import get_current_identity, require_admin
from core.db import schemas
from core.db.database import get_db
from core.db.repositories import commissions as commission_repo
from core.db.repositories import customers as customer_repo
from core.services.commission_service import CommissionService
from core.services.credit_service import CreditService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["commissions"])


def _ensure_owner_or_admin(identity, owner_email: Optional[str]) -> None:
    if identity["is_admin"]:
        return
    if owner_email and identity["email"] == owner_email.strip().lower():
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


@router.get("/commissions", response_model=List[schemas.Commission])
def list_commissions(
    status: Optional[str] = None,
    recipient_type: Optional[str] = None,
    commission_type: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    return commission_repo.list_commissions(
        db,
        status=status,
        recipient_type=recipient_type,
        commission_type=commission_type,
        skip=skip,
        limit=limit,
    )


@router.patch("/commissions/{commission_id}", response_model=schemas.Commission)
def update_commission_status(
    commission_id: uuid.UUID,
    update: schemas.CommissionStatusUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    try:
        commission = CommissionService(db).update_status(commission_id, update.status, actor=admin["email"])
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if commission is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Commission not found")
    logger.info("commission_status_updated id=%s status=%s by=%s", commission_id, update.status, admin["email"])
    return commission


@router.get("/partners/{partner_id}/commissions", response_model=schemas.PartnerCommissionsResponse)
def partner_commissions(
    partner_id: uuid.UUID,
    status: Optional[Literal['paid', 'unpaid']] = None,
    db: Session = Depends(get_db),
    identity=Depends(get_current_identity),
):
    partner = customer_repo.get_partner(db, partner_id)
    if not partner:
        raise HTTPException(status_code=404, detail="Partner not found")
    _ensure_owner_or_admin(identity, partner.email)
    return CommissionService(db).partner_summary(partner_id, status_filter=status)


@router.get("/customers/{customer_id}/credits", response_model=schemas.CustomerCreditSummary)
def customer_credits(
    customer_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity=Depends(get_current_identity),
):
    customer = customer_repo.get_customer(db, customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    _ensure_owner_or_admin(identity, customer.email)
    return CreditService(db).customer_summary(customer_id)
