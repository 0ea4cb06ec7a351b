import uuid
from datetime import datetime
from typing import Optional, Dict, Any, List, Literal
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Commission(BaseModel):
    id: uuid.UUID
    order_id: Optional[uuid.UUID] = None
    order_amount: int
    recipient_type: str
    recipient_id: uuid.UUID
    recipient_email: Optional[str] = None
    referrer_type: Optional[str] = None
    referrer_id: Optional[uuid.UUID] = None
    referral_code: Optional[str] = None
    commission_type: str
    commission_rate: float
    commission_amount: int
    status: str
    paid_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("metadata_json", "metadata")
    )
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class CommissionStatusUpdate(BaseModel):
    status: Literal['pending', 'approved', 'paid', 'disputed']


class PartnerCommissionSummary(BaseModel):
    total_commissions: int
    paid_commissions: int
    unpaid_commissions: int
    total_amount: int
    paid_amount: int
    unpaid_amount: int
    initial_commissions: int
    lifetime_commissions: int


class PartnerCommissionsResponse(BaseModel):
    partner_id: uuid.UUID
    summary: PartnerCommissionSummary
    commissions: List[Commission]
