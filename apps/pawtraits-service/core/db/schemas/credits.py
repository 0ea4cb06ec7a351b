import uuid
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class CustomizationCreditBalance(BaseModel):
    credits_remaining: int
    credits_purchased: int
    credits_used: int
    total_generations: int
    total_spent_amount: int
    last_purchase_date: Optional[datetime] = None


class CustomerCreditSummary(BaseModel):
    customer_id: uuid.UUID
    email: str
    current_credit_balance: int
    available_credits_earned: int
    redeemed_credits: int
    customization_credits: CustomizationCreditBalance
