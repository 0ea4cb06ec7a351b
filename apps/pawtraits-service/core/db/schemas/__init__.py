"""
Domain-split Pydantic schemas with a single aggregator.

Routers and services use `from core.db import schemas` and reference
`schemas.Commission` etc.
"""

from .audits import AuditLogBase, AuditLogCreate, AuditLog
from .commissions import (
    Commission,
    CommissionStatusUpdate,
    PartnerCommissionSummary,
    PartnerCommissionsResponse,
)
from .credits import CustomizationCreditBalance, CustomerCreditSummary
from .messaging import (
    SendMessageRequest,
    SendMessageResult,
    QueueStats,
    QueueProcessError,
    QueueProcessResult,
    TemplateTestRequest,
    TemplateTestResult,
)

__all__ = [
    # Audits
    "AuditLogBase",
    "AuditLogCreate",
    "AuditLog",
    # Commissions
    "Commission",
    "CommissionStatusUpdate",
    "PartnerCommissionSummary",
    "PartnerCommissionsResponse",
    # Credits
    "CustomizationCreditBalance",
    "CustomerCreditSummary",
    # Messaging
    "SendMessageRequest",
    "SendMessageResult",
    "QueueStats",
    "QueueProcessError",
    "QueueProcessResult",
    "TemplateTestRequest",
    "TemplateTestResult",
]
