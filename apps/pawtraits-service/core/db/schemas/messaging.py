import uuid
from datetime import datetime
from typing import Optional, Dict, Any, List, Literal
from pydantic import BaseModel, Field

RecipientType = Literal['customer', 'partner', 'influencer', 'admin']
Priority = Literal['low', 'normal', 'high', 'critical']


class SendMessageRequest(BaseModel):
    template_key: str
    recipient_type: RecipientType
    recipient_id: Optional[uuid.UUID] = None
    recipient_email: Optional[str] = None
    recipient_phone: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    priority: Optional[Priority] = None
    scheduled_for: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None


class SendMessageResult(BaseModel):
    success: bool
    message_ids: List[uuid.UUID] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class QueueStats(BaseModel):
    total: int
    pending: int
    processing: int
    sent: int
    failed: int
    cancelled: int


class QueueProcessError(BaseModel):
    message_id: uuid.UUID
    error: str


class QueueProcessResult(BaseModel):
    processed: int
    failed: int
    skipped: int
    errors: List[QueueProcessError] = Field(default_factory=list)


class TemplateTestRequest(BaseModel):
    variables: Dict[str, Any] = Field(default_factory=dict)


class TemplateTestResult(BaseModel):
    success: bool
    subject: Optional[str] = None
    body: Optional[str] = None
    missing_variables: List[str] = Field(default_factory=list)
    error: Optional[str] = None
