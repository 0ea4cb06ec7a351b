import uuid
from sqlalchemy import Column, String, Text, Integer, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from .base import Base, now_utc


class MessageTemplate(Base):
    __tablename__ = 'message_templates'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_key = Column(String(100), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False, default='transactional')
    # ['email', 'sms', 'inbox']
    channels = Column(JSONB, nullable=False, default=list)
    # ['customer', 'partner', 'influencer', 'admin']
    user_types = Column(JSONB, nullable=False, default=list)
    email_subject_template = Column(Text, nullable=True)
    email_body_template = Column(Text, nullable=True)
    sms_body_template = Column(Text, nullable=True)
    inbox_title_template = Column(Text, nullable=True)
    inbox_body_template = Column(Text, nullable=True)
    inbox_action_url = Column(String(500), nullable=True)
    inbox_action_label = Column(String(100), nullable=True)
    inbox_icon = Column(String(50), nullable=True)
    variables = Column(JSONB, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    priority = Column(String(20), nullable=False, default='normal')
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)


class MessageQueue(Base):
    __tablename__ = 'message_queue'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_key = Column(String(100), nullable=False)
    recipient_type = Column(String(20), nullable=False)
    recipient_id = Column(UUID(as_uuid=True), nullable=True)
    recipient_email = Column(String(320), nullable=True)
    recipient_phone = Column(String(50), nullable=True)
    channel = Column(String(10), nullable=False)
    subject = Column(Text, nullable=True)
    body = Column(Text, nullable=False)
    variables = Column(JSONB, nullable=True)
    # pending|processing|sent|failed|cancelled
    status = Column(String(20), nullable=False, default='pending')
    priority = Column(String(20), nullable=False, default='normal')
    scheduled_for = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    external_id = Column(String(255), nullable=True)
    metadata_json = Column('metadata', JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    __table_args__ = (
        Index('idx_message_queue_status_scheduled', 'status', 'scheduled_for'),
        Index('idx_message_queue_recipient', 'recipient_type', 'recipient_id'),
    )


class UserMessage(Base):
    __tablename__ = 'user_messages'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recipient_type = Column(String(20), nullable=False)
    recipient_id = Column(UUID(as_uuid=True), nullable=False)
    template_key = Column(String(100), nullable=True)
    message_type = Column(String(50), nullable=False, default='transactional')
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    action_url = Column(String(500), nullable=True)
    action_label = Column(String(100), nullable=True)
    icon = Column(String(50), nullable=True)
    related_type = Column(String(50), nullable=True)
    related_id = Column(UUID(as_uuid=True), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    queue_message_id = Column(UUID(as_uuid=True), ForeignKey('message_queue.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    __table_args__ = (
        Index('idx_user_messages_recipient', 'recipient_type', 'recipient_id', 'is_read'),
    )
