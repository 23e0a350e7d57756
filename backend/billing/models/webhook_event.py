"""WebhookEvent model"""
from enum import Enum
from sqlalchemy import Column, Integer, String, Text, JSON, DateTime
from datetime import datetime, timezone
from billing.models.base import Base


class WebhookEventStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    UNRECOVERABLE = "unrecoverable"


TERMINAL_STATUSES = frozenset({
    WebhookEventStatus.COMPLETED,
    WebhookEventStatus.FAILED,
    WebhookEventStatus.UNRECOVERABLE,
})


class WebhookEvent(Base):
    """Stripe webhook event log; one row per event id, never deleted"""
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(255), unique=True, nullable=False, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    status = Column(String(32), default=WebhookEventStatus.PROCESSING.value, nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    error_message = Column(Text, nullable=True)
    outcome = Column(Text, nullable=True)  # Handler outcome note, e.g. why the event was skipped
    attempts = Column(Integer, default=1, nullable=False)
    claimed_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
