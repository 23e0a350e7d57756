"""Webhook event store - idempotent claim and status tracking for Stripe events

A row is inserted in ``processing`` when an event is first seen. The unique
constraint on ``event_id`` decides which of several concurrent deliveries
owns the event; the owner later moves the row to exactly one terminal status.
"""
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from billing.core.config import settings
from billing.models.webhook_event import WebhookEvent, WebhookEventStatus

logger = logging.getLogger(__name__)


class EventStoreError(Exception):
    """The event store could not record a claim or a status change"""


@dataclass
class ClaimResult:
    is_new: bool
    existing_status: Optional[WebhookEventStatus] = None
    reclaimed: bool = False


def get_event(event_id: str, db: Session) -> Optional[WebhookEvent]:
    return db.query(WebhookEvent).filter(WebhookEvent.event_id == event_id).first()


def claim_event(
    event_id: str,
    event_type: str,
    payload: Dict[str, Any],
    db: Session,
    claim_timeout_seconds: Optional[int] = None
) -> ClaimResult:
    """
    Claim an event for processing.

    Returns ``ClaimResult(is_new=True)`` for exactly one caller per event id.
    Every other caller gets ``is_new=False`` with the status that blocked it.
    A row left in ``processing`` for longer than the claim timeout can be
    taken over by one redelivery (``reclaimed=True``).

    Raises:
        EventStoreError: the claim could not be written for a reason other
            than a concurrent claim of the same event id
    """
    if claim_timeout_seconds is None:
        claim_timeout_seconds = settings.WEBHOOK_CLAIM_TIMEOUT_SECONDS

    try:
        existing = get_event(event_id, db)
        if existing:
            status = WebhookEventStatus(existing.status)
            if status == WebhookEventStatus.PROCESSING and _reclaim_stale(event_id, claim_timeout_seconds, db):
                return ClaimResult(is_new=True, existing_status=status, reclaimed=True)
            return ClaimResult(is_new=False, existing_status=status)

        now = datetime.now(timezone.utc)
        db.add(WebhookEvent(
            event_id=event_id,
            event_type=event_type,
            status=WebhookEventStatus.PROCESSING.value,
            payload=payload,
            attempts=1,
            claimed_at=now,
            created_at=now,
        ))
        db.commit()
        return ClaimResult(is_new=True)
    except IntegrityError:
        db.rollback()
        logger.info(f"Event {event_id} claimed by a concurrent request")
        return ClaimResult(is_new=False, existing_status=WebhookEventStatus.PROCESSING)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to claim event {event_id}: {e}", exc_info=True)
        raise EventStoreError(f"Failed to claim event {event_id}: {e}") from e


def _reclaim_stale(event_id: str, claim_timeout_seconds: int, db: Session) -> bool:
    """Take over a processing row whose claim has expired; only one caller can win"""
    now = datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=claim_timeout_seconds)
    updated = db.query(WebhookEvent).filter(
        WebhookEvent.event_id == event_id,
        WebhookEvent.status == WebhookEventStatus.PROCESSING.value,
        WebhookEvent.claimed_at < cutoff,
    ).update(
        {
            WebhookEvent.claimed_at: now,
            WebhookEvent.attempts: WebhookEvent.attempts + 1,
        },
        synchronize_session=False
    )
    db.commit()
    if updated:
        logger.warning(f"Re-claimed event {event_id} stuck in processing for over {claim_timeout_seconds}s")
    return bool(updated)


def _finish(event_id: str, status: WebhookEventStatus, values: Dict[Any, Any], db: Session) -> bool:
    """Move a processing row to a terminal status; terminal rows are never touched"""
    values[WebhookEvent.status] = status.value
    values[WebhookEvent.completed_at] = datetime.now(timezone.utc)
    updated = db.query(WebhookEvent).filter(
        WebhookEvent.event_id == event_id,
        WebhookEvent.status == WebhookEventStatus.PROCESSING.value,
    ).update(values, synchronize_session=False)
    db.commit()
    if not updated:
        logger.warning(f"Event {event_id} was not in processing; status {status.value} not recorded")
    return bool(updated)


def mark_event_completed(event_id: str, db: Session, outcome: Optional[str] = None) -> bool:
    """
    Record that the handler finished.

    Raises:
        EventStoreError: the status could not be written, so the delivery
            must be answered with an error and retried
    """
    try:
        return _finish(event_id, WebhookEventStatus.COMPLETED, {WebhookEvent.outcome: outcome}, db)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to mark event {event_id} completed: {e}", exc_info=True)
        raise EventStoreError(f"Failed to mark event {event_id} completed: {e}") from e


def mark_event_failed(event_id: str, error_message: str, db: Session) -> bool:
    """Record a handler failure. The caller is already answering with an error, so write failures are only logged"""
    try:
        return _finish(event_id, WebhookEventStatus.FAILED, {WebhookEvent.error_message: error_message}, db)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to mark event {event_id} failed: {e}", exc_info=True)
        return False


def mark_event_unrecoverable(event_id: str, event_type: str, db: Session) -> bool:
    """
    Flag an event no handler exists for, so operators can find it.

    Raises:
        EventStoreError: the status could not be written
    """
    try:
        return _finish(
            event_id,
            WebhookEventStatus.UNRECOVERABLE,
            {WebhookEvent.error_message: f"Unhandled event type: {event_type}"},
            db
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to mark event {event_id} unrecoverable: {e}", exc_info=True)
        raise EventStoreError(f"Failed to mark event {event_id} unrecoverable: {e}") from e


def list_events(
    db: Session,
    limit: int = 50,
    status: Optional[WebhookEventStatus] = None,
    event_type: Optional[str] = None
) -> List[WebhookEvent]:
    """Most recent events first, optionally filtered by status and type"""
    query = db.query(WebhookEvent)
    if status:
        query = query.filter(WebhookEvent.status == status.value)
    if event_type:
        query = query.filter(WebhookEvent.event_type == event_type)
    return query.order_by(WebhookEvent.created_at.desc(), WebhookEvent.id.desc()).limit(limit).all()


def event_to_dict(event: WebhookEvent, include_payload: bool = False) -> Dict[str, Any]:
    data = {
        "id": event.id,
        "event_id": event.event_id,
        "event_type": event.event_type,
        "status": event.status,
        "error_message": event.error_message,
        "outcome": event.outcome,
        "attempts": event.attempts,
        "claimed_at": event.claimed_at.isoformat() if event.claimed_at else None,
        "completed_at": event.completed_at.isoformat() if event.completed_at else None,
        "created_at": event.created_at.isoformat() if event.created_at else None,
    }
    if include_payload:
        data["payload"] = event.payload
    return data
