"""Admin API routes"""
import logging
import secrets
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from billing.core.config import settings
from billing.core.logging import admin_logger
from billing.db.session import get_db
from billing.models.profile import UserProfile
from billing.models.webhook_event import WebhookEventStatus
from billing.services.credit_service import get_credit_transactions
from billing.services.webhook_event_service import get_event, list_events, event_to_dict

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = logging.getLogger(__name__)


def require_admin(x_admin_key: Optional[str] = Header(None)) -> None:
    """Dependency: Require the configured admin API key"""
    if not settings.ADMIN_API_KEY:
        raise HTTPException(503, "Admin API is disabled")
    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        admin_logger.warning("Rejected admin request with invalid X-Admin-Key")
        raise HTTPException(401, "Invalid admin key")


@router.get("/webhooks/events")
def get_webhook_events(
    limit: int = Query(50, ge=1, le=200),
    status: Optional[WebhookEventStatus] = None,
    event_type: Optional[str] = None,
    _: None = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Get recent Stripe webhook events for debugging"""
    events = list_events(db, limit=limit, status=status, event_type=event_type)
    return {
        "events": [event_to_dict(e) for e in events],
        "total": len(events)
    }


@router.get("/webhooks/events/{event_id}")
def get_webhook_event(
    event_id: str,
    _: None = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Get one webhook event including its stored payload"""
    event = get_event(event_id, db)
    if not event:
        raise HTTPException(404, "Event not found")
    return event_to_dict(event, include_payload=True)


@router.get("/users/{user_id}/transactions")
def get_user_transactions_admin(
    user_id: int,
    limit: int = Query(50, ge=1, le=200),
    _: None = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Get credit transaction history for a user (admin only)"""
    profile = db.query(UserProfile).filter(UserProfile.id == user_id).first()
    if not profile:
        raise HTTPException(404, "User not found")

    return {
        "user_id": profile.id,
        "subscription_credits_balance": profile.subscription_credits_balance,
        "purchased_credits_balance": profile.purchased_credits_balance,
        "transactions": get_credit_transactions(user_id, db, limit=limit)
    }
