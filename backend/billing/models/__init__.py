"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from billing.models.base import Base
from billing.models.profile import UserProfile
from billing.models.subscription import Subscription
from billing.models.credit_transaction import CreditTransaction
from billing.models.webhook_event import WebhookEvent, WebhookEventStatus

# Export all for convenience
__all__ = [
    "Base", "UserProfile", "Subscription", "CreditTransaction",
    "WebhookEvent", "WebhookEventStatus"
]
