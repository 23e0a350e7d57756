import logging
import stripe
from typing import Dict, Optional, Any, List
from datetime import datetime, timezone

from billing.core.config import settings

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY


# ============================================================================
# WEBHOOK SIGNATURE VERIFICATION
# ============================================================================

def verify_webhook_signature(payload: bytes, sig_header: str, secret: str) -> None:
    """
    Verify the Stripe-Signature header against the raw request body.

    Raises:
        stripe.SignatureVerificationError: signature missing, stale or wrong
    """
    stripe.WebhookSignature.verify_header(
        payload.decode("utf-8"),
        sig_header,
        secret,
        tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS
    )


# ============================================================================
# CORE STRIPE OPERATIONS
# ============================================================================

def retrieve_subscription(subscription_id: str) -> Any:
    """
    Fetch the authoritative subscription from Stripe.

    Raises:
        stripe.StripeError: API failure
    """
    return stripe.Subscription.retrieve(subscription_id, expand=['items.data.price'])


# ============================================================================
# STRIPE OBJECT ACCESS HELPER
# ============================================================================

def get_stripe_value(obj: Any, key: str, default=None):
    """Safely extract value from Stripe object (supports both dict and attribute access)."""
    if obj is None:
        return default
    # Plain dicts first; dict.items would shadow an 'items' key
    if isinstance(obj, dict):
        value = obj.get(key, default)
        return default if value is None else value
    # Attribute access (Stripe objects)
    if hasattr(obj, key):
        value = getattr(obj, key, default)
        if value is not None:
            return value
    return default


def get_object_id(value: Any) -> Optional[str]:
    """Id of an expandable field, which Stripe sends as either an id string or an object"""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return get_stripe_value(value, 'id')


def timestamp_to_datetime(ts: Optional[int]) -> Optional[datetime]:
    if not ts:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _list_data(obj: Any, key: str) -> List[Any]:
    container = get_stripe_value(obj, key)
    data = get_stripe_value(container, 'data', [])
    return list(data or [])


def _price_id_of(item: Any) -> Optional[str]:
    price_id = get_object_id(get_stripe_value(item, 'price'))
    if not price_id:
        # Legacy invoice lines carry a 'plan' instead of a 'price'
        price_id = get_object_id(get_stripe_value(item, 'plan'))
    return price_id


def extract_subscription_price_id(subscription: Any) -> Optional[str]:
    """Price id of the first subscription item"""
    for item in _list_data(subscription, 'items'):
        price_id = _price_id_of(item)
        if price_id:
            return price_id
    return None


def extract_previous_price_id(previous_attributes: Optional[Dict[str, Any]]) -> Optional[str]:
    """Price id a subscription had before an update, from event.data.previous_attributes"""
    if not previous_attributes:
        return None
    for item in _list_data(previous_attributes, 'items'):
        price_id = _price_id_of(item)
        if price_id:
            return price_id
    return get_object_id(get_stripe_value(previous_attributes, 'plan'))


def extract_invoice_subscription_id(invoice: Any) -> Optional[str]:
    """Subscription an invoice belongs to (top-level field, or parent details on newer API versions)"""
    subscription_id = get_object_id(get_stripe_value(invoice, 'subscription'))
    if subscription_id:
        return subscription_id
    parent = get_stripe_value(invoice, 'parent')
    details = get_stripe_value(parent, 'subscription_details')
    return get_object_id(get_stripe_value(details, 'subscription'))


def extract_invoice_price_id(invoice: Any) -> Optional[str]:
    """
    Price id the invoice was billed for.

    Preference: the regular subscription line, then a positive proration line
    (plan change), then any line that carries a price.
    """
    lines = _list_data(invoice, 'lines')

    for line in lines:
        if get_stripe_value(line, 'type') == 'subscription' and not get_stripe_value(line, 'proration', False):
            price_id = _price_id_of(line)
            if price_id:
                return price_id

    for line in lines:
        if get_stripe_value(line, 'proration', False) and (get_stripe_value(line, 'amount', 0) or 0) > 0:
            price_id = _price_id_of(line)
            if price_id:
                return price_id

    for line in lines:
        price_id = _price_id_of(line)
        if price_id:
            return price_id

    return None
