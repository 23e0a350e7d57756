"""Builders for Stripe webhook payloads used across the test suite"""
import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

from billing.services.plan_service import get_plans

HOBBY_PRICE_ID = get_plans()["hobby"].price_id
PRO_PRICE_ID = get_plans()["pro"].price_id
BUSINESS_PRICE_ID = get_plans()["business"].price_id
UNKNOWN_PRICE_ID = "price_not_in_plan_table"

PERIOD_START = 1767225600  # 2026-01-01T00:00:00Z
PERIOD_END = 1769904000  # 2026-02-01T00:00:00Z


def make_event(
    event_type: str,
    obj: Dict[str, Any],
    event_id: str = "evt_test123",
    previous_attributes: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    data = {"object": obj}
    if previous_attributes is not None:
        data["previous_attributes"] = previous_attributes
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": PERIOD_START,
        "livemode": False,
        "data": data,
    }


def encode(event: Dict[str, Any]) -> bytes:
    return json.dumps(event).encode("utf-8")


def sign(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header value for ``payload``"""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def subscription_object(
    subscription_id: str = "sub_test123",
    customer: str = "cus_test123",
    price_id: str = PRO_PRICE_ID,
    status: str = "active",
    with_period: bool = True
) -> Dict[str, Any]:
    obj = {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "cancel_at_period_end": False,
        "canceled_at": None,
        "trial_end": None,
        "items": {"object": "list", "data": [{"id": "si_test123", "price": {"id": price_id}}]},
    }
    if with_period:
        obj["current_period_start"] = PERIOD_START
        obj["current_period_end"] = PERIOD_END
    return obj


def invoice_object(
    invoice_id: str = "in_123",
    customer: str = "cus_test123",
    subscription: Optional[str] = "sub_test123",
    price_id: str = PRO_PRICE_ID
) -> Dict[str, Any]:
    return {
        "id": invoice_id,
        "object": "invoice",
        "customer": customer,
        "subscription": subscription,
        "lines": {
            "object": "list",
            "data": [
                {"id": "il_1", "type": "subscription", "proration": False, "amount": 2900, "price": {"id": price_id}},
            ],
        },
    }


def checkout_session_object(
    session_id: str = "cs_test123",
    user_id: Any = None,
    customer: str = "cus_test123",
    subscription: Optional[str] = "sub_test123",
    invoice: Optional[str] = "in_123",
    mode: str = "subscription"
) -> Dict[str, Any]:
    return {
        "id": session_id,
        "object": "checkout.session",
        "mode": mode,
        "customer": customer,
        "subscription": subscription,
        "invoice": invoice,
        "metadata": {"user_id": str(user_id)} if user_id is not None else {},
    }


def charge_object(
    charge_id: str = "ch_123",
    customer: str = "cus_test123",
    invoice: Optional[str] = "in_123",
    amount_refunded: int = 2900
) -> Dict[str, Any]:
    return {
        "id": charge_id,
        "object": "charge",
        "customer": customer,
        "invoice": invoice,
        "amount": 2900,
        "amount_refunded": amount_refunded,
        "refunded": amount_refunded > 0,
    }
