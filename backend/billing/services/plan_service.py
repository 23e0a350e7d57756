"""Subscription plan table and credit arithmetic.

Everything here is a pure lookup over the configured plan table: no database
access and no Stripe calls. Callers must treat an unknown price id as an
error, never fall back to a default plan.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional

from billing.core.config import settings


class UnknownPriceError(ValueError):
    """Raised when a Stripe price id is not part of the plan table"""


@dataclass(frozen=True)
class PlanDescriptor:
    key: str
    name: str
    price_id: str
    credits_per_month: int
    max_rollover: int
    # None when the plan has no trial period
    trial_credits: Optional[int] = None
    # Trials that granted fewer credits than a full month are topped up on conversion
    trial_topped_up_on_conversion: bool = False


# (key, display name, settings field holding the price id, monthly credits)
_PLAN_DEFINITIONS = (
    ("hobby", "Hobby", "STRIPE_PRICE_HOBBY_MONTHLY", 200),
    ("pro", "Professional", "STRIPE_PRICE_PRO_MONTHLY", 1000),
    ("business", "Business", "STRIPE_PRICE_BUSINESS_MONTHLY", 5000),
)


def _trial_fields(key: str, credits: int) -> Dict[str, object]:
    if key not in settings.TRIAL_ENABLED_PLANS:
        return {}
    custom = settings.TRIAL_CREDITS > 0
    return {
        "trial_credits": settings.TRIAL_CREDITS if custom else credits,
        "trial_topped_up_on_conversion": custom,
    }


@lru_cache(maxsize=1)
def get_plans() -> Dict[str, PlanDescriptor]:
    """All plans keyed by plan key"""
    plans = {}
    for key, name, price_setting, credits in _PLAN_DEFINITIONS:
        plans[key] = PlanDescriptor(
            key=key,
            name=name,
            price_id=getattr(settings, price_setting),
            credits_per_month=credits,
            max_rollover=credits * settings.ROLLOVER_MULTIPLIER,
            **_trial_fields(key, credits),
        )
    return plans


def reload_plans():
    """Rebuild the plan table from current settings"""
    get_plans.cache_clear()
    _plans_by_price_id.cache_clear()


@lru_cache(maxsize=1)
def _plans_by_price_id() -> Dict[str, PlanDescriptor]:
    return {plan.price_id: plan for plan in get_plans().values()}


def resolve_plan(price_id: Optional[str]) -> Optional[PlanDescriptor]:
    """Map a Stripe price id to its plan, or None if the price id is unknown"""
    if not price_id:
        return None
    return _plans_by_price_id().get(price_id)


def assert_known_price_id(price_id: Optional[str]) -> PlanDescriptor:
    plan = resolve_plan(price_id)
    if plan is None:
        raise UnknownPriceError(f"Unknown price id: {price_id}")
    return plan


def calculate_rollover_grant(current_balance: int, plan: PlanDescriptor) -> int:
    """Credits to grant on renewal without pushing the balance past the plan's rollover cap"""
    headroom = plan.max_rollover - current_balance
    return max(0, min(plan.credits_per_month, headroom))


def calculate_upgrade_credits(previous: PlanDescriptor, new: PlanDescriptor) -> int:
    """Credits owed when switching plans mid-period; downgrades keep existing credits"""
    return max(0, new.credits_per_month - previous.credits_per_month)


def calculate_trial_conversion_credits(current_balance: int, plan: PlanDescriptor) -> int:
    """Credits that bring a converted trial up to one full month, counting what is left of the trial grant"""
    if not plan.trial_topped_up_on_conversion:
        return 0
    return max(0, plan.credits_per_month - current_balance)
