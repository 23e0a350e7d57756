"""Stripe webhook event handlers

Each handler takes the event's ``data.object`` and a HandlerContext and
returns an Outcome, or a RetryableError when Stripe should redeliver the
event. Business conditions that a redelivery cannot fix (no profile yet,
unknown price id) are reported as skipped Outcomes and logged. A paid
invoice with an unknown price id is the exception: it fails so the event can
be replayed once the plan table knows the price.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

import stripe
from sqlalchemy.orm import Session

from billing.core.config import RuntimeMode
from billing.models.profile import UserProfile
from billing.models.subscription import Subscription
from billing.services.credit_service import (
    CreditLedgerError,
    increment_credits_with_log,
    clawback_credits_from_transaction,
    reset_subscription_credits,
)
from billing.services.plan_service import (
    PlanDescriptor,
    resolve_plan,
    calculate_rollover_grant,
    calculate_upgrade_credits,
    calculate_trial_conversion_credits,
)
from billing.services.stripe_service import (
    get_stripe_value,
    get_object_id,
    timestamp_to_datetime,
    retrieve_subscription,
    extract_subscription_price_id,
    extract_previous_price_id,
    extract_invoice_subscription_id,
    extract_invoice_price_id,
)

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_DAYS = 30


class StripeEventType(str, Enum):
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    CUSTOMER_CREATED = "customer.created"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    SUBSCRIPTION_TRIAL_WILL_END = "customer.subscription.trial_will_end"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_PAID = "invoice_payment.paid"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    INVOICE_PAYMENT_FAILED_ALIAS = "invoice_payment.failed"
    CHARGE_REFUNDED = "charge.refunded"
    CHARGE_DISPUTE_CREATED = "charge.dispute.created"
    INVOICE_PAYMENT_REFUNDED = "invoice.payment_refunded"
    SUBSCRIPTION_SCHEDULE_COMPLETED = "subscription_schedule.completed"

    @classmethod
    def parse(cls, value: str) -> Optional["StripeEventType"]:
        """Known event type for ``value``, or None"""
        try:
            return cls(value)
        except ValueError:
            return None


class OutcomeStatus(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    IGNORED = "ignored"


@dataclass
class Outcome:
    status: OutcomeStatus
    message: Optional[str] = None

    def describe(self) -> Optional[str]:
        if self.message is None:
            return None
        return f"{self.status.value}: {self.message}"


@dataclass
class RetryableError:
    """Handler failure that Stripe should retry by redelivering the event"""
    message: str
    cause: Optional[BaseException] = None


HandlerResult = Union[Outcome, RetryableError]


@dataclass
class HandlerContext:
    db: Session
    event_id: str
    mode: RuntimeMode
    previous_attributes: Optional[Dict[str, Any]] = None
    # Set when re-syncing from Stripe outside a subscription event; plan changes are
    # credited by the subscription event itself
    sync_only: bool = False


def processed(message: Optional[str] = None) -> Outcome:
    return Outcome(OutcomeStatus.PROCESSED, message)


def skipped(message: str) -> Outcome:
    return Outcome(OutcomeStatus.SKIPPED, message)


def ignored(message: str) -> Outcome:
    return Outcome(OutcomeStatus.IGNORED, message)


# ============================================================================
# PROFILE LOOKUP
# ============================================================================

def _get_profile(user_id: Any, db: Session) -> Optional[UserProfile]:
    """Profile by the user id stored in Stripe metadata (a string)"""
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        return None
    return db.query(UserProfile).filter(UserProfile.id == user_id).first()


def _get_profile_by_customer(customer_id: Optional[str], db: Session) -> Optional[UserProfile]:
    if not customer_id:
        return None
    return db.query(UserProfile).filter(UserProfile.stripe_customer_id == customer_id).first()


def _grant(
    profile: UserProfile,
    credits: int,
    ref_id: str,
    description: str,
    db: Session
) -> Union[Outcome, RetryableError]:
    try:
        result = increment_credits_with_log(profile.id, credits, 'subscription', ref_id, description, db)
    except CreditLedgerError as e:
        logger.error(f"Failed to grant {credits} credits to user {profile.id} for {ref_id}: {e}")
        return RetryableError(f"Failed to grant credits for {ref_id}: {e}", e)
    if not result.applied:
        return processed(f"Credits for {ref_id} already granted")
    return processed()


# ============================================================================
# CHECKOUT & CUSTOMER HANDLERS
# ============================================================================

def handle_checkout_completed(session: Any, ctx: HandlerContext) -> HandlerResult:
    """Grant the first month's credits for a new subscription checkout"""
    db = ctx.db
    session_id = get_stripe_value(session, 'id')
    mode = get_stripe_value(session, 'mode')
    if mode != 'subscription':
        logger.warning(f"Checkout session {session_id} has unsupported mode '{mode}', not processed")
        return ignored(f"Unsupported checkout mode: {mode}")

    metadata = get_stripe_value(session, 'metadata', {}) or {}
    user_id = get_stripe_value(metadata, 'user_id')
    profile = _get_profile(user_id, db)
    if not profile:
        logger.error(f"No profile found for user_id={user_id} in checkout session {session_id}")
        return skipped(f"No profile for checkout user {user_id}")

    customer_id = get_object_id(get_stripe_value(session, 'customer'))
    if customer_id and not profile.stripe_customer_id:
        profile.stripe_customer_id = customer_id
        db.commit()
        logger.info(f"Linked Stripe customer {customer_id} to user {profile.id}")

    subscription_id = get_object_id(get_stripe_value(session, 'subscription'))
    if not subscription_id:
        logger.error(f"Checkout session {session_id} has no subscription")
        return skipped(f"Checkout session {session_id} has no subscription")

    try:
        subscription = retrieve_subscription(subscription_id)
    except stripe.StripeError as e:
        logger.error(f"Could not retrieve subscription {subscription_id} from Stripe: {e}")
        return RetryableError(f"Could not retrieve subscription {subscription_id}: {e}", e)

    price_id = extract_subscription_price_id(subscription)
    plan = resolve_plan(price_id)
    if not plan:
        logger.error(f"Unknown price id {price_id} for subscription {subscription_id} (checkout {session_id})")
        return skipped(f"Unknown price id {price_id}")

    invoice_id = get_object_id(get_stripe_value(session, 'invoice'))
    ref_id = f"invoice_{invoice_id}" if invoice_id else f"session_{session_id}"
    description = f"Initial subscription credits - {plan.name} plan - {plan.credits_per_month} credits"
    logger.info(f"Granting {plan.credits_per_month} initial credits to user {profile.id} ({plan.name}, ref={ref_id})")
    return _grant(profile, plan.credits_per_month, ref_id, description, db)


def handle_customer_created(customer: Any, ctx: HandlerContext) -> HandlerResult:
    """Link a new Stripe customer to the profile named in its metadata"""
    db = ctx.db
    customer_id = get_stripe_value(customer, 'id')
    metadata = get_stripe_value(customer, 'metadata', {}) or {}
    user_id = get_stripe_value(metadata, 'user_id')
    profile = _get_profile(user_id, db)
    if not profile:
        logger.info(f"Customer {customer_id} has no matching profile (user_id={user_id})")
        return skipped(f"No profile for customer {customer_id}")

    if profile.stripe_customer_id and profile.stripe_customer_id != customer_id:
        logger.warning(
            f"User {profile.id} already linked to customer {profile.stripe_customer_id}, "
            f"not relinking to {customer_id}"
        )
        return ignored(f"User {profile.id} already linked to another customer")

    if not profile.stripe_customer_id:
        profile.stripe_customer_id = customer_id
        db.commit()
        logger.info(f"Linked Stripe customer {customer_id} to user {profile.id}")
    return processed()


# ============================================================================
# SUBSCRIPTION HANDLERS
# ============================================================================

def _subscription_period(subscription: Any) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Period boundaries from the subscription, or its first item on newer API versions"""
    start = get_stripe_value(subscription, 'current_period_start')
    end = get_stripe_value(subscription, 'current_period_end')
    if not start or not end:
        items = get_stripe_value(get_stripe_value(subscription, 'items'), 'data', []) or []
        if items:
            start = start or get_stripe_value(items[0], 'current_period_start')
            end = end or get_stripe_value(items[0], 'current_period_end')
    return timestamp_to_datetime(start), timestamp_to_datetime(end)


def _resolve_period(subscription: Any, subscription_id: str) -> Tuple[datetime, datetime]:
    period_start, period_end = _subscription_period(subscription)
    if period_start and period_end:
        return period_start, period_end

    try:
        period_start, period_end = _subscription_period(retrieve_subscription(subscription_id))
    except stripe.StripeError as e:
        logger.warning(f"Could not re-fetch subscription {subscription_id} for period dates: {e}")

    now = datetime.now(timezone.utc)
    if not period_start or not period_end:
        logger.warning(f"Subscription {subscription_id} has no period dates, defaulting to {DEFAULT_PERIOD_DAYS} days from now")
    return period_start or now, period_end or now + timedelta(days=DEFAULT_PERIOD_DAYS)


def handle_subscription_updated(subscription: Any, ctx: HandlerContext) -> HandlerResult:
    """Upsert the subscription row and the profile's plan for created/updated events"""
    db = ctx.db
    subscription_id = get_stripe_value(subscription, 'id')
    customer_id = get_object_id(get_stripe_value(subscription, 'customer'))

    profile = _get_profile_by_customer(customer_id, db)
    if not profile:
        logger.warning(f"No profile found for customer {customer_id}, skipping subscription {subscription_id}")
        return skipped(f"No profile for customer {customer_id}")

    price_id = extract_subscription_price_id(subscription)
    plan = resolve_plan(price_id)
    if not plan:
        logger.error(f"Unknown price id {price_id} on subscription {subscription_id}; subscription not updated")
        return skipped(f"Unknown price id {price_id}")

    record = db.get(Subscription, subscription_id)
    previous_price_id = extract_previous_price_id(ctx.previous_attributes)
    if not previous_price_id and record:
        previous_price_id = record.price_id

    period_start, period_end = _resolve_period(subscription, subscription_id)
    status = get_stripe_value(subscription, 'status', 'active')

    if not record:
        record = Subscription(id=subscription_id)
        db.add(record)
        logger.info(f"Creating subscription record {subscription_id} for user {profile.id}")

    record.user_id = profile.id
    record.status = status
    record.price_id = price_id
    record.current_period_start = period_start
    record.current_period_end = period_end
    record.trial_end = timestamp_to_datetime(get_stripe_value(subscription, 'trial_end'))
    record.cancel_at_period_end = bool(get_stripe_value(subscription, 'cancel_at_period_end', False))
    record.canceled_at = timestamp_to_datetime(get_stripe_value(subscription, 'canceled_at'))

    previous_status = profile.subscription_status
    profile.subscription_status = status
    profile.subscription_tier = plan.name
    db.commit()
    logger.info(f"Subscription {subscription_id} synced for user {profile.id}: {plan.name} ({status})")

    trial_result = _handle_trial_credits(profile, subscription_id, previous_status, status, plan, db)
    if isinstance(trial_result, RetryableError):
        return trial_result

    # The invoice re-sync never grants; the subscription event carrying the price change does
    if ctx.sync_only:
        return processed()

    if previous_price_id and previous_price_id != price_id and status == 'active':
        return _handle_plan_change(profile, subscription_id, previous_price_id, plan, ctx)
    return processed()


def _handle_trial_credits(
    profile: UserProfile,
    subscription_id: str,
    previous_status: Optional[str],
    status: str,
    plan: PlanDescriptor,
    db: Session
) -> Optional[HandlerResult]:
    """Grant trial credits when a trial starts and top up on conversion to a paid plan"""
    if status == 'trialing' and previous_status != 'trialing':
        if not plan.trial_credits:
            return None
        description = f"Trial credits - {plan.name} plan - {plan.trial_credits} credits"
        logger.info(f"Granting {plan.trial_credits} trial credits to user {profile.id} for {subscription_id}")
        return _grant(profile, plan.trial_credits, f"trial_{subscription_id}", description, db)

    if status == 'active' and previous_status == 'trialing':
        credits = calculate_trial_conversion_credits(profile.total_credits_balance, plan)
        if credits == 0:
            logger.info(f"Trial on {subscription_id} converted for user {profile.id}, no top-up needed")
            return None
        description = f"Trial conversion - {plan.name} plan - {credits} additional credits"
        return _grant(profile, credits, f"trial_conversion_{subscription_id}", description, db)

    return None


def _handle_plan_change(
    profile: UserProfile,
    subscription_id: str,
    previous_price_id: str,
    plan: PlanDescriptor,
    ctx: HandlerContext
) -> HandlerResult:
    previous_plan = resolve_plan(previous_price_id)
    if not previous_plan:
        logger.warning(f"Previous price id {previous_price_id} on {subscription_id} is unknown, no upgrade credits")
        return processed()

    credits = calculate_upgrade_credits(previous_plan, plan)
    if credits == 0:
        logger.info(f"User {profile.id} moved from {previous_plan.name} to {plan.name}, keeping existing credits")
        return processed()

    # One upgrade grant per plan-change event; replays of the same event dedup
    ref_id = f"upgrade_{ctx.event_id}"
    description = f"Plan upgrade from {previous_plan.name} to {plan.name} - {credits} credits"
    logger.info(f"Granting {credits} upgrade credits to user {profile.id} ({previous_plan.name} -> {plan.name})")
    return _grant(profile, credits, ref_id, description, ctx.db)


def handle_subscription_deleted(subscription: Any, ctx: HandlerContext) -> HandlerResult:
    db = ctx.db
    subscription_id = get_stripe_value(subscription, 'id')
    customer_id = get_object_id(get_stripe_value(subscription, 'customer'))

    profile = _get_profile_by_customer(customer_id, db)
    if not profile:
        logger.warning(f"No profile found for customer {customer_id}, skipping deletion of {subscription_id}")
        return skipped(f"No profile for customer {customer_id}")

    now = datetime.now(timezone.utc)
    record = db.get(Subscription, subscription_id)
    if record:
        record.status = 'canceled'
        record.canceled_at = timestamp_to_datetime(get_stripe_value(subscription, 'canceled_at')) or now
    else:
        logger.warning(f"Subscription {subscription_id} not found locally while canceling")

    profile.subscription_status = 'canceled'
    db.commit()
    logger.info(f"Subscription {subscription_id} canceled for user {profile.id}")
    return processed()


def handle_trial_will_end(subscription: Any, ctx: HandlerContext) -> HandlerResult:
    subscription_id = get_stripe_value(subscription, 'id')
    trial_end = timestamp_to_datetime(get_stripe_value(subscription, 'trial_end'))
    logger.info(f"Trial for subscription {subscription_id} ends at {trial_end.isoformat() if trial_end else 'unknown'}")
    return processed()


# ============================================================================
# INVOICE & CHARGE HANDLERS
# ============================================================================

def _sync_subscription_from_stripe(subscription_id: str, ctx: HandlerContext) -> Optional[RetryableError]:
    """Refresh the local subscription from Stripe before a renewal grant"""
    try:
        subscription = retrieve_subscription(subscription_id)
    except stripe.StripeError as e:
        logger.warning(f"Could not re-fetch subscription {subscription_id}, using invoice data only: {e}")
        return None

    sync_ctx = HandlerContext(db=ctx.db, event_id=ctx.event_id, mode=ctx.mode, sync_only=True)
    result = handle_subscription_updated(subscription, sync_ctx)
    if isinstance(result, RetryableError):
        return result
    return None


def handle_invoice_payment_succeeded(invoice: Any, ctx: HandlerContext) -> HandlerResult:
    """Monthly renewal grant, capped so the balance never exceeds the plan's rollover limit"""
    db = ctx.db
    invoice_id = get_stripe_value(invoice, 'id')
    subscription_id = extract_invoice_subscription_id(invoice)
    if not subscription_id:
        logger.info(f"Invoice {invoice_id} is not tied to a subscription, ignoring")
        return ignored(f"Invoice {invoice_id} has no subscription")

    customer_id = get_object_id(get_stripe_value(invoice, 'customer'))
    profile = _get_profile_by_customer(customer_id, db)
    if not profile:
        logger.warning(f"No profile found for customer {customer_id}, skipping invoice {invoice_id}")
        return skipped(f"No profile for customer {customer_id}")

    price_id = extract_invoice_price_id(invoice)
    plan = resolve_plan(price_id)
    if not plan:
        logger.error(f"Unknown price id {price_id} on paid invoice {invoice_id}; no credits granted")
        return RetryableError(f"Unknown price id {price_id} on paid invoice {invoice_id}")

    if ctx.mode == RuntimeMode.PRODUCTION:
        sync_error = _sync_subscription_from_stripe(subscription_id, ctx)
        if sync_error:
            return sync_error

    current_balance = profile.total_credits_balance
    credits = calculate_rollover_grant(current_balance, plan)
    if credits == 0:
        logger.info(
            f"User {profile.id} already at max rollover ({current_balance}/{plan.max_rollover}), "
            f"no credits added for invoice {invoice_id}"
        )
        return processed(f"Rollover cap reached ({current_balance}/{plan.max_rollover})")

    description = f"Monthly subscription renewal - {plan.name} plan"
    if credits < plan.credits_per_month:
        description += f" (capped from {plan.credits_per_month} due to rollover limit of {plan.max_rollover})"
        logger.info(
            f"Renewal grant for user {profile.id} capped at {credits} of {plan.credits_per_month} "
            f"(balance {current_balance}, limit {plan.max_rollover})"
        )

    return _grant(profile, credits, f"invoice_{invoice_id}", description, db)


def handle_invoice_payment_failed(invoice: Any, ctx: HandlerContext) -> HandlerResult:
    db = ctx.db
    invoice_id = get_stripe_value(invoice, 'id')
    customer_id = get_object_id(get_stripe_value(invoice, 'customer'))
    profile = _get_profile_by_customer(customer_id, db)
    if not profile:
        logger.warning(f"No profile found for customer {customer_id}, skipping failed invoice {invoice_id}")
        return skipped(f"No profile for customer {customer_id}")

    profile.subscription_status = 'past_due'
    db.commit()
    logger.info(f"User {profile.id} marked past_due after failed invoice {invoice_id}")
    return processed()


def handle_charge_refunded(charge: Any, ctx: HandlerContext) -> HandlerResult:
    """Claw back the credits granted by the refunded charge's invoice"""
    db = ctx.db
    charge_id = get_stripe_value(charge, 'id')
    amount_refunded = get_stripe_value(charge, 'amount_refunded', 0) or 0
    if amount_refunded <= 0:
        logger.info(f"Charge {charge_id} refunded event with no refunded amount, ignoring")
        return ignored(f"Charge {charge_id} has no refunded amount")

    customer_id = get_object_id(get_stripe_value(charge, 'customer'))
    profile = _get_profile_by_customer(customer_id, db)
    if not profile:
        logger.warning(f"No profile found for customer {customer_id}, skipping refund of {charge_id}")
        return skipped(f"No profile for customer {customer_id}")

    invoice_id = get_object_id(get_stripe_value(charge, 'invoice'))
    if not invoice_id:
        logger.warning(f"Refunded charge {charge_id} has no invoice; clawback not attempted")
        return ignored(f"Charge {charge_id} has no invoice")

    ref_id = f"invoice_{invoice_id}"
    reason = f"Refund for charge {charge_id} ({amount_refunded} cents)"
    try:
        result = clawback_credits_from_transaction(profile.id, ref_id, reason, db)
    except CreditLedgerError as e:
        logger.error(f"Clawback for {ref_id} failed for user {profile.id}: {e}")
        return RetryableError(f"Clawback for {ref_id} failed: {e}", e)

    if not result.success:
        logger.error(f"Clawback for {ref_id} not applied for user {profile.id}: {result.error_message}")
        return skipped(result.error_message)

    if result.already_applied:
        return processed(f"Clawback for {ref_id} already applied")

    logger.info(
        f"Clawed back {result.credits_clawed_back} credits from user {profile.id} for {ref_id}, "
        f"new balance {result.new_balance}"
    )
    return processed()


def handle_charge_dispute_created(dispute: Any, ctx: HandlerContext) -> HandlerResult:
    dispute_id = get_stripe_value(dispute, 'id')
    charge_id = get_object_id(get_stripe_value(dispute, 'charge'))
    logger.warning(f"Dispute {dispute_id} opened for charge {charge_id}; no automatic action is taken")
    return ignored(f"Dispute {dispute_id} recorded without action")


def handle_invoice_payment_refunded(invoice: Any, ctx: HandlerContext) -> HandlerResult:
    invoice_id = get_stripe_value(invoice, 'id')
    logger.warning(f"Invoice {invoice_id} payment refunded; credits are reconciled from charge.refunded only")
    return ignored(f"Invoice refund {invoice_id} recorded without action")


# ============================================================================
# SUBSCRIPTION SCHEDULE HANDLERS
# ============================================================================

def handle_subscription_schedule_completed(schedule: Any, ctx: HandlerContext) -> HandlerResult:
    """
    Apply a scheduled plan change once its schedule completes.

    The scheduled price id stored on the subscription becomes the active price,
    the profile moves to that plan's tier, and the subscription pool is reset
    to the plan's monthly credits under a ``schedule_<id>`` ledger row.
    """
    db = ctx.db
    schedule_id = get_stripe_value(schedule, 'id')
    subscription_id = get_object_id(get_stripe_value(schedule, 'subscription'))
    if not subscription_id:
        logger.info(f"Subscription schedule {schedule_id} has no subscription, ignoring")
        return ignored(f"Schedule {schedule_id} has no subscription")

    record = db.get(Subscription, subscription_id)
    if not record:
        logger.warning(f"No subscription record {subscription_id} for completed schedule {schedule_id}, skipping")
        return skipped(f"No subscription record {subscription_id}")

    price_id = record.scheduled_price_id or record.price_id
    plan = resolve_plan(price_id)
    if not plan:
        logger.error(f"Unknown price id {price_id} on completed schedule {schedule_id}; subscription not updated")
        return skipped(f"Unknown price id {price_id}")

    profile = db.get(UserProfile, record.user_id)
    if not profile:
        logger.warning(f"No profile {record.user_id} for subscription {subscription_id}, skipping schedule {schedule_id}")
        return skipped(f"No profile for subscription {subscription_id}")

    record.price_id = plan.price_id
    record.scheduled_price_id = None
    record.scheduled_change_date = None
    profile.subscription_tier = plan.name
    db.commit()
    logger.info(f"Schedule {schedule_id} completed: subscription {subscription_id} now on {plan.name}")

    description = (
        f"Scheduled downgrade completed - subscription credits reset to "
        f"{plan.credits_per_month} for {plan.name} plan"
    )
    try:
        result = reset_subscription_credits(
            record.user_id, plan.credits_per_month, f"schedule_{schedule_id}", description, db
        )
    except CreditLedgerError as e:
        logger.error(f"Credit reset for schedule {schedule_id} failed for user {record.user_id}: {e}")
        return RetryableError(f"Credit reset for schedule {schedule_id} failed: {e}", e)

    if not result.applied:
        return processed(f"Credits for schedule_{schedule_id} already reset")
    return processed()


EVENT_HANDLERS: Dict[StripeEventType, Callable[[Any, HandlerContext], HandlerResult]] = {
    StripeEventType.CHECKOUT_SESSION_COMPLETED: handle_checkout_completed,
    StripeEventType.CUSTOMER_CREATED: handle_customer_created,
    StripeEventType.SUBSCRIPTION_CREATED: handle_subscription_updated,
    StripeEventType.SUBSCRIPTION_UPDATED: handle_subscription_updated,
    StripeEventType.SUBSCRIPTION_DELETED: handle_subscription_deleted,
    StripeEventType.SUBSCRIPTION_TRIAL_WILL_END: handle_trial_will_end,
    StripeEventType.INVOICE_PAYMENT_SUCCEEDED: handle_invoice_payment_succeeded,
    StripeEventType.INVOICE_PAID: handle_invoice_payment_succeeded,
    StripeEventType.INVOICE_PAYMENT_PAID: handle_invoice_payment_succeeded,
    StripeEventType.INVOICE_PAYMENT_FAILED: handle_invoice_payment_failed,
    StripeEventType.INVOICE_PAYMENT_FAILED_ALIAS: handle_invoice_payment_failed,
    StripeEventType.CHARGE_REFUNDED: handle_charge_refunded,
    StripeEventType.CHARGE_DISPUTE_CREATED: handle_charge_dispute_created,
    StripeEventType.INVOICE_PAYMENT_REFUNDED: handle_invoice_payment_refunded,
    StripeEventType.SUBSCRIPTION_SCHEDULE_COMPLETED: handle_subscription_schedule_completed,
}

_unhandled = [event_type.value for event_type in StripeEventType if event_type not in EVENT_HANDLERS]
if _unhandled:
    raise RuntimeError(f"Stripe event types without a handler: {', '.join(_unhandled)}")
