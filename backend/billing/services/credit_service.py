"""Credit service - ledger logic for credits

Both ledger mutations lock the profile row, change the balance and append the
CreditTransaction in one database transaction, so a balance change without
its ledger row (or the reverse) can never be committed.
"""
from dataclasses import dataclass
from typing import Optional, Dict, Any, List
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from billing.core.logging import ledger_logger
from billing.core.metrics import credits_granted_counter, credits_clawed_back_counter
from billing.models.credit_transaction import CreditTransaction
from billing.models.profile import UserProfile

logger = logging.getLogger(__name__)

# Grant types and the balance pool each one feeds
SUBSCRIPTION_GRANT_TYPES = frozenset({'subscription'})
PURCHASED_GRANT_TYPES = frozenset({'purchase', 'bonus'})
CLAWBACK_SOURCE_TYPES = ('subscription', 'purchase')
RESET_TYPE = 'schedule_reset'

NO_CREDITS_TO_CLAWBACK = 'No credits found to clawback from transaction'


class CreditLedgerError(Exception):
    """A ledger operation could not be applied"""


@dataclass
class GrantResult:
    applied: bool
    amount: int
    new_balance: int
    transaction_id: Optional[int] = None


@dataclass
class ClawbackResult:
    success: bool
    credits_clawed_back: int
    new_balance: int
    error_message: Optional[str] = None
    already_applied: bool = False


def _lock_profile(user_id: int, db: Session) -> Optional[UserProfile]:
    return db.query(UserProfile).filter(UserProfile.id == user_id).with_for_update().first()


def _find_transaction(user_id: int, ref_id: str, transaction_type: str, db: Session) -> Optional[CreditTransaction]:
    return db.query(CreditTransaction).filter(
        CreditTransaction.user_id == user_id,
        CreditTransaction.reference_id == ref_id,
        CreditTransaction.transaction_type == transaction_type,
    ).first()


def _current_balance(user_id: int, db: Session) -> int:
    profile = db.query(UserProfile).filter(UserProfile.id == user_id).first()
    return profile.total_credits_balance if profile else 0


def increment_credits_with_log(
    user_id: int,
    amount: int,
    transaction_type: str,
    ref_id: Optional[str],
    description: str,
    db: Session
) -> GrantResult:
    """
    Add credits to a user's balance and record the ledger row atomically.

    Args:
        user_id: Profile ID
        amount: Credits to add (must be positive)
        transaction_type: 'subscription' feeds the subscription pool; 'purchase' and 'bonus' the purchased pool
        ref_id: Correlation key (e.g. invoice_<id>); a repeated (user, ref_id, type) is not applied twice
        description: Human readable reason stored on the ledger row
        db: Database session

    Returns:
        GrantResult; ``applied`` is False when the grant was already recorded

    Raises:
        CreditLedgerError: invalid arguments, unknown user or a database failure
    """
    if amount <= 0:
        raise CreditLedgerError(f"Credit amount must be positive, got {amount}")
    if transaction_type not in SUBSCRIPTION_GRANT_TYPES | PURCHASED_GRANT_TYPES:
        raise CreditLedgerError(f"Unsupported grant type: {transaction_type}")

    try:
        profile = _lock_profile(user_id, db)
        if not profile:
            raise CreditLedgerError("User not found")

        if ref_id:
            existing = _find_transaction(user_id, ref_id, transaction_type, db)
            if existing:
                balance = profile.total_credits_balance
                transaction_id = existing.id
                db.rollback()
                logger.info(f"Credits for {ref_id} already granted to user {user_id} (transaction {transaction_id}), skipping")
                return GrantResult(applied=False, amount=0, new_balance=balance, transaction_id=transaction_id)

        if transaction_type in SUBSCRIPTION_GRANT_TYPES:
            profile.subscription_credits_balance = (profile.subscription_credits_balance or 0) + amount
        else:
            profile.purchased_credits_balance = (profile.purchased_credits_balance or 0) + amount

        new_balance = profile.total_credits_balance
        transaction = CreditTransaction(
            user_id=user_id,
            amount=amount,
            transaction_type=transaction_type,
            reference_id=ref_id,
            description=description,
            balance_after=new_balance,
        )
        db.add(transaction)
        db.commit()
    except CreditLedgerError:
        db.rollback()
        raise
    except IntegrityError:
        # A concurrent writer recorded the same (user, ref_id, type) first
        db.rollback()
        logger.info(f"Concurrent grant for {ref_id} already recorded for user {user_id}, skipping")
        return GrantResult(applied=False, amount=0, new_balance=_current_balance(user_id, db))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to grant {amount} credits to user {user_id}: {e}", exc_info=True)
        raise CreditLedgerError(f"Failed to grant credits: {e}") from e

    credits_granted_counter.labels(transaction_type=transaction_type).inc(amount)
    ledger_logger.info(f"Granted {amount} {transaction_type} credits to user {user_id} (ref={ref_id}, balance={new_balance})")
    return GrantResult(applied=True, amount=amount, new_balance=new_balance, transaction_id=transaction.id)


def reset_subscription_credits(
    user_id: int,
    new_balance: int,
    ref_id: str,
    description: str,
    db: Session
) -> GrantResult:
    """
    Set the subscription pool to ``new_balance`` and log the difference as a
    ``schedule_reset`` row. Purchased credits are untouched. A repeated
    ref_id is not applied twice.

    Raises:
        CreditLedgerError: negative balance, unknown user or a database failure
    """
    if new_balance < 0:
        raise CreditLedgerError(f"Subscription balance cannot be negative, got {new_balance}")

    try:
        profile = _lock_profile(user_id, db)
        if not profile:
            raise CreditLedgerError("User not found")

        existing = _find_transaction(user_id, ref_id, RESET_TYPE, db)
        if existing:
            balance = profile.total_credits_balance
            transaction_id = existing.id
            db.rollback()
            logger.info(f"Reset {ref_id} already applied to user {user_id} (transaction {transaction_id}), skipping")
            return GrantResult(applied=False, amount=0, new_balance=balance, transaction_id=transaction_id)

        delta = new_balance - (profile.subscription_credits_balance or 0)
        profile.subscription_credits_balance = new_balance
        total = profile.total_credits_balance
        transaction = CreditTransaction(
            user_id=user_id,
            amount=delta,
            transaction_type=RESET_TYPE,
            reference_id=ref_id,
            description=description,
            balance_after=total,
        )
        db.add(transaction)
        db.commit()
    except CreditLedgerError:
        db.rollback()
        raise
    except IntegrityError:
        db.rollback()
        logger.info(f"Concurrent reset for {ref_id} already recorded for user {user_id}, skipping")
        return GrantResult(applied=False, amount=0, new_balance=_current_balance(user_id, db))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to reset subscription credits for user {user_id}: {e}", exc_info=True)
        raise CreditLedgerError(f"Failed to reset subscription credits: {e}") from e

    ledger_logger.info(f"Reset subscription credits of user {user_id} to {new_balance} ({delta:+d}, ref={ref_id})")
    return GrantResult(applied=True, amount=delta, new_balance=total, transaction_id=transaction.id)


def clawback_credits_from_transaction(
    user_id: int,
    original_ref_id: str,
    reason: str,
    db: Session
) -> ClawbackResult:
    """
    Reverse the credits granted under ``original_ref_id``.

    Takes from the subscription pool first, then the purchased pool, and never
    drives either below zero. The reversal is recorded once as a 'clawback'
    row with reference ``<original_ref_id>_clawback``; repeating the call is a
    no-op reported with ``already_applied=True``.

    Raises:
        CreditLedgerError: unknown user or a database failure
    """
    clawback_ref = f"{original_ref_id}_clawback"

    try:
        profile = _lock_profile(user_id, db)
        if not profile:
            raise CreditLedgerError("User not found")

        if _find_transaction(user_id, clawback_ref, 'clawback', db):
            balance = profile.total_credits_balance
            db.rollback()
            logger.info(f"Clawback for {original_ref_id} already applied to user {user_id}")
            return ClawbackResult(success=True, credits_clawed_back=0, new_balance=balance, already_applied=True)

        total_granted = db.query(func.coalesce(func.sum(CreditTransaction.amount), 0)).filter(
            CreditTransaction.user_id == user_id,
            CreditTransaction.reference_id == original_ref_id,
            CreditTransaction.transaction_type.in_(CLAWBACK_SOURCE_TYPES),
            CreditTransaction.amount > 0,
        ).scalar()

        if not total_granted:
            balance = profile.total_credits_balance
            db.rollback()
            return ClawbackResult(
                success=False,
                credits_clawed_back=0,
                new_balance=balance,
                error_message=NO_CREDITS_TO_CLAWBACK,
            )

        subscription_balance = max(0, profile.subscription_credits_balance or 0)
        purchased_balance = max(0, profile.purchased_credits_balance or 0)
        from_subscription = min(total_granted, subscription_balance)
        from_purchased = min(total_granted - from_subscription, purchased_balance)
        clawed_back = from_subscription + from_purchased

        profile.subscription_credits_balance = subscription_balance - from_subscription
        profile.purchased_credits_balance = purchased_balance - from_purchased
        new_balance = profile.total_credits_balance

        # Recorded even when nothing could be taken, so a repeat is recognised
        db.add(CreditTransaction(
            user_id=user_id,
            amount=-clawed_back,
            transaction_type='clawback',
            reference_id=clawback_ref,
            description=f"{reason} - {clawed_back} credits clawed back",
            balance_after=new_balance,
        ))
        db.commit()
    except CreditLedgerError:
        db.rollback()
        raise
    except IntegrityError:
        db.rollback()
        logger.info(f"Concurrent clawback for {original_ref_id} already recorded for user {user_id}")
        return ClawbackResult(
            success=True,
            credits_clawed_back=0,
            new_balance=_current_balance(user_id, db),
            already_applied=True,
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to claw back credits for {original_ref_id} from user {user_id}: {e}", exc_info=True)
        raise CreditLedgerError(f"Failed to claw back credits: {e}") from e

    if clawed_back < total_granted:
        logger.warning(
            f"Partial clawback for {original_ref_id}: granted {total_granted}, "
            f"clawed back {clawed_back} (balance exhausted) for user {user_id}"
        )
    ledger_logger.info(f"Clawed back {clawed_back} credits from user {user_id} for {original_ref_id} (balance={new_balance})")
    credits_clawed_back_counter.inc(clawed_back)
    return ClawbackResult(success=True, credits_clawed_back=clawed_back, new_balance=new_balance)


def get_credit_transactions(user_id: int, db: Session, limit: int = 50) -> List[Dict[str, Any]]:
    """Get credit transaction history for a user"""
    transactions = db.query(CreditTransaction).filter(
        CreditTransaction.user_id == user_id
    ).order_by(
        CreditTransaction.created_at.desc(),
        CreditTransaction.id.desc()
    ).limit(limit).all()

    return [
        {
            'id': t.id,
            'amount': t.amount,
            'transaction_type': t.transaction_type,
            'reference_id': t.reference_id,
            'description': t.description,
            'balance_after': t.balance_after,
            'created_at': t.created_at.isoformat(),
        }
        for t in transactions
    ]
