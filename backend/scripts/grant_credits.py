#!/usr/bin/env python3
"""
Grant bonus credits or inspect the credit ledger for users.

Usage:
    # Grant bonus credits (the reference makes the grant safe to re-run)
    python grant_credits.py --email user@example.com --credits 100 --reference support_ticket_42

    # Show recent ledger entries
    python grant_credits.py --email user@example.com --history
"""

import argparse
import sys
import os

# Add parent directory to path to import backend modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session

from billing.db.session import session_scope
from billing.models.profile import UserProfile
from billing.services.credit_service import (
    CreditLedgerError, increment_credits_with_log, get_credit_transactions
)


def grant_credits(db: Session, email: str, credits: int, reference: str, reason: str) -> bool:
    """Grant bonus credits to a user"""
    profile = db.query(UserProfile).filter(UserProfile.email == email).first()
    if not profile:
        print(f"❌ User not found: {email}")
        return False

    old_balance = profile.total_credits_balance
    try:
        result = increment_credits_with_log(
            profile.id, credits, 'bonus', f"bonus_{reference}", reason, db
        )
    except CreditLedgerError as e:
        print(f"❌ Error: {e}")
        return False

    if not result.applied:
        print(f"⚠️  Bonus {reference} was already granted to {email}, nothing changed")
        return True

    print(f"✅ Granted {credits} credits to {email}")
    print(f"   Balance: {old_balance} → {result.new_balance}")
    return True


def show_history(db: Session, email: str, limit: int) -> bool:
    """Print a user's recent credit transactions"""
    profile = db.query(UserProfile).filter(UserProfile.email == email).first()
    if not profile:
        print(f"❌ User not found: {email}")
        return False

    print(f"Balance for {email}: {profile.total_credits_balance} "
          f"(subscription {profile.subscription_credits_balance}, purchased {profile.purchased_credits_balance})")
    for t in get_credit_transactions(profile.id, db, limit=limit):
        print(f"  {t['created_at']}  {t['amount']:>+7}  {t['transaction_type']:<12} {t['reference_id'] or '-'}  {t['description'] or ''}")
    return True

def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Grant bonus credits or inspect the credit ledger',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Grant 100 bonus credits
  python %(prog)s --email user@example.com --credits 100 --reference support_ticket_42

  # Show the last 20 ledger entries
  python %(prog)s --email user@example.com --history --limit 20
        """
    )

    parser.add_argument('--email', required=True, help='User email address')
    parser.add_argument('--credits', type=int, help='Number of bonus credits to grant')
    parser.add_argument('--reference', help='Unique reference for the grant (required with --credits)')
    parser.add_argument('--reason', default='Admin bonus credits', help='Description stored on the ledger row')
    parser.add_argument('--history', action='store_true', help='Show recent credit transactions')
    parser.add_argument('--limit', type=int, default=50, help='Number of transactions to show')

    args = parser.parse_args(argv)

    if bool(args.credits) == args.history:
        print("❌ Error: Specify exactly one action (--credits or --history)")
        parser.print_help()
        return 1

    if args.credits:
        if args.credits <= 0:
            print("❌ Error: --credits must be positive")
            return 1
        if not args.reference:
            print("❌ Error: --reference is required when granting credits")
            return 1

    with session_scope() as db:
        if args.credits:
            success = grant_credits(db, args.email, args.credits, args.reference, args.reason)
        else:
            success = show_history(db, args.email, args.limit)

    return 0 if success else 1


if __name__ == '__main__':
    sys.exit(main())
