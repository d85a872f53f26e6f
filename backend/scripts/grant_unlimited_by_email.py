"""
Grant Unlimited Credits by Email (support script)

Use when a payment went through but the Stripe webhook never reached us.
Grants unlimited credits to the account for the email (creating a pending
account if the user has not signed in yet) and marks the subscriber premium.

Usage (from backend/):
  python -m scripts.grant_unlimited_by_email user@example.com
  python -m scripts.grant_unlimited_by_email --email user@example.com --customer cus_123
"""

import asyncio
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from database import database
from solvenote.services.credit_service import credit_service
from solvenote.services.subscription_service import subscription_service
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def grant_unlimited(email: str, stripe_customer_id: str = None) -> bool:
    """Grant unlimited credits and mark the subscriber premium. Returns True on success."""
    email_lower = email.strip().lower()
    if not email_lower:
        logger.error("Email is required")
        return False

    await database.connect()
    try:
        account = await credit_service.grant_unlimited(email_lower)
        await subscription_service.mark_premium(email_lower, stripe_customer_id)
        logger.info(
            "Granted unlimited credits: %s (user_id=%s)",
            email_lower, account.user_id or "pending",
        )
        return True
    finally:
        await database.close()


def main():
    parser = argparse.ArgumentParser(description="Grant unlimited credits to a payer email")
    parser.add_argument("email", nargs="?", help="Payer email")
    parser.add_argument("--email", dest="email_flag", help="Payer email (alternative)")
    parser.add_argument("--customer", dest="customer", help="Stripe customer id")
    args = parser.parse_args()
    email = args.email or args.email_flag
    if not email:
        parser.error("Provide email as positional argument or --email")
        return 1
    ok = asyncio.run(grant_unlimited(email, args.customer))
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
