"""SolveNote Subscription Service

Maintains subscriber records for the billing side. Records are keyed by
payer email and are not read by the credit core.
"""

from datetime import datetime, timezone
from typing import Optional
import logging

from database import database
from solvenote.models.subscriptions import SubscriberRecord, SubscriptionTier
from solvenote.services.credit_service import normalize_email

logger = logging.getLogger(__name__)


class SubscriptionService:
    """Subscriber bookkeeping."""
    
    def _get_db(self):
        return database.get_db()
    
    async def mark_premium(self, email: str, stripe_customer_id: Optional[str] = None) -> SubscriberRecord:
        """Record a premium subscription for email (upsert)."""
        db = self._get_db()
        email = normalize_email(email)
        now = datetime.now(timezone.utc)
        
        updates = {
            "subscribed": True,
            "subscription_tier": SubscriptionTier.PREMIUM.value,
            "updated_at": now,
        }
        if stripe_customer_id:
            updates["stripe_customer_id"] = stripe_customer_id
        
        await db.subscribers.update_one(
            {"email": email},
            {"$set": updates, "$setOnInsert": {"created_at": now}},
            upsert=True,
        )
        logger.info(f"Subscriber {email} marked premium")
        
        record = await db.subscribers.find_one({"email": email}, {"_id": 0})
        return SubscriberRecord(**record)
    
    async def get_subscriber(self, email: Optional[str]) -> Optional[SubscriberRecord]:
        email = normalize_email(email)
        if not email:
            return None
        db = self._get_db()
        record = await db.subscribers.find_one({"email": email}, {"_id": 0})
        if record:
            return SubscriberRecord(**record)
        return None
    
    async def is_premium(self, email: Optional[str]) -> bool:
        subscriber = await self.get_subscriber(email)
        return bool(
            subscriber
            and subscriber.subscribed
            and subscriber.subscription_tier == SubscriptionTier.PREMIUM
        )


# Global service instance
subscription_service = SubscriptionService()
