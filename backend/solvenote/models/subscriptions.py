"""SolveNote Subscription Models

Subscriber records are owned by the billing side and keyed by email.
The credit core only writes them as a side effect of a completed checkout.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from enum import Enum


class SubscriptionTier(str, Enum):
    """SolveNote plans"""
    FREE = "free"        # Daily credit allowance
    PREMIUM = "premium"  # Unlimited suggestions


class SubscriberRecord(BaseModel):
    """Billing record for one payer email"""
    email: str
    subscribed: bool = False
    subscription_tier: SubscriptionTier = SubscriptionTier.FREE

    # Stripe references
    stripe_customer_id: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}
