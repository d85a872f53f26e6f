"""SolveNote Credit Models

Credit scope:
- One credit account per user with a daily allowance
- Lazy calendar-day reset back to the allowance
- Unlimited flag granted on payment
- Ledger of every credit movement for audit
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from enum import Enum
import os
import uuid


# Allowance granted on creation and restored by each daily reset
DEFAULT_DAILY_CREDITS = int(os.getenv("DEFAULT_DAILY_CREDITS", "3"))

# Reference timezone for the calendar-day reset boundary
CREDIT_RESET_TIMEZONE = os.getenv("CREDIT_RESET_TIMEZONE", "UTC")

NO_CREDITS_MESSAGE = "No credits remaining"


class CreditTransactionType(str, Enum):
    """Types of credit transactions"""
    USAGE = "USAGE"                      # One suggestion request
    DAILY_RESET = "DAILY_RESET"          # Allowance restored for a new day
    UNLIMITED_GRANT = "UNLIMITED_GRANT"  # Payment confirmed


class CreditAccount(BaseModel):
    """Per-user credit record. Single source of truth for the balance.

    user_id is absent only on a pending account created from a payment
    email before that user first signed in.
    """
    user_id: Optional[str] = None
    email: Optional[str] = None

    credits_remaining: int = Field(default=DEFAULT_DAILY_CREDITS, ge=0)
    is_unlimited: bool = False

    # Timestamps
    last_reset_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class UseCreditResult(BaseModel):
    """Outcome of spending one credit.

    success=False is a business outcome (no credits left), not an error.
    """
    success: bool
    credits_remaining: int
    is_unlimited: bool


class CreditTransaction(BaseModel):
    """Individual credit ledger entry."""
    transaction_id: str = Field(default_factory=lambda: f"SNT-{uuid.uuid4().hex[:12].upper()}")
    user_id: Optional[str] = None
    email: Optional[str] = None

    transaction_type: CreditTransactionType
    amount: int  # Negative for usage
    balance_after: int
    description: str
    reference_id: Optional[str] = None  # e.g. stripe checkout email

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


# ============================================================================
# API Responses
# ============================================================================

class CreditsResponse(BaseModel):
    user_id: str
    credits_remaining: int
    is_unlimited: bool
    updated_at: datetime


class UseCreditResponse(BaseModel):
    success: bool
    credits_remaining: int
    is_unlimited: bool
    error: Optional[str] = None
