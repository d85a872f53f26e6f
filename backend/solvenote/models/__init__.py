"""SolveNote Data Models"""

from .credits import (
    CreditAccount,
    CreditTransaction,
    CreditTransactionType,
    UseCreditResult,
    CreditsResponse,
    UseCreditResponse,
    DEFAULT_DAILY_CREDITS,
)
from .subscriptions import (
    SubscriberRecord,
    SubscriptionTier,
)
from .suggestions import (
    Suggestion,
    SuggestionType,
    SuggestionRequest,
    SuggestionResponse,
    SuggestionOutcome,
)

__all__ = [
    # Credits
    "CreditAccount",
    "CreditTransaction",
    "CreditTransactionType",
    "UseCreditResult",
    "CreditsResponse",
    "UseCreditResponse",
    "DEFAULT_DAILY_CREDITS",
    # Subscriptions
    "SubscriberRecord",
    "SubscriptionTier",
    # Suggestions
    "Suggestion",
    "SuggestionType",
    "SuggestionRequest",
    "SuggestionResponse",
    "SuggestionOutcome",
]
