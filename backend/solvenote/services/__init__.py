"""SolveNote Services"""

from .credit_service import CreditService, CreditStoreError, credit_service
from .subscription_service import SubscriptionService, subscription_service
from .identity_service import IdentityService, UnauthenticatedError, identity_service
from .webhook_service import PaymentWebhookService, MalformedEventError, payment_webhook_service
from .suggestion_service import SuggestionService, suggestion_service

__all__ = [
    "CreditService",
    "CreditStoreError",
    "credit_service",
    "SubscriptionService",
    "subscription_service",
    "IdentityService",
    "UnauthenticatedError",
    "identity_service",
    "PaymentWebhookService",
    "MalformedEventError",
    "payment_webhook_service",
    "SuggestionService",
    "suggestion_service",
]
