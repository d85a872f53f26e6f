"""SolveNote Routes"""

from .auth import router as auth_router
from .credits import router as credits_router
from .webhooks import router as webhooks_router
from .suggestions import router as suggestions_router

__all__ = [
    "auth_router",
    "credits_router",
    "webhooks_router",
    "suggestions_router",
]
