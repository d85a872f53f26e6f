"""SolveNote Suggestion Orchestrator

Spends one credit, then asks the generator for suggestions. No credit,
no generation: the caller routes the user to the upgrade flow instead.
"""

import logging

from solvenote.models.suggestions import SuggestionOutcome
from solvenote.services.credit_service import credit_service
from solvenote.services.identity_service import AuthenticatedUser
from solvenote.services.suggestion_generator import suggestion_generator

logger = logging.getLogger(__name__)


class SuggestionService:

    async def suggest(self, user: AuthenticatedUser, problem: str) -> SuggestionOutcome:
        problem = (problem or "").strip()
        if not problem:
            raise ValueError("Problem description is required")

        result = await credit_service.use_credit(user.user_id, user.email)
        if not result.success:
            logger.info(f"Suggestion refused for user {user.user_id}: no credits remaining")
            return SuggestionOutcome(
                suggestions=None,
                credits_remaining=result.credits_remaining,
                is_unlimited=result.is_unlimited,
            )

        logger.info(f"Generating suggestions for user {user.user_id}: {problem[:50]}")
        suggestions = await suggestion_generator.generate(problem)
        return SuggestionOutcome(
            suggestions=suggestions,
            credits_remaining=result.credits_remaining,
            is_unlimited=result.is_unlimited,
        )


# Global service instance
suggestion_service = SuggestionService()
