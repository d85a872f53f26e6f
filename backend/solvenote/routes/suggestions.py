"""SolveNote Suggestion Routes

Endpoints:
- POST /api/solvenote/suggestions - Spend a credit and generate suggestions
"""

from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import JSONResponse
import logging

from solvenote.models.credits import NO_CREDITS_MESSAGE
from solvenote.models.suggestions import SuggestionRequest, SuggestionResponse
from solvenote.services.credit_service import CreditStoreError
from solvenote.services.identity_service import AuthenticatedUser
from solvenote.services.suggestion_service import suggestion_service
from solvenote.routes.auth import get_current_solvenote_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/solvenote", tags=["SolveNote Suggestions"])


@router.post("/suggestions", response_model=SuggestionResponse)
async def create_suggestions(
    request: SuggestionRequest,
    user: AuthenticatedUser = Depends(get_current_solvenote_user),
):
    """Generate suggestions for a problem.

    Costs one credit (free for unlimited users). Without credits the
    generator is not called and the response asks for an upgrade.
    """
    try:
        outcome = await suggestion_service.suggest(user, request.problem)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CreditStoreError as e:
        logger.error(f"Failed to use credit for suggestions ({user.user_id}): {e}")
        raise HTTPException(status_code=500, detail="Credit store unavailable")
    except Exception as e:
        logger.error(f"Failed to generate suggestions: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate solution")

    if outcome.suggestions is None:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": NO_CREDITS_MESSAGE,
                "credits_remaining": 0,
                "is_unlimited": False,
                "upgrade_required": True,
            },
        )

    return SuggestionResponse(
        suggestions=outcome.suggestions,
        credits_remaining=outcome.credits_remaining,
        is_unlimited=outcome.is_unlimited,
    )
