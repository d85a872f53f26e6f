"""SolveNote Credit Routes

Endpoints:
- GET /api/solvenote/credits - Get balance (creates the account on first call)
- POST /api/solvenote/use-credit - Spend one credit
- GET /api/solvenote/credits/history - Get credit ledger
"""

from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.responses import JSONResponse
import logging

from solvenote.models.credits import (
    CreditsResponse,
    UseCreditResponse,
    NO_CREDITS_MESSAGE,
)
from solvenote.services.credit_service import CreditStoreError, credit_service
from solvenote.services.identity_service import AuthenticatedUser
from solvenote.routes.auth import get_current_solvenote_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/solvenote", tags=["SolveNote Credits"])

STORE_UNAVAILABLE = "Credit store unavailable"


@router.get("/credits", response_model=CreditsResponse)
async def get_credits(user: AuthenticatedUser = Depends(get_current_solvenote_user)):
    """Get the caller's credit balance.

    Applies today's reset first; creates the account with the daily
    allowance on first call.
    """
    try:
        account = await credit_service.get_credits(user.user_id, user.email)
    except CreditStoreError as e:
        logger.error(f"Failed to get credits for {user.user_id}: {e}")
        raise HTTPException(status_code=500, detail=STORE_UNAVAILABLE)

    return CreditsResponse(
        user_id=account.user_id,
        credits_remaining=account.credits_remaining,
        is_unlimited=account.is_unlimited,
        updated_at=account.updated_at,
    )


@router.post(
    "/use-credit",
    response_model=UseCreditResponse,
    response_model_exclude_none=True,
    responses={400: {"model": UseCreditResponse}},
)
async def use_credit(user: AuthenticatedUser = Depends(get_current_solvenote_user)):
    """Spend one credit.

    Exhaustion is answered with a structured 400 carrying success=false so
    the client shows the upgrade prompt rather than an error.
    """
    try:
        result = await credit_service.use_credit(user.user_id, user.email)
    except CreditStoreError as e:
        logger.error(f"Failed to use credit for {user.user_id}: {e}")
        raise HTTPException(status_code=500, detail=STORE_UNAVAILABLE)

    if not result.success:
        body = UseCreditResponse(
            success=False,
            error=NO_CREDITS_MESSAGE,
            credits_remaining=0,
            is_unlimited=False,
        )
        return JSONResponse(status_code=400, content=body.model_dump())

    return UseCreditResponse(
        success=True,
        credits_remaining=result.credits_remaining,
        is_unlimited=result.is_unlimited,
    )


@router.get("/credits/history")
async def get_history(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthenticatedUser = Depends(get_current_solvenote_user),
):
    """Get credit ledger entries, newest first."""
    try:
        transactions = await credit_service.get_transaction_history(
            user_id=user.user_id,
            limit=limit,
            offset=offset,
        )
    except CreditStoreError as e:
        logger.error(f"Failed to get history for {user.user_id}: {e}")
        raise HTTPException(status_code=500, detail=STORE_UNAVAILABLE)

    return {
        "transactions": transactions,
        "limit": limit,
        "offset": offset,
    }
