"""SolveNote Auth Routes

Endpoints:
- GET /api/solvenote/auth/me - Get current identity and premium status
"""

from fastapi import APIRouter, HTTPException, Depends, Header
from typing import Optional
from pydantic import BaseModel
import logging

from solvenote.services.identity_service import (
    AuthenticatedUser,
    UnauthenticatedError,
    identity_service,
)
from solvenote.services.subscription_service import subscription_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/solvenote/auth", tags=["SolveNote Auth"])


class MeResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    is_premium: bool


async def get_current_solvenote_user(authorization: Optional[str] = Header(None)) -> AuthenticatedUser:
    """Dependency to get the verified caller from the bearer token."""
    try:
        return identity_service.verify_authorization_header(authorization)
    except UnauthenticatedError as e:
        raise HTTPException(status_code=401, detail=str(e))


@router.get("/me", response_model=MeResponse)
async def get_me(user: AuthenticatedUser = Depends(get_current_solvenote_user)):
    """Get current user identity and whether they hold a premium subscription."""
    try:
        is_premium = await subscription_service.is_premium(user.email)
    except Exception as e:
        logger.error(f"Failed to read subscriber for {user.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to get user")
    return MeResponse(user_id=user.user_id, email=user.email, is_premium=is_premium)
