"""SolveNote Identity Service

Exchanges a bearer token for a verified user identity. Token issuance
belongs to the identity provider; this service only verifies.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from auth import decode_access_token
from solvenote.services.credit_service import normalize_email

logger = logging.getLogger(__name__)


class UnauthenticatedError(Exception):
    """Missing, malformed or invalid bearer credential."""
    pass


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    email: Optional[str] = None


class IdentityService:
    """Bearer token verification."""

    def verify(self, token: Optional[str]) -> AuthenticatedUser:
        if not token:
            raise UnauthenticatedError("Authorization token required")

        payload = decode_access_token(token)
        if not payload:
            raise UnauthenticatedError("Invalid or expired token")

        user_id = payload.get("sub")
        if not user_id:
            raise UnauthenticatedError("Token has no subject")

        return AuthenticatedUser(user_id=str(user_id), email=normalize_email(payload.get("email")))

    def verify_authorization_header(self, authorization: Optional[str]) -> AuthenticatedUser:
        if not authorization:
            raise UnauthenticatedError("Authorization header required")
        if not authorization.startswith("Bearer "):
            raise UnauthenticatedError("Invalid authorization format")
        return self.verify(authorization[7:].strip())


# Global service instance
identity_service = IdentityService()
