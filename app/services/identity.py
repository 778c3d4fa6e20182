"""
Identity Service
================

Resolves a bearer credential to the calling user.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from app.core.security import decode_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerIdentity:
    """Authenticated end user."""

    user_id: str
    email: Optional[str] = None


class IdentityService(Protocol):
    """Validates bearer credentials."""

    async def authenticate(self, credential: str) -> Optional[CallerIdentity]:
        """Return the caller, or None if the credential is not valid."""
        ...


class JWTIdentityService:
    """Identity service backed by access tokens signed with ``JWT_SECRET``."""

    async def authenticate(self, credential: str) -> Optional[CallerIdentity]:
        payload = decode_token(credential)
        if payload is None or payload.get("type") != "access":
            return None

        subject = payload.get("sub")
        if not subject:
            logger.warning("Access token without subject rejected")
            return None

        return CallerIdentity(user_id=str(subject), email=payload.get("email"))
