"""
Common Dependencies
===================

Shared dependencies used across the application.

Every collaborator of the billing logic (repository, PayFast client,
identity service) is built here and injected, so tests can swap any of them
through ``app.dependency_overrides``.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.core.errors import AuthenticationError, ErrorCodes
from app.core.signature import PayFastSignatureVerifier
from app.db.repository import SQLAlchemySubscriptionRepository, SubscriptionRepository
from app.db.session import get_db
from app.services.cancellation import CancellationCoordinator
from app.services.identity import CallerIdentity, IdentityService, JWTIdentityService
from app.services.payfast import PayFastClient
from app.services.subscription_state import SubscriptionStateMachine

logger = logging.getLogger(__name__)

# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]

# Application settings dependency
AppSettings = Annotated[Settings, Depends(get_settings)]

# Security scheme for JWT authentication
security = HTTPBearer(auto_error=False)

# Development test user (only when DEV_AUTH_DISABLED is set outside production)
DEV_USER_ID = "00000000-0000-0000-0000-000000000001"
DEV_USER_EMAIL = "dev@test.local"


# =============================================================================
# Collaborators
# =============================================================================

def get_identity_service() -> IdentityService:
    return JWTIdentityService()


def get_subscription_repository(db: DBSession) -> SubscriptionRepository:
    return SQLAlchemySubscriptionRepository(db)


def get_payfast_client(app_settings: AppSettings) -> PayFastClient:
    return PayFastClient(app_settings)


def get_signature_verifier(app_settings: AppSettings) -> PayFastSignatureVerifier:
    return PayFastSignatureVerifier(
        merchant_id=app_settings.PAYFAST_MERCHANT_ID,
        passphrase=app_settings.PAYFAST_PASSPHRASE,
    )


Repository = Annotated[SubscriptionRepository, Depends(get_subscription_repository)]
PayFast = Annotated[PayFastClient, Depends(get_payfast_client)]


def get_state_machine(
    repository: Repository,
    app_settings: AppSettings,
) -> SubscriptionStateMachine:
    return SubscriptionStateMachine(repository, app_settings)


def get_cancellation_coordinator(
    repository: Repository,
    payfast: PayFast,
) -> CancellationCoordinator:
    return CancellationCoordinator(repository, payfast)


SignatureVerifier = Annotated[PayFastSignatureVerifier, Depends(get_signature_verifier)]
StateMachine = Annotated[SubscriptionStateMachine, Depends(get_state_machine)]
Coordinator = Annotated[CancellationCoordinator, Depends(get_cancellation_coordinator)]


# =============================================================================
# Caller resolution
# =============================================================================

async def get_current_caller(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    identity_service: Annotated[IdentityService, Depends(get_identity_service)],
    app_settings: AppSettings,
) -> CallerIdentity:
    """
    Get the current authenticated caller.

    Raises 401 if not authenticated or token is invalid.
    In development with DEV_AUTH_DISABLED=True, returns the dev user.
    """
    # If auth is disabled in development, return dev user
    if app_settings.auth_disabled:
        caller = CallerIdentity(user_id=DEV_USER_ID, email=DEV_USER_EMAIL)
        request.state.user_id = caller.user_id
        return caller

    if credentials is None:
        raise AuthenticationError(
            code=ErrorCodes.AUTH_NOT_AUTHENTICATED,
            message="Not authenticated",
        )

    caller = await identity_service.authenticate(credentials.credentials)

    if caller is None:
        logger.info("Rejected bearer credential")
        raise AuthenticationError(
            code=ErrorCodes.AUTH_INVALID_TOKEN,
            message="Invalid or expired token",
        )

    # Picked up by the New Relic middleware
    request.state.user_id = caller.user_id
    return caller


# Type alias for authenticated caller dependency
CurrentCaller = Annotated[CallerIdentity, Depends(get_current_caller)]
