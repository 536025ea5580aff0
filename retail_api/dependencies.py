import logging

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from retail_api.database import get_db
from retail_api.schemas.auth import UserIdentity
from retail_api.services.auth_service import AuthService
from retail_api.utils.email import Notifier, get_notifier
from retail_api.utils.exceptions import (
    UnauthorizedException,
    ForbiddenException,
    InvalidTokenException,
)

logger = logging.getLogger(__name__)

# Bearer token extractor
bearer_scheme = HTTPBearer(auto_error=False)


# ─── Service ──────────────────────────────────────────────────────────────────
def get_auth_service(notifier: Notifier = Depends(get_notifier)) -> AuthService:
    return AuthService(notifier)


# ─── Get Current User ─────────────────────────────────────────────────────────
def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserIdentity:
    """
    Resolve the Bearer token to the caller's identity before the handler runs.
    Raises 401 if no token is presented, 403 if the token is rejected.
    """
    if not credentials:
        raise UnauthorizedException("Access token required")

    try:
        identity = auth_service.verify_token(db, credentials.credentials)
    except InvalidTokenException:
        raise ForbiddenException("Invalid or expired token")

    user = UserIdentity(**identity)
    request.state.user = user
    return user


def get_optional_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserIdentity | None:
    """
    Same lookup as get_current_user, but anonymous callers and bad tokens
    simply leave the identity unset.
    """
    request.state.user = None
    if not credentials:
        return None

    try:
        identity = auth_service.verify_token(db, credentials.credentials)
    except InvalidTokenException:
        logger.debug("Ignoring invalid bearer token on optional-auth route")
        return None

    user = UserIdentity(**identity)
    request.state.user = user
    return user
