"""
Dependencies module - reusable FastAPI dependencies for route handlers.

- get_current_user: validates the JWT issued after Google sign-in
- get_transfer_orchestrator: the orchestrator created in the app lifespan
"""

import uuid  # For parsing user ID from token

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials  # Auth header extraction
from sqlalchemy.orm import Session

from app.core.security import decode_access_token
from app.db.session import get_db
from app.models.user import User
from app.services.transfer import TransferOrchestrator, build_transfer_orchestrator

# ---------------------------------------------------------------------------
# SECURITY SCHEME
# ---------------------------------------------------------------------------
# HTTPBearer: Extracts tokens from the "Authorization: Bearer <token>" header
# - auto_error=True (default): a missing header is rejected before the route runs
security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Validate JWT token and return the authenticated user.

    Args:
        credentials: Extracted from "Authorization: Bearer <token>" header
        db: Database session for querying the user

    Returns:
        User: The authenticated user object from the database

    Raises:
        401 Unauthorized: If token is invalid, expired, or user not found
        403 Forbidden: If user account is deactivated
    """
    # Same error for every failure so callers can't tell which check failed
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    # ---------------------------------------------------------------------------
    # STEP 1: Decode the JWT and read the "sub" claim
    # ---------------------------------------------------------------------------
    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        raise credentials_exception

    try:
        uid = uuid.UUID(user_id)
    except ValueError:
        raise credentials_exception

    # ---------------------------------------------------------------------------
    # STEP 2: Look up the user
    # ---------------------------------------------------------------------------
    user = db.query(User).filter(User.id == uid).first()
    if user is None:
        raise credentials_exception

    # Valid token, but deactivated accounts are refused (403, not 401)
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    return user


def get_transfer_orchestrator(request: Request) -> TransferOrchestrator:
    """
    The app-wide TransferOrchestrator.

    Normally created by the lifespan handler; built on demand when the app
    is used without its lifespan running.
    """
    orchestrator = getattr(request.app.state, "transfer_orchestrator", None)
    if orchestrator is None:
        orchestrator = build_transfer_orchestrator()
        request.app.state.transfer_orchestrator = orchestrator
    return orchestrator
