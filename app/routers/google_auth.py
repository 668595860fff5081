"""
Google Auth Router - sign in with Google and connect Drive.

Google is the only way into Drive Handoff: the callback creates (or
updates) the User, stores their Drive tokens and returns our own JWT.

Endpoints:
==========
- GET /auth/google/login    → Redirect to Google OAuth consent screen
- GET /auth/google/callback → Exchange code, upsert user + tokens, return JWT
- GET /auth/google/status   → Whether the current user's Google link is usable
- DELETE /auth/google       → Revoke and remove stored Google tokens

OAuth Flow:
===========
1. Frontend sends the browser to GET /auth/google/login
2. Backend redirects to Google's consent screen (Drive + profile scopes)
3. Google redirects to /auth/google/callback with code and state
4. Backend exchanges the code, reads the Google profile, stores tokens
5. Response carries the JWT used for every other endpoint

Security:
=========
- CSRF protection via the state parameter (single use)
- access_type=offline so background transfers can refresh tokens
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.core.security import create_access_token
from app.db.session import get_db
from app.deps import get_current_user
from app.environments.base import EnvironmentError, OAuthTokens, UserInfo
from app.environments.google import DRIVE_SCOPES, GoogleAuthClient
from app.models.audit_log import AuditLog
from app.models.oauth_credential import OAuthCredential
from app.models.user import User
from app.schemas.user import TokenResponse, UserOut


logger = logging.getLogger("handoff.routers.google_auth")


# ---------------------------------------------------------------------------
# ROUTER SETUP
# ---------------------------------------------------------------------------
router = APIRouter(prefix="/auth/google", tags=["google-auth"])


# ---------------------------------------------------------------------------
# STATE STORAGE (in-memory, single server)
# ---------------------------------------------------------------------------
_oauth_states: dict[str, dict] = {}


def _store_state(state: str, data: dict) -> None:
    """Store OAuth state data (CSRF protection)."""
    _oauth_states[state] = data


def _get_and_remove_state(state: str) -> Optional[dict]:
    """Retrieve and remove OAuth state data."""
    return _oauth_states.pop(state, None)


def get_auth_client() -> GoogleAuthClient:
    return GoogleAuthClient()


# ---------------------------------------------------------------------------
# HELPER FUNCTIONS
# ---------------------------------------------------------------------------

def upsert_google_user(db: Session, google_user: UserInfo, tokens: OAuthTokens) -> User:
    """
    Create or update the User and their Google OAuthCredential.

    Users are matched on Google's stable id first, then on email (an
    account that changed its Google id keeps its history).
    """
    user = db.query(User).filter(User.google_id == google_user.provider_user_id).first()
    if user is None and google_user.email:
        user = db.query(User).filter(User.email == google_user.email).first()

    now = datetime.now(timezone.utc)
    if user is None:
        user = User(
            google_id=google_user.provider_user_id,
            email=google_user.email,
            display_name=google_user.name,
            avatar_url=google_user.picture_url,
            is_active=True,
            last_login=now,
        )
        db.add(user)
        db.flush()
        logger.info(f"Created user {user.id} from Google sign-in")
    else:
        user.google_id = google_user.provider_user_id
        user.email = google_user.email or user.email
        user.display_name = google_user.name or user.display_name
        user.avatar_url = google_user.picture_url or user.avatar_url
        user.last_login = now

    cred = db.query(OAuthCredential).filter(
        OAuthCredential.user_id == user.id,
        OAuthCredential.provider == "google",
    ).first()

    if cred:
        cred.access_token = tokens.access_token
        cred.refresh_token = tokens.refresh_token or cred.refresh_token
        cred.expires_at = tokens.expires_at
        cred.scopes = tokens.scopes
        if tokens.extra_data:
            cred.extra_data = tokens.extra_data
        logger.info(f"Updated Google credentials for user {user.id}")
    else:
        db.add(
            OAuthCredential(
                user_id=user.id,
                provider="google",
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                token_type=tokens.token_type,
                expires_at=tokens.expires_at,
                scopes=tokens.scopes,
                extra_data=tokens.extra_data,
            )
        )
        logger.info(f"Created Google credentials for user {user.id}")

    db.add(AuditLog(user_id=user.id, action="user_signed_in", resource_type="user", resource_id=str(user.id)))
    return user


# ---------------------------------------------------------------------------
# ENDPOINTS
# ---------------------------------------------------------------------------

@router.get("/login")
async def google_login(
    auth_client: GoogleAuthClient = Depends(get_auth_client),
):
    """
    Start Google sign-in.

    Redirects to Google's consent screen asking for Drive access plus the
    basic profile (email is what Drive permissions are granted to).
    """
    if not auth_client.client_id:
        logger.error("Google OAuth not configured - missing GOOGLE_CLIENT_ID")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google OAuth is not configured. Please set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET.",
        )

    state = auth_client.generate_state()
    _store_state(state, {"created_at": datetime.now(timezone.utc).isoformat()})

    auth_url = auth_client.get_authorization_url(scopes=DRIVE_SCOPES, state=state)
    logger.info("Initiating Google sign-in", extra={"scopes": DRIVE_SCOPES})
    return RedirectResponse(url=auth_url)


@router.get("/callback", response_model=TokenResponse)
async def google_callback(
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    state: Optional[str] = Query(None, description="CSRF state token"),
    error: Optional[str] = Query(None, description="Error from Google"),
    error_description: Optional[str] = Query(None, description="Error details"),
    db: Session = Depends(get_db),
    auth_client: GoogleAuthClient = Depends(get_auth_client),
):
    """
    Handle Google's redirect after consent.

    Flow:
        1. Validate state token (CSRF protection)
        2. Exchange code for tokens
        3. Get the Google profile
        4. Upsert User + OAuthCredential
        5. Return a JWT for this API
    """
    if error:
        logger.warning(f"Google OAuth error: {error} - {error_description}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Google authorization failed: {error_description or error}",
        )

    if not code or not state:
        logger.warning("Missing code or state in OAuth callback")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing authorization code or state parameter",
        )

    if _get_and_remove_state(state) is None:
        logger.warning("Invalid or expired OAuth state")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired state. Please try again.",
        )

    try:
        tokens = await auth_client.exchange_code_for_tokens(code=code)
        google_user = await auth_client.get_user_info(tokens.access_token)
    except EnvironmentError as e:
        logger.error(f"Google sign-in failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to complete authentication: {e}",
        )

    if not google_user.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Google did not share an email address for this account.",
        )

    user = upsert_google_user(db, google_user, tokens)
    db.commit()
    db.refresh(user)

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    return TokenResponse(
        access_token=create_access_token(subject=str(user.id)),
        user=UserOut.model_validate(user),
    )


@router.get("/status")
async def google_connection_status(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Whether the current user has usable Google credentials."""
    cred = db.query(OAuthCredential).filter(
        OAuthCredential.user_id == current_user.id,
        OAuthCredential.provider == "google",
    ).first()

    if not cred:
        return {"connected": False, "scopes": []}

    return {
        "connected": True,
        "scopes": cred.scopes or [],
        "has_drive_scope": all(cred.has_scope(scope) for scope in DRIVE_SCOPES),
        "expires_at": cred.expires_at.isoformat() if cred.expires_at else None,
        "is_expired": cred.is_expired(),
    }


@router.delete("")
async def disconnect_google(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    auth_client: GoogleAuthClient = Depends(get_auth_client),
):
    """
    Revoke and delete the stored Google tokens.

    The user can no longer send files or be chosen as a receiver until
    they sign in with Google again.
    """
    cred = db.query(OAuthCredential).filter(
        OAuthCredential.user_id == current_user.id,
        OAuthCredential.provider == "google",
    ).first()

    if not cred:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No Google account connected",
        )

    # Removal goes ahead even if Google refuses the revoke
    if not await auth_client.revoke_token(cred.refresh_token or cred.access_token):
        logger.warning(f"Google did not confirm token revocation for user {current_user.id}")

    db.delete(cred)
    db.add(AuditLog(user_id=current_user.id, action="google_disconnected", resource_type="user",
                    resource_id=str(current_user.id)))
    db.commit()

    logger.info(f"Disconnected Google account for user {current_user.id}")
    return {"status": "success", "message": "Google account disconnected"}
