"""
Google Auth Module - OAuth 2.0 Authentication for Google Services

Sign-in flow:
1. User opens /auth/google/login
2. Backend redirects to Google's consent screen with Drive + profile scopes
3. Google redirects back with an authorization code
4. Backend exchanges the code for access + refresh tokens
5. Tokens are stored in OAuthCredential and reused by the transfer engine
"""

from app.environments.google.auth.client import GoogleAuthClient
from app.environments.google.auth.schemas import (
    GoogleTokenResponse,
    GoogleUserInfo,
    DRIVE_SCOPES,
    PROFILE_SCOPES,
)

__all__ = [
    "GoogleAuthClient",
    "GoogleTokenResponse",
    "GoogleUserInfo",
    "DRIVE_SCOPES",
    "PROFILE_SCOPES",
]
