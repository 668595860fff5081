"""
Google OAuth Client - Handles the OAuth 2.0 authorization code flow.

Used in two places:
- The sign-in routes (authorization URL, code exchange, user info)
- The transfer token store (refreshing a sender's expired access token
  in the middle of a batch)

References:
===========
- OAuth 2.0: https://developers.google.com/identity/protocols/oauth2
- Token endpoint: https://oauth2.googleapis.com/token
- Userinfo: https://www.googleapis.com/oauth2/v3/userinfo
"""

import logging
import secrets
from typing import List, Optional
from urllib.parse import urlencode

import httpx

from app.core.config import settings
from app.environments.base import (
    EnvironmentProvider,
    OAuthTokens,
    UserInfo,
    AuthenticationError,
    TokenExpiredError,
)
from app.environments.google.auth.schemas import (
    GoogleTokenResponse,
    GoogleUserInfo,
    PROFILE_SCOPES,
)


logger = logging.getLogger("handoff.environments.google.auth")


class GoogleAuthClient(EnvironmentProvider):
    """
    Google OAuth 2.0 Client implementation.

    Example Usage:
        client = GoogleAuthClient()
        auth_url = client.get_authorization_url(scopes=DRIVE_SCOPES, state=state)
        tokens = await client.exchange_code_for_tokens(code="abc123")
        user_info = await client.get_user_info(tokens.access_token)
    """

    provider_name = "google"

    # Google OAuth endpoints
    AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
    REVOKE_URL = "https://oauth2.googleapis.com/revoke"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
    ):
        self.client_id = client_id or settings.GOOGLE_CLIENT_ID
        self.client_secret = client_secret or settings.GOOGLE_CLIENT_SECRET
        self.redirect_uri = redirect_uri or settings.GOOGLE_REDIRECT_URI

        if not self.client_id or not self.client_secret:
            logger.warning(
                "Google OAuth not configured. Set GOOGLE_CLIENT_ID and "
                "GOOGLE_CLIENT_SECRET in environment variables."
            )

    # -------------------------------------------------------------------------
    # AUTHORIZATION URL
    # -------------------------------------------------------------------------

    def get_authorization_url(
        self,
        scopes: List[str],
        state: str,
        redirect_uri: Optional[str] = None,
        include_profile: bool = True,
        access_type: str = "offline",
        prompt: str = "consent",
    ) -> str:
        """
        Generate the Google OAuth authorization URL.

        access_type="offline" with prompt="consent" makes Google return a
        refresh token every time, which background transfers depend on.
        """
        all_scopes = list(scopes)
        if include_profile:
            for scope in PROFILE_SCOPES:
                if scope not in all_scopes:
                    all_scopes.append(scope)

        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri or self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(all_scopes),
            "state": state,
            "access_type": access_type,
            "prompt": prompt,
        }

        auth_url = f"{self.AUTHORIZATION_URL}?{urlencode(params)}"

        logger.info(
            f"Generated Google auth URL with {len(all_scopes)} scopes",
            extra={"scopes": all_scopes}
        )

        return auth_url

    # -------------------------------------------------------------------------
    # TOKEN EXCHANGE
    # -------------------------------------------------------------------------

    async def _post_token_request(self, data: dict, error_cls: type) -> GoogleTokenResponse:
        """POST to the token endpoint, raising error_cls on any failure."""
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(self.TOKEN_URL, data=data, timeout=30.0)
            except httpx.RequestError as e:
                logger.error(f"Network error calling token endpoint: {e}")
                raise error_cls(f"Network error: {e}")

        if response.status_code != 200:
            error_data = response.json() if response.content else {}
            error_msg = error_data.get("error_description", response.text)
            logger.error(f"Token request ({data['grant_type']}) failed: {error_msg}")
            raise error_cls(f"Token request failed: {error_msg}")

        return GoogleTokenResponse(**response.json())

    async def exchange_code_for_tokens(
        self,
        code: str,
        redirect_uri: Optional[str] = None,
    ) -> OAuthTokens:
        """
        Exchange authorization code for access and refresh tokens.

        Raises:
            AuthenticationError: If token exchange fails
        """
        logger.info("Exchanging authorization code for tokens")

        token_response = await self._post_token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri or self.redirect_uri,
            },
            AuthenticationError,
        )

        logger.info(
            "Successfully obtained Google tokens",
            extra={
                "has_refresh_token": token_response.refresh_token is not None,
                "expires_in": token_response.expires_in,
            }
        )

        return OAuthTokens(
            access_token=token_response.access_token,
            token_type=token_response.token_type,
            refresh_token=token_response.refresh_token,
            expires_at=token_response.get_expires_at(),
            scopes=token_response.get_scopes_list(),
            extra_data={"id_token": token_response.id_token} if token_response.id_token else None,
        )

    # -------------------------------------------------------------------------
    # TOKEN REFRESH
    # -------------------------------------------------------------------------

    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        """
        Use refresh token to get a new access token.

        Raises:
            TokenExpiredError: If refresh token is invalid or revoked
        """
        logger.info("Refreshing access token")

        token_response = await self._post_token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            TokenExpiredError,
        )

        # Google usually omits refresh_token on refresh; keep the old one
        return OAuthTokens(
            access_token=token_response.access_token,
            token_type=token_response.token_type,
            refresh_token=token_response.refresh_token or refresh_token,
            expires_at=token_response.get_expires_at(),
            scopes=token_response.get_scopes_list(),
        )

    # -------------------------------------------------------------------------
    # USER INFO
    # -------------------------------------------------------------------------

    async def get_user_info(self, access_token: str) -> UserInfo:
        """Get the Google account behind an access token."""
        async with httpx.AsyncClient() as client:
            try:
                response = await client.get(
                    self.USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                    timeout=30.0,
                )
            except httpx.RequestError as e:
                logger.error(f"Network error fetching user info: {e}")
                raise AuthenticationError(f"Network error: {e}")

        if response.status_code != 200:
            logger.error(f"Failed to fetch user info: {response.text}")
            raise AuthenticationError("Failed to fetch user info")

        google_user = GoogleUserInfo(**response.json())

        return UserInfo(
            provider_user_id=google_user.sub,
            email=google_user.email,
            name=google_user.name,
            picture_url=google_user.picture,
            extra_data={"email_verified": google_user.email_verified},
        )

    # -------------------------------------------------------------------------
    # TOKEN REVOCATION
    # -------------------------------------------------------------------------

    async def revoke_token(self, token: str) -> bool:
        """Revoke an access or refresh token. Returns True on success."""
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    self.REVOKE_URL,
                    params={"token": token},
                    timeout=30.0,
                )
            except httpx.RequestError as e:
                logger.error(f"Network error during token revocation: {e}")
                return False

        if response.status_code != 200:
            logger.warning(f"Token revocation returned status {response.status_code}")
            return False
        return True

    # -------------------------------------------------------------------------
    # UTILITY METHODS
    # -------------------------------------------------------------------------

    @staticmethod
    def generate_state() -> str:
        """Generate a cryptographically secure CSRF state parameter."""
        return secrets.token_urlsafe(32)
