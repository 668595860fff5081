"""
Base classes and interfaces for Environment integrations.

This module defines the contracts that external providers (Google today)
and their API services implement, plus the exceptions they raise.

- EnvironmentProvider: OAuth provider (authorization URL, token exchange,
  refresh, user info, revocation)
- EnvironmentService: an API service that works with a provider's tokens
  (Drive)

Remote failures are always raised as one of the exceptions below so the
transfer engine can record them per file without knowing HTTP details.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List, Dict, Any


# ---------------------------------------------------------------------------
# CUSTOM EXCEPTIONS
# ---------------------------------------------------------------------------


class EnvironmentError(Exception):
    """Base exception for all environment-related errors."""
    pass


class AuthenticationError(EnvironmentError):
    """Raised when authentication with a provider fails."""
    pass


class TokenExpiredError(EnvironmentError):
    """Raised when an OAuth token has expired and refresh failed."""
    pass


class APIError(EnvironmentError):
    """Raised when an API call to the provider fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


# ---------------------------------------------------------------------------
# DATA STRUCTURES
# ---------------------------------------------------------------------------


@dataclass
class OAuthTokens:
    """
    Standardized token data from an OAuth provider.

    Used to move token data between the OAuth flow and OAuthCredential rows.
    """
    access_token: str
    token_type: str = "Bearer"
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scopes: Optional[List[str]] = None
    extra_data: Optional[Dict[str, Any]] = None


@dataclass
class UserInfo:
    """Basic user information returned by the provider's userinfo endpoint."""
    provider_user_id: str  # Google's 'sub'
    email: Optional[str] = None
    name: Optional[str] = None
    picture_url: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# ABSTRACT BASE CLASSES
# ---------------------------------------------------------------------------


class EnvironmentProvider(ABC):
    """
    Abstract base class for OAuth providers.

    The provider is responsible for:
    - Generating authorization URLs
    - Exchanging authorization codes for tokens
    - Refreshing expired tokens
    - Extracting user information from tokens
    """

    provider_name: str = ""

    @abstractmethod
    def get_authorization_url(
        self,
        scopes: List[str],
        state: str,
        redirect_uri: Optional[str] = None,
    ) -> str:
        """Generate the OAuth authorization URL."""
        pass

    @abstractmethod
    async def exchange_code_for_tokens(
        self,
        code: str,
        redirect_uri: Optional[str] = None,
    ) -> OAuthTokens:
        """
        Exchange authorization code for access/refresh tokens.

        Raises:
            AuthenticationError: If code exchange fails
        """
        pass

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        """
        Use refresh token to get a new access token.

        Raises:
            TokenExpiredError: If refresh token is invalid/expired
        """
        pass

    @abstractmethod
    async def get_user_info(self, access_token: str) -> UserInfo:
        """Get user information from the provider."""
        pass

    @abstractmethod
    async def revoke_token(self, token: str) -> bool:
        """Revoke an access or refresh token."""
        pass


class EnvironmentService(ABC):
    """
    Abstract base class for API services within a provider.

    Example:
        class GoogleDriveClient(EnvironmentService):
            service_name = "drive"
            required_scopes = ["https://www.googleapis.com/auth/drive"]
    """

    service_name: str = ""

    # OAuth scopes required for this service to function
    required_scopes: List[str] = []

    @abstractmethod
    async def validate_access(self, access_token: str) -> bool:
        """Verify the access token is valid for this service."""
        pass
