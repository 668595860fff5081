"""
Token Store - per-user Google credentials for the transfer engine.

Reads OAuthCredential rows and hands back an access token that is valid
right now, refreshing it through GoogleAuthClient (and saving the new
token) when the stored one has expired or is about to.

The database session is never held across the network call: the row is
read, the session closed, the refresh awaited, and the new token written
in a second short session.
"""

import logging
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.environments.base import EnvironmentError, OAuthTokens
from app.environments.google.auth import GoogleAuthClient
from app.models.oauth_credential import OAuthCredential
from app.models.user import User
from app.services.transfer.errors import (
    ExternalProviderError,
    NotFoundError,
    PersistenceError,
)
from app.services.transfer.records import UserIdentity


logger = logging.getLogger("handoff.services.transfer.tokens")

PROVIDER = "google"


class TokenStore:
    """
    Access-token lookup with refresh-on-expiry.

    Args:
        session_factory: sessionmaker bound to the app database
        auth_client: GoogleAuthClient used for refreshes (created lazily)
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        auth_client: Optional[GoogleAuthClient] = None,
    ):
        self._session_factory = session_factory
        self._auth_client = auth_client

    @property
    def auth_client(self) -> GoogleAuthClient:
        if self._auth_client is None:
            self._auth_client = GoogleAuthClient()
        return self._auth_client

    def _load(self, user_id: UUID) -> Optional[OAuthCredential]:
        db = self._session_factory()
        try:
            cred = db.query(OAuthCredential).filter(
                OAuthCredential.user_id == user_id,
                OAuthCredential.provider == PROVIDER,
            ).first()
            if cred is not None:
                db.expunge(cred)
            return cred
        except SQLAlchemyError as e:
            raise PersistenceError(detail=str(e)) from e
        finally:
            db.close()

    def get_identity(self, user_id: UUID) -> UserIdentity:
        """
        Resolve the Google account email the user signed in with.

        Raises:
            NotFoundError: unknown or deactivated user
        """
        db = self._session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
        except SQLAlchemyError as e:
            raise PersistenceError(detail=str(e)) from e
        else:
            if user is None or not user.is_active:
                raise NotFoundError(f"User {user_id} not found or inactive.")
            return UserIdentity(id=user.id, email=user.email, is_active=user.is_active)
        finally:
            db.close()

    def has_credentials(self, user_id: UUID) -> bool:
        """True when the user has connected their Google account."""
        return self._load(user_id) is not None

    async def get_access_token(self, user_id: UUID) -> str:
        """
        Return a usable access token for the user.

        Raises:
            NotFoundError: the user has no stored Google credential
            ExternalProviderError: token expired and could not be refreshed
        """
        cred = self._load(user_id)
        if cred is None:
            raise NotFoundError(f"No Google credentials stored for user {user_id}.")

        if not cred.is_expired():
            return cred.access_token

        if not cred.refresh_token:
            logger.warning(f"Token expired and no refresh token for user {user_id}")
            raise ExternalProviderError(
                "Google access expired. Please sign in again.",
                detail="no refresh token stored",
                status_code=401,
            )

        try:
            new_tokens = await self.auth_client.refresh_access_token(cred.refresh_token)
        except EnvironmentError as e:
            logger.error(f"Failed to refresh token for user {user_id}: {e}")
            raise ExternalProviderError(
                "Google access expired. Please sign in again.",
                detail=str(e),
                status_code=401,
            ) from e

        self._save_refreshed(user_id, new_tokens)
        logger.info(f"Refreshed Google token for user {user_id}")
        return new_tokens.access_token

    def _save_refreshed(self, user_id: UUID, tokens: OAuthTokens) -> None:
        db = self._session_factory()
        try:
            cred = db.query(OAuthCredential).filter(
                OAuthCredential.user_id == user_id,
                OAuthCredential.provider == PROVIDER,
            ).first()
            if cred is None:
                return
            cred.access_token = tokens.access_token
            cred.expires_at = tokens.expires_at
            if tokens.refresh_token:
                cred.refresh_token = tokens.refresh_token
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(detail=str(e)) from e
        finally:
            db.close()
