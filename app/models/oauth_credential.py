"""
OAuth Credential model - stores Google OAuth tokens for each user.

The transfer engine acts on behalf of the sender: it needs the sender's
access token to grant and promote permissions on the sender's files.
Receivers must also have connected their Google account, which is what
"previously authenticated" means when a session is created.

Example:
    credential = OAuthCredential(
        user_id=user.id,
        provider="google",
        access_token="ya29.xxx",
        refresh_token="1//xxx",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        scopes=["https://www.googleapis.com/auth/drive"],
    )
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, DateTime, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base

if TYPE_CHECKING:
    from app.models.user import User


# Refresh this long before the provider's stated expiry
EXPIRY_BUFFER = timedelta(minutes=5)


class OAuthCredential(Base):
    """
    SQLAlchemy ORM model for the 'oauth_credentials' table.

    One row per (user, provider). Tokens are replaced in place when the
    user signs in again or when the access token is refreshed.
    """

    __tablename__ = "oauth_credentials"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_oauth_credentials_user_provider"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    # user_id: CASCADE so deleting a user removes their tokens
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # provider: "google" for every row today
    provider: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # ---------------------------------------------------------------------------
    # TOKEN DATA
    # ---------------------------------------------------------------------------
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token_type: Mapped[str] = mapped_column(String(50), default="Bearer")

    # expires_at: When the access_token expires (None = unknown, treat as expired)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    scopes: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    extra_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    owner: Mapped["User"] = relationship("User", back_populates="oauth_credentials")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """
        Check if the access token has expired or is about to.

        SQLite hands back naive datetimes; they are stored as UTC.
        """
        if self.expires_at is None:
            return True

        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)

        now = now or datetime.now(timezone.utc)
        return now >= (expires_at - EXPIRY_BUFFER)

    def has_scope(self, scope: str) -> bool:
        """Check if a specific scope was granted."""
        if self.scopes is None:
            return False
        return scope in self.scopes

    def __repr__(self) -> str:
        return f"<OAuthCredential(user_id={self.user_id}, provider='{self.provider}')>"
