"""
User model - a Google account that has signed in to Drive Handoff.

Users only come into existence through the Google OAuth callback, so a
User row always corresponds to a verified Google identity. Senders and
receivers of transfer sessions are both Users.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class User(Base):
    """
    SQLAlchemy ORM model for the 'users' table.

    A user can:
    - Send files (be the original owner in a transfer session)
    - Receive files (accept a session and become the new owner)
    - Hold Google OAuth credentials (see OAuthCredential)
    """

    __tablename__ = "users"

    # ---------------------------------------------------------------------------
    # PRIMARY KEY
    # ---------------------------------------------------------------------------
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    # ---------------------------------------------------------------------------
    # GOOGLE IDENTITY
    # ---------------------------------------------------------------------------
    # google_id: Google's stable account identifier (the 'sub' claim)
    google_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)

    # email: Google account email; used to grant Drive permissions
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)

    # ---------------------------------------------------------------------------
    # PROFILE INFORMATION
    # ---------------------------------------------------------------------------
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ---------------------------------------------------------------------------
    # ACCOUNT STATUS
    # ---------------------------------------------------------------------------
    # is_active: Inactive users cannot call the API or receive files
    is_active: Mapped[bool] = mapped_column(default=True)

    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # ---------------------------------------------------------------------------
    # TIMESTAMPS
    # ---------------------------------------------------------------------------
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # ---------------------------------------------------------------------------
    # RELATIONSHIPS
    # ---------------------------------------------------------------------------
    oauth_credentials: Mapped[list["OAuthCredential"]] = relationship(
        "OAuthCredential", back_populates="owner", cascade="all, delete-orphan"
    )

    @property
    def google_connected(self) -> bool:
        """True while the user has stored Google credentials."""
        return any(cred.provider == "google" for cred in self.oauth_credentials)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
