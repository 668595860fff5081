"""
User schemas - Pydantic models for user-related API responses.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr


class UserOut(BaseModel):
    """
    Schema for user data in API responses.

    Google tokens are never part of this schema; whether the account is
    connected is reported as a flag only.

    Example response:
    {
        "id": "550e8400-e29b-41d4-a716-446655440000",
        "email": "alice@example.com",
        "display_name": "Alice",
        "avatar_url": null,
        "is_active": true,
        "google_connected": true,
        "created_at": "2025-12-02T10:30:00Z"
    }
    """

    # from_attributes=True: build this schema straight from a User ORM object
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: EmailStr
    display_name: str | None
    avatar_url: str | None = None
    is_active: bool
    google_connected: bool = False
    last_login: datetime | None = None
    created_at: datetime


class UserStatsOut(BaseModel):
    """Counts of the file transfers a user sent or received."""

    model_config = ConfigDict(from_attributes=True)

    total_transfers: int = 0
    completed_transfers: int = 0
    failed_transfers: int = 0


class UserProfileOut(UserOut):
    """GET /users/me: the user plus their transfer totals."""

    stats: UserStatsOut = UserStatsOut()


class TokenResponse(BaseModel):
    """Returned by the Google OAuth callback once the user is signed in."""

    access_token: str
    token_type: str = "bearer"
    user: UserOut
