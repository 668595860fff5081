"""
Security utilities - JWT access token creation and decoding.

Users sign in with Google; after the OAuth callback the service issues its
own short JWT so API calls do not carry Google tokens around.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt  # python-jose library for JWT encoding/decoding

from app.core.config import settings


def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    """
    Create a JWT (JSON Web Token) access token.

    Args:
        subject: The token's subject claim - the user's ID as a string
        expires_delta: Optional custom expiration time
                      If None, uses ACCESS_TOKEN_EXPIRE_MINUTES from settings

    Returns:
        A signed JWT string (e.g., "eyJhbGciOiJIUzI1NiIs...")

    Security notes:
        - The payload is NOT encrypted, just base64 encoded
        - Only someone with SECRET_KEY can create valid signatures
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta
        else timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )

    to_encode = {"sub": subject, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> str | None:
    """
    Validate a JWT and return its subject.

    Returns None for any invalid, expired or subject-less token so callers
    can answer with a single 401 regardless of the reason.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub")
