"""
Declarative base for all ORM models.

Importing this module also imports every model so that
Base.metadata knows about all tables (used by tests and Alembic).
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


# Register models on Base.metadata
from app.models import user, oauth_credential, transfer, audit_log  # noqa: E402,F401
