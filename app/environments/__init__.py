"""
Environments Module - External Service Integrations

environments/
├── __init__.py           # Module exports
├── base.py               # Abstract base classes and remote-call exceptions
└── google/
    ├── auth/             # Google OAuth (sign-in, token refresh)
    └── drive/            # Google Drive v3 (files, permissions, ownership)

Design Principles:
==================
1. Shared Authentication: one set of Google tokens serves every Drive call
2. Remote failures surface as EnvironmentError subclasses only
3. Clients take an access token at construction and hold no other state
"""

from app.environments.base import (
    EnvironmentProvider,
    EnvironmentService,
    EnvironmentError,
    AuthenticationError,
    TokenExpiredError,
    APIError,
)

__all__ = [
    "EnvironmentProvider",
    "EnvironmentService",
    "EnvironmentError",
    "AuthenticationError",
    "TokenExpiredError",
    "APIError",
]
