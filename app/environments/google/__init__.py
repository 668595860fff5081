"""
Google Environment Module - Google Workspace Integration

google/
├── __init__.py           # Module exports
├── auth/                 # Shared OAuth authentication (sign-in, refresh)
└── drive/                # Drive v3: files, permissions, ownership transfer

Usage:
======
    from app.environments.google import GoogleAuthClient, GoogleDriveClient, DRIVE_SCOPES

    auth_client = GoogleAuthClient()
    auth_url = auth_client.get_authorization_url(scopes=DRIVE_SCOPES, state="...")
    tokens = await auth_client.exchange_code_for_tokens(code)

    drive = GoogleDriveClient(access_token=tokens.access_token)
    await drive.transfer_ownership(file_id, "receiver@example.com")
"""

from app.environments.google.auth import GoogleAuthClient, DRIVE_SCOPES, PROFILE_SCOPES
from app.environments.google.drive import GoogleDriveClient, DriveFile, DrivePermission

__all__ = [
    "GoogleAuthClient",
    "GoogleDriveClient",
    "DriveFile",
    "DrivePermission",
    "DRIVE_SCOPES",
    "PROFILE_SCOPES",
]
