"""
Google Drive Module - Drive v3 API integration.

This module provides:
- GoogleDriveClient: list files, read metadata and permissions,
  grant writer access and transfer ownership
- DriveFile / DrivePermission: typed Drive responses

Usage:
    from app.environments.google.drive import GoogleDriveClient

    drive = GoogleDriveClient(access_token="ya29.xxx")
    permission = await drive.transfer_ownership("1abc...", "receiver@example.com")
"""

from app.environments.google.drive.client import GoogleDriveClient
from app.environments.google.drive.schemas import (
    DriveFile,
    DriveFileList,
    DrivePermission,
    DriveUser,
)

__all__ = [
    "GoogleDriveClient",
    "DriveFile",
    "DriveFileList",
    "DrivePermission",
    "DriveUser",
]
