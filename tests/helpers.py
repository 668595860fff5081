"""
Test helpers shared by conftest and the test modules.

- create_user: a committed User, optionally with a Google credential
- auth_headers_for: Authorization header carrying a JWT for a user
- manifest: manifest entries for a list of file ids
- wait_for_status: poll /transfers/{token}/progress until a session status
- FakeDriveClient: in-memory stand-in for GoogleDriveClient
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.core.security import create_access_token
from app.environments.base import APIError
from app.environments.google.drive import DriveFile, DriveFileList, DrivePermission
from app.models.oauth_credential import OAuthCredential
from app.models.user import User


def create_user(
    db: Session,
    email: str,
    with_credential: bool = True,
    is_active: bool = True,
    token_expires_in: Optional[timedelta] = timedelta(hours=1),
    refresh_token: Optional[str] = "1//refresh",
) -> User:
    """Insert a user (and optionally their Google credential) and commit."""
    now = datetime.now(timezone.utc)
    user = User(
        id=uuid4(),
        google_id=f"google-{email}",
        email=email,
        display_name=email.split("@")[0].title(),
        is_active=is_active,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    if with_credential:
        db.add(
            OAuthCredential(
                user_id=user.id,
                provider="google",
                access_token=f"ya29.{email}",
                refresh_token=refresh_token,
                expires_at=now + token_expires_in if token_expires_in is not None else None,
                scopes=["https://www.googleapis.com/auth/drive"],
            )
        )
    db.commit()
    db.refresh(user)
    return user


def auth_headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(subject=str(user.id))}"}


def manifest(*file_ids: str) -> list[dict]:
    """Manifest entries named after their ids."""
    return [
        {"file_id": file_id, "file_name": f"{file_id}.pdf", "file_type": "application/pdf", "file_size": 1024}
        for file_id in file_ids
    ]


def wait_for_status(client: TestClient, token: str, headers: dict, expected: str) -> dict:
    """Poll progress until the session reaches `expected` (the batch runs in the background)."""
    for _ in range(100):
        body = client.get(f"/transfers/{token}/progress", headers=headers).json()
        if body["session_status"] == expected:
            return body
        time.sleep(0.02)
    raise AssertionError(f"session never reached {expected}: {body}")


class FakeDriveClient:
    """
    Stand-in for GoogleDriveClient.

    - failures: file_id -> APIError raised when that file is transferred
    - gate: when set, each transfer waits for it (to hold a batch mid-run)
    """

    def __init__(self):
        self.transfers: list[tuple[str, str]] = []
        self.tokens: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.gate: Optional[asyncio.Event] = None
        self.called: Optional[asyncio.Event] = None
        self.files: list[DriveFile] = []

    def __call__(self, access_token: str) -> "FakeDriveClient":
        self.tokens.append(access_token)
        return self

    async def transfer_ownership(self, file_id: str, new_owner_email: str) -> DrivePermission:
        if self.called is not None:
            self.called.set()
        if self.gate is not None:
            await self.gate.wait()
        if file_id in self.failures:
            raise self.failures[file_id]
        self.transfers.append((file_id, new_owner_email))
        return DrivePermission(id=f"perm-{file_id}", type="user", role="owner", email_address=new_owner_email)

    async def list_files(self, page_size: int = 50, page_token: Optional[str] = None, query=None) -> DriveFileList:
        return DriveFileList(files=self.files[:page_size])

    async def get_file(self, file_id: str) -> DriveFile:
        for drive_file in self.files:
            if drive_file.id == file_id:
                return drive_file
        raise APIError("The file could not be found in Google Drive.", status_code=404)
