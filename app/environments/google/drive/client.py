"""
Google Drive API Client - file listing, permissions and ownership transfer.

Key Features:
=============
1. List the files the authenticated user owns
2. Fetch a single file's metadata
3. List / create / update permissions on a file
4. Transfer ownership in one call (grant writer, then promote to owner)

Every failure is raised as APIError with a user-facing message and the
HTTP status, so callers never see httpx exceptions.

API Reference:
==============
- Files: https://developers.google.com/drive/api/reference/rest/v3/files
- Permissions: https://developers.google.com/drive/api/reference/rest/v3/permissions
"""

import logging
from typing import Any, Optional

import httpx

from app.core.config import settings
from app.environments.base import EnvironmentService, APIError
from app.environments.google.auth.schemas import DRIVE_SCOPES
from app.environments.google.drive.schemas import (
    DriveFile,
    DriveFileList,
    DrivePermission,
)


logger = logging.getLogger("handoff.environments.google.drive")


# ---------------------------------------------------------------------------
# ERROR MESSAGES
# ---------------------------------------------------------------------------
ERROR_UNAUTHORIZED = "Google rejected the stored credentials. Please sign in again."
ERROR_NO_PERMISSION = "You don't have permission to change sharing on this file."
ERROR_NOT_FOUND = "The file could not be found in Google Drive."
ERROR_RATE_LIMITED = "Google Drive rate limit reached. Please try again later."
ERROR_NETWORK = "Could not reach Google Drive. Please try again later."
ERROR_REQUEST_FAILED = "Google Drive could not complete the request"

FILE_FIELDS = "id, name, mimeType, size, owners, createdTime, modifiedTime, webViewLink"
PERMISSION_FIELDS = "id, type, role, emailAddress, displayName"


class GoogleDriveClient(EnvironmentService):
    """
    Google Drive v3 API client.

    Attributes:
        access_token: Google OAuth access token with the drive scope
        transport: Optional httpx transport (tests pass httpx.MockTransport)

    Example:
        drive = GoogleDriveClient(access_token="ya29.xxx")
        page = await drive.list_files(page_size=20)
    """

    service_name = "drive"
    required_scopes = DRIVE_SCOPES

    BASE_URL = "https://www.googleapis.com/drive/v3"

    def __init__(
        self,
        access_token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.access_token = access_token
        self._transport = transport
        self._timeout = timeout or settings.DRIVE_REQUEST_TIMEOUT

    # -------------------------------------------------------------------------
    # HTTP CLIENT MANAGEMENT
    # -------------------------------------------------------------------------

    def _get_headers(self) -> dict:
        """Get authorization headers for API requests."""
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict:
        """
        Make an authenticated request to the Drive API.

        Raises:
            APIError: If the request fails, with a user-friendly message
        """
        url = f"{self.BASE_URL}{endpoint}"

        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self._get_headers(),
                    params=params,
                    json=json_body,
                    timeout=self._timeout,
                )
            except httpx.RequestError as e:
                logger.error(f"Network error in Drive API: {e}")
                raise APIError(ERROR_NETWORK)

        if response.status_code == 401:
            logger.error("Drive API: Unauthorized (token may be expired)")
            raise APIError(ERROR_UNAUTHORIZED, status_code=401, response=response.text)

        if response.status_code == 403:
            error_text = response.text.lower()
            if "ratelimit" in error_text or "rate limit" in error_text:
                logger.warning("Drive API: rate limited")
                raise APIError(ERROR_RATE_LIMITED, status_code=403, response=response.text)
            logger.error("Drive API: Forbidden")
            raise APIError(ERROR_NO_PERMISSION, status_code=403, response=response.text)

        if response.status_code == 404:
            logger.error(f"Drive API: not found ({endpoint})")
            raise APIError(ERROR_NOT_FOUND, status_code=404, response=response.text)

        if response.status_code == 429:
            raise APIError(ERROR_RATE_LIMITED, status_code=429, response=response.text)

        if response.status_code >= 300:
            logger.error(f"Drive API error: {response.status_code} - {response.text}")
            raise APIError(
                f"{ERROR_REQUEST_FAILED} (HTTP {response.status_code})",
                status_code=response.status_code,
                response=response.text,
            )

        if not response.content:
            return {}
        return response.json()

    # -------------------------------------------------------------------------
    # FILE OPERATIONS
    # -------------------------------------------------------------------------

    async def list_files(
        self,
        page_size: int = 50,
        page_token: Optional[str] = None,
        query: Optional[str] = None,
    ) -> DriveFileList:
        """
        List non-trashed files owned by the authenticated user.

        Args:
            page_size: Files per page (Drive caps this at 1000)
            page_token: nextPageToken from a previous call
            query: Extra Drive query clause ANDed with the ownership filter
        """
        q = "'me' in owners and trashed = false"
        if query:
            q = f"{q} and ({query})"

        params: dict[str, Any] = {
            "pageSize": page_size,
            "q": q,
            "orderBy": "modifiedTime desc",
            "fields": f"nextPageToken, files({FILE_FIELDS})",
        }
        if page_token:
            params["pageToken"] = page_token

        data = await self._make_request("GET", "/files", params=params)
        result = DriveFileList.model_validate(data)
        logger.info(
            f"Listed {len(result.files)} files",
            extra={"has_next_page": result.next_page_token is not None},
        )
        return result

    async def get_file(self, file_id: str) -> DriveFile:
        """Fetch one file's metadata."""
        data = await self._make_request(
            "GET", f"/files/{file_id}", params={"fields": FILE_FIELDS}
        )
        return DriveFile.model_validate(data)

    # -------------------------------------------------------------------------
    # PERMISSION OPERATIONS
    # -------------------------------------------------------------------------

    async def list_permissions(self, file_id: str) -> list[DrivePermission]:
        """List the permission grants on a file."""
        data = await self._make_request(
            "GET",
            f"/files/{file_id}/permissions",
            params={"fields": f"permissions({PERMISSION_FIELDS})"},
        )
        return [DrivePermission.model_validate(p) for p in data.get("permissions", [])]

    async def create_permission(
        self,
        file_id: str,
        email: str,
        role: str = "writer",
        send_notification: bool = False,
    ) -> DrivePermission:
        """Grant a user a role on a file."""
        data = await self._make_request(
            "POST",
            f"/files/{file_id}/permissions",
            params={
                "fields": PERMISSION_FIELDS,
                "sendNotificationEmail": str(send_notification).lower(),
            },
            json_body={"role": role, "type": "user", "emailAddress": email},
        )
        return DrivePermission.model_validate(data)

    async def promote_to_owner(self, file_id: str, permission_id: str) -> DrivePermission:
        """Promote an existing grant to owner (transferOwnership=true)."""
        data = await self._make_request(
            "PATCH",
            f"/files/{file_id}/permissions/{permission_id}",
            params={"transferOwnership": "true", "fields": PERMISSION_FIELDS},
            json_body={"role": "owner"},
        )
        return DrivePermission.model_validate(data)

    async def transfer_ownership(self, file_id: str, new_owner_email: str) -> DrivePermission:
        """
        Make new_owner_email the owner of a file.

        Reuses the receiver's existing grant when there is one, otherwise
        creates a writer grant first. A file the receiver already owns is
        left untouched, so repeating a transfer is harmless.
        """
        permissions = await self.list_permissions(file_id)
        existing = next((p for p in permissions if p.is_user(new_owner_email)), None)

        if existing is not None and existing.role == "owner":
            logger.info(f"File {file_id} already owned by receiver")
            return existing

        if existing is None:
            existing = await self.create_permission(file_id, new_owner_email, role="writer")

        permission = await self.promote_to_owner(file_id, existing.id)
        logger.info(
            "File ownership transferred",
            extra={"file_id": file_id, "permission_id": permission.id},
        )
        return permission

    # -------------------------------------------------------------------------
    # ACCESS VALIDATION
    # -------------------------------------------------------------------------

    async def validate_access(self, access_token: str) -> bool:
        """Check that a token can read Drive metadata."""
        probe = GoogleDriveClient(access_token, transport=self._transport, timeout=self._timeout)
        try:
            await probe._make_request("GET", "/about", params={"fields": "user"})
        except APIError:
            return False
        return True
