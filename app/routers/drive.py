"""
Drive router - lets a sender browse the files they own before creating
a transfer session.

Endpoints:
==========
- GET /drive/files            → files owned by the current user (paged)
- GET /drive/files/{file_id}  → one file's metadata

The access token comes from the same TokenStore the transfer engine uses,
so an expired token is refreshed here too.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.deps import get_current_user, get_transfer_orchestrator
from app.environments.base import APIError
from app.environments.google.drive import DriveFile, DriveFileList, GoogleDriveClient
from app.models.user import User
from app.services.transfer import ExternalProviderError, NotFoundError, TransferOrchestrator


logger = logging.getLogger("handoff.routers.drive")

# ---------------------------------------------------------------------------
# ROUTER SETUP
# ---------------------------------------------------------------------------
router = APIRouter(prefix="/drive", tags=["drive"])


async def get_drive_client(
    current_user: User = Depends(get_current_user),
    orchestrator: TransferOrchestrator = Depends(get_transfer_orchestrator),
) -> GoogleDriveClient:
    """Drive client acting as the current user."""
    access_token = await orchestrator.token_store.get_access_token(current_user.id)
    return orchestrator.engine.drive_client_factory(access_token)


def provider_error(error: APIError) -> Exception:
    """Translate a Drive APIError into the transfer error taxonomy."""
    if error.status_code == 404:
        return NotFoundError("File not found in Google Drive.")
    return ExternalProviderError(str(error), detail=str(error.response or ""), status_code=error.status_code)


@router.get("/files", response_model=DriveFileList, response_model_by_alias=False)
async def list_drive_files(
    page_size: int = Query(50, ge=1, le=1000),
    page_token: Optional[str] = Query(None, description="next_page_token from the previous page"),
    drive: GoogleDriveClient = Depends(get_drive_client),
):
    """List non-trashed files the current user owns, most recently modified first."""
    try:
        return await drive.list_files(page_size=page_size, page_token=page_token)
    except APIError as e:
        logger.warning(f"Listing Drive files failed: {e}")
        raise provider_error(e)


@router.get("/files/{file_id}", response_model=DriveFile, response_model_by_alias=False)
async def get_drive_file(
    file_id: str,
    drive: GoogleDriveClient = Depends(get_drive_client),
):
    try:
        return await drive.get_file(file_id)
    except APIError as e:
        logger.warning(f"Fetching Drive file {file_id} failed: {e}")
        raise provider_error(e)
