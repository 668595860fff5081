"""
Transfer schemas - Pydantic models for the /transfers API.

Request bodies are validated here for shape only (types, lengths);
the orchestrator applies the business rules (duplicates, participants).
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from app.models.transfer import FileStatus, SessionStatus


# ---------------------------------------------------------------------------
# REQUEST SCHEMAS
# ---------------------------------------------------------------------------

class ManifestEntryIn(BaseModel):
    """
    One file the sender wants to hand over.

    Example:
        {"file_id": "1AbC...", "file_name": "Q3 report.pdf",
         "file_type": "application/pdf", "file_size": 52311}
    """

    file_id: str = Field(..., min_length=1, max_length=255)
    file_name: str = Field(..., min_length=1, max_length=500)
    file_type: Optional[str] = Field(None, max_length=255)
    file_size: Optional[StrictInt] = None


class TransferCreate(BaseModel):
    """
    Body of POST /transfers.

    receiver: email address or user id of someone who has signed in before.
    """

    receiver: str = Field(..., min_length=1, max_length=255)
    files: list[ManifestEntryIn]


# ---------------------------------------------------------------------------
# RESPONSE SCHEMAS
# ---------------------------------------------------------------------------

class TransferCreated(BaseModel):
    success: bool = True
    session_id: UUID
    session_token: str
    expires_at: datetime
    file_count: int


class TransferStarted(BaseModel):
    success: bool = True
    session_id: UUID
    file_count: int
    message: str = "Transfer started"


class FileTransferOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    position: int
    source_file_id: str
    file_name: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    status: FileStatus
    transfer_started_at: Optional[datetime] = None
    transfer_completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    retry_count: int = 0


class SessionOut(BaseModel):
    """Session details as shown to either participant."""

    id: UUID
    session_token: str
    status: SessionStatus
    sender_id: UUID
    receiver_id: UUID
    role: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    files: list[FileTransferOut] = []


class SessionStatusOut(BaseModel):
    """Returned by accept / reject / cancel."""

    success: bool = True
    session_id: UUID
    status: SessionStatus


class FileProgressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    file_name: str
    status: FileStatus
    error: Optional[str] = None
    retry_count: int = 0


class TransferProgressOut(BaseModel):
    """
    Polling view of a running (or finished) session.

    pending + transferring + completed + failed + skipped == total
    """

    model_config = ConfigDict(from_attributes=True)

    session_status: SessionStatus
    total: int
    pending: int
    transferring: int
    completed: int
    failed: int
    skipped: int
    is_running: bool
    files: list[FileProgressOut]


class HistoryEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_token: str
    status: SessionStatus
    role: str
    file_count: int
    created_at: datetime
    expires_at: datetime


class HistoryPage(BaseModel):
    page: int
    page_size: int
    sessions: list[HistoryEntryOut]
