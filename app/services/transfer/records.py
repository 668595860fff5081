"""
Transfer records - immutable snapshots handed out by the repository.

ORM objects never leave the repository: each read opens a session,
copies the row into one of these dataclasses and closes the session.
That keeps the database the only source of truth and lets background
batches and request handlers work without sharing ORM state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from app.models.transfer import FileStatus, SessionStatus


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class ManifestFile:
    """One requested file, as captured when the session is created."""

    file_id: str
    file_name: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_id": self.file_id,
            "file_name": self.file_name,
            "file_type": self.file_type,
            "file_size": self.file_size,
        }


@dataclass(frozen=True)
class SessionRecord:
    id: UUID
    session_token: str
    sender_id: UUID
    receiver_id: UUID
    status: SessionStatus
    version: int
    file_manifest: tuple[ManifestFile, ...]
    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    def is_participant(self, user_id: UUID) -> bool:
        return user_id in (self.sender_id, self.receiver_id)

    def role_of(self, user_id: UUID) -> Optional[str]:
        if user_id == self.sender_id:
            return "sender"
        if user_id == self.receiver_id:
            return "receiver"
        return None


@dataclass(frozen=True)
class FileRecord:
    id: UUID
    session_id: UUID
    position: int
    source_file_id: str
    file_name: str
    file_type: Optional[str]
    file_size: Optional[int]
    original_owner_id: UUID
    new_owner_id: UUID
    status: FileStatus
    transfer_started_at: Optional[datetime]
    transfer_completed_at: Optional[datetime]
    error_message: Optional[str]
    retry_count: int


@dataclass(frozen=True)
class UserIdentity:
    """What the engine needs to know about a participant."""

    id: UUID
    email: str
    is_active: bool = True


@dataclass(frozen=True)
class CreatedSession:
    session_id: UUID
    session_token: str
    expires_at: datetime
    file_count: int


@dataclass(frozen=True)
class StartedTransfer:
    session_id: UUID
    file_count: int


@dataclass(frozen=True)
class SessionView:
    """Session details with its current per-file state."""

    session: SessionRecord
    files: tuple[FileRecord, ...]


@dataclass(frozen=True)
class HistoryEntry:
    id: UUID
    session_token: str
    status: SessionStatus
    role: str
    file_count: int
    created_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class UserStats:
    """File transfers a user took part in, as sender or receiver."""

    total_transfers: int = 0
    completed_transfers: int = 0
    failed_transfers: int = 0


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one batch run."""

    completed: int = 0
    failed: int = 0
    skipped: int = 0
    unrecoverable_error: Optional[str] = None
    cancelled: bool = False


@dataclass
class FileProgress:
    file_name: str
    status: FileStatus
    error: Optional[str] = None
    retry_count: int = 0


@dataclass
class TransferProgress:
    """Polling view of a session: status plus per-file counts."""

    session_status: SessionStatus
    total: int = 0
    pending: int = 0
    transferring: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    is_running: bool = False
    files: list[FileProgress] = field(default_factory=list)
