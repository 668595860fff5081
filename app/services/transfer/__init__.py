"""
Transfer services - session lifecycle and batch ownership transfer.

Usage:
    from app.services.transfer import build_transfer_orchestrator

    orchestrator = build_transfer_orchestrator()
    created = await orchestrator.create_session(sender.id, "bob@example.com", files)
"""

from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.environments.google.auth import GoogleAuthClient
from app.environments.google.drive import GoogleDriveClient
from app.services.transfer.engine import BatchTransferEngine, DriveClientFactory
from app.services.transfer.errors import (
    ExternalProviderError,
    InvalidManifestError,
    InvalidParticipantsError,
    InvalidStateTransitionError,
    NotFoundError,
    PersistenceError,
    ReceiverNotFoundError,
    TransferError,
    UnauthorizedError,
)
from app.services.transfer.orchestrator import TransferOrchestrator, parse_manifest
from app.services.transfer.progress import build_progress, get_stats
from app.services.transfer.records import (
    BatchResult,
    CreatedSession,
    FileRecord,
    HistoryEntry,
    ManifestFile,
    SessionRecord,
    SessionView,
    StartedTransfer,
    TransferProgress,
    UserStats,
)
from app.services.transfer.repository import AuditEntry, SessionRepository
from app.services.transfer.runner import TransferRunner
from app.services.transfer.token_store import TokenStore


def build_transfer_orchestrator(
    session_factory: Optional[Callable[[], Session]] = None,
    drive_client_factory: DriveClientFactory = GoogleDriveClient,
    auth_client: Optional[GoogleAuthClient] = None,
) -> TransferOrchestrator:
    """Wire repository, token store, engine and runner into an orchestrator."""
    if session_factory is None:
        from app.db.session import SessionLocal
        session_factory = SessionLocal

    repository = SessionRepository(session_factory)
    token_store = TokenStore(session_factory, auth_client=auth_client)
    engine = BatchTransferEngine(repository, token_store, drive_client_factory)
    return TransferOrchestrator(repository, token_store, engine)


__all__ = [
    "AuditEntry",
    "BatchResult",
    "BatchTransferEngine",
    "CreatedSession",
    "ExternalProviderError",
    "FileRecord",
    "HistoryEntry",
    "InvalidManifestError",
    "InvalidParticipantsError",
    "InvalidStateTransitionError",
    "ManifestFile",
    "NotFoundError",
    "PersistenceError",
    "ReceiverNotFoundError",
    "SessionRecord",
    "SessionRepository",
    "SessionView",
    "StartedTransfer",
    "TokenStore",
    "TransferError",
    "TransferOrchestrator",
    "TransferProgress",
    "TransferRunner",
    "UnauthorizedError",
    "UserStats",
    "build_progress",
    "build_transfer_orchestrator",
    "get_stats",
    "parse_manifest",
]
