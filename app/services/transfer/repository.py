"""
Session Repository - durable storage for transfer sessions and file records.

Each public method is one short unit of work: open a SQLAlchemy session
from the factory, do the reads/writes, commit, close. Nothing is cached
between calls, so the database stays the only source of truth for both
request handlers and background batches.

Concurrency:
============
Session status writes are compare-and-set on (id, expected status) and
bump `version`. If two callers race to start the same session, exactly
one UPDATE matches; the other gets InvalidStateTransitionError and the
batch is launched once.

All SQLAlchemy errors are re-raised as PersistenceError.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional, Sequence
from uuid import UUID

from sqlalchemy import case, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog
from app.models.transfer import FileStatus, FileTransfer, SessionStatus, TransferSession
from app.models.user import User
from app.services.transfer.errors import (
    InvalidStateTransitionError,
    NotFoundError,
    PersistenceError,
)
from app.services.transfer.records import (
    FileRecord,
    HistoryEntry,
    ManifestFile,
    SessionRecord,
    SessionView,
    UserIdentity,
    UserStats,
    as_utc,
)
from app.services.transfer.state_machine import ensure_transition


logger = logging.getLogger("handoff.services.transfer.repository")


@dataclass(frozen=True)
class AuditEntry:
    """An audit row written in the same transaction as the change it describes."""

    action: str
    user_id: Optional[UUID] = None
    details: Optional[dict] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ROW -> RECORD CONVERSION
# ---------------------------------------------------------------------------

def _session_record(row: TransferSession) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        session_token=row.session_token,
        sender_id=row.sender_id,
        receiver_id=row.receiver_id,
        status=row.status,
        version=row.version,
        file_manifest=tuple(
            ManifestFile(
                file_id=entry["file_id"],
                file_name=entry["file_name"],
                file_type=entry.get("file_type"),
                file_size=entry.get("file_size"),
            )
            for entry in row.file_manifest
        ),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        expires_at=as_utc(row.expires_at),
    )


def _file_record(row: FileTransfer) -> FileRecord:
    return FileRecord(
        id=row.id,
        session_id=row.session_id,
        position=row.position,
        source_file_id=row.source_file_id,
        file_name=row.file_name,
        file_type=row.file_type,
        file_size=row.file_size,
        original_owner_id=row.original_owner_id,
        new_owner_id=row.new_owner_id,
        status=row.status,
        transfer_started_at=as_utc(row.transfer_started_at),
        transfer_completed_at=as_utc(row.transfer_completed_at),
        error_message=row.error_message,
        retry_count=row.retry_count,
    )


class SessionRepository:
    """
    SQLAlchemy-backed storage for TransferSession / FileTransfer rows.

    Args:
        session_factory: a sessionmaker (SessionLocal in the app,
                         the in-memory test factory in tests)
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @contextmanager
    def _unit_of_work(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Repository operation failed: {e}")
            raise PersistenceError(detail=str(e)) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _add_audit(db: Session, session_id: Optional[UUID], audit: Optional[AuditEntry]) -> None:
        if audit is None:
            return
        db.add(
            AuditLog(
                user_id=audit.user_id,
                session_id=session_id,
                action=audit.action,
                resource_type="transfer_session",
                resource_id=str(session_id) if session_id else None,
                details=audit.details,
            )
        )

    # -------------------------------------------------------------------------
    # USERS
    # -------------------------------------------------------------------------

    def get_user(self, user_id: UUID) -> Optional[UserIdentity]:
        with self._unit_of_work() as db:
            user = db.query(User).filter(User.id == user_id).first()
            if user is None:
                return None
            return UserIdentity(id=user.id, email=user.email, is_active=user.is_active)

    def find_user(self, email_or_id: str) -> Optional[UserIdentity]:
        """Look a user up by email (case-insensitive) or by UUID string."""
        value = email_or_id.strip()
        with self._unit_of_work() as db:
            query = db.query(User)
            try:
                user_id = UUID(value)
            except ValueError:
                user = query.filter(func.lower(User.email) == value.lower()).first()
            else:
                user = query.filter(User.id == user_id).first()

            if user is None:
                return None
            return UserIdentity(id=user.id, email=user.email, is_active=user.is_active)

    # -------------------------------------------------------------------------
    # SESSIONS
    # -------------------------------------------------------------------------

    def create_session(
        self,
        session_token: str,
        sender_id: UUID,
        receiver_id: UUID,
        manifest: Sequence[ManifestFile],
        expires_at: datetime,
        audit: Optional[AuditEntry] = None,
    ) -> SessionRecord:
        """Insert a pending session and one pending file row per manifest entry."""
        with self._unit_of_work() as db:
            session = TransferSession(
                session_token=session_token,
                sender_id=sender_id,
                receiver_id=receiver_id,
                status=SessionStatus.PENDING,
                version=1,
                file_manifest=[entry.to_dict() for entry in manifest],
                expires_at=expires_at,
            )
            for position, entry in enumerate(manifest):
                session.files.append(
                    FileTransfer(
                        position=position,
                        source_file_id=entry.file_id,
                        file_name=entry.file_name,
                        file_type=entry.file_type,
                        file_size=entry.file_size,
                        original_owner_id=sender_id,
                        new_owner_id=receiver_id,
                        status=FileStatus.PENDING,
                        retry_count=0,
                    )
                )
            db.add(session)
            db.flush()
            self._add_audit(db, session.id, audit)
            return _session_record(session)

    def get_session_by_token(self, session_token: str, now: Optional[datetime] = None) -> Optional[SessionRecord]:
        """Fetch a live session by token; expired sessions are treated as missing."""
        now = now or _utcnow()
        with self._unit_of_work() as db:
            row = db.query(TransferSession).filter(
                TransferSession.session_token == session_token,
                TransferSession.expires_at > now,
            ).first()
            return _session_record(row) if row else None

    def get_session(self, session_id: UUID) -> Optional[SessionRecord]:
        """Fetch a session by id, ignoring expiry."""
        with self._unit_of_work() as db:
            row = db.query(TransferSession).filter(TransferSession.id == session_id).first()
            return _session_record(row) if row else None

    def get_session_view(self, session_token: str, now: Optional[datetime] = None) -> Optional[SessionView]:
        """Session plus its file rows, read in one database session."""
        now = now or _utcnow()
        with self._unit_of_work() as db:
            row = db.query(TransferSession).filter(
                TransferSession.session_token == session_token,
                TransferSession.expires_at > now,
            ).first()
            if row is None:
                return None
            files = (
                db.query(FileTransfer)
                .filter(FileTransfer.session_id == row.id)
                .order_by(FileTransfer.position)
                .all()
            )
            return SessionView(
                session=_session_record(row),
                files=tuple(_file_record(f) for f in files),
            )

    def transition_session(
        self,
        session_id: UUID,
        expected: SessionStatus,
        target: SessionStatus,
        audit: Optional[AuditEntry] = None,
    ) -> SessionRecord:
        """
        Move a session from `expected` to `target` if it is still `expected`.

        Raises:
            InvalidStateTransitionError: edge not allowed, or the session
                                         changed underneath the caller
            NotFoundError: the session no longer exists
        """
        ensure_transition(expected, target)

        with self._unit_of_work() as db:
            updated = (
                db.query(TransferSession)
                .filter(
                    TransferSession.id == session_id,
                    TransferSession.status == expected,
                )
                .update(
                    {
                        TransferSession.status: target,
                        TransferSession.version: TransferSession.version + 1,
                        TransferSession.updated_at: _utcnow(),
                    },
                    synchronize_session=False,
                )
            )

            row = db.query(TransferSession).filter(TransferSession.id == session_id).first()
            if row is None:
                raise NotFoundError()
            if updated == 0:
                raise InvalidStateTransitionError(
                    row.status.value,
                    target.value,
                    detail=f"expected {expected.value}, found {row.status.value}",
                )

            self._add_audit(db, session_id, audit)
            return _session_record(row)

    def list_history(self, user_id: UUID, page: int, page_size: int) -> list[HistoryEntry]:
        """Sessions the user sent or received, newest first."""
        offset = (page - 1) * page_size
        with self._unit_of_work() as db:
            file_counts = (
                db.query(FileTransfer.session_id, func.count(FileTransfer.id).label("file_count"))
                .group_by(FileTransfer.session_id)
                .subquery()
            )
            rows = (
                db.query(TransferSession, file_counts.c.file_count)
                .outerjoin(file_counts, file_counts.c.session_id == TransferSession.id)
                .filter(
                    or_(
                        TransferSession.sender_id == user_id,
                        TransferSession.receiver_id == user_id,
                    )
                )
                .order_by(TransferSession.created_at.desc(), TransferSession.id)
                .offset(offset)
                .limit(page_size)
                .all()
            )
            return [
                HistoryEntry(
                    id=session.id,
                    session_token=session.session_token,
                    status=session.status,
                    role="sender" if session.sender_id == user_id else "receiver",
                    file_count=file_count or 0,
                    created_at=as_utc(session.created_at),
                    expires_at=as_utc(session.expires_at),
                )
                for session, file_count in rows
            ]

    def user_stats(self, user_id: UUID) -> UserStats:
        """Count the user's file transfers, whichever side they were on."""
        with self._unit_of_work() as db:
            total, completed, failed = (
                db.query(
                    func.count(FileTransfer.id),
                    func.sum(case((FileTransfer.status == FileStatus.COMPLETED, 1), else_=0)),
                    func.sum(case((FileTransfer.status == FileStatus.FAILED, 1), else_=0)),
                )
                .filter(
                    or_(
                        FileTransfer.original_owner_id == user_id,
                        FileTransfer.new_owner_id == user_id,
                    )
                )
                .one()
            )
            return UserStats(
                total_transfers=total or 0,
                completed_transfers=completed or 0,
                failed_transfers=failed or 0,
            )

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        """
        Hard-delete sessions whose expires_at has passed, with their files.

        Sessions with a batch in flight are left alone; they are swept on a
        later pass once the batch has finalised them.
        """
        now = now or _utcnow()
        with self._unit_of_work() as db:
            expired_ids = [
                session_id
                for (session_id,) in db.query(TransferSession.id).filter(
                    TransferSession.expires_at <= now,
                    TransferSession.status != SessionStatus.TRANSFERRING,
                )
            ]
            if not expired_ids:
                return 0

            db.query(FileTransfer).filter(
                FileTransfer.session_id.in_(expired_ids)
            ).delete(synchronize_session=False)
            db.query(AuditLog).filter(
                AuditLog.session_id.in_(expired_ids)
            ).update({AuditLog.session_id: None}, synchronize_session=False)
            db.query(TransferSession).filter(
                TransferSession.id.in_(expired_ids)
            ).delete(synchronize_session=False)

            self._add_audit(
                db,
                None,
                AuditEntry(
                    action="sessions_expired",
                    details={"count": len(expired_ids), "session_ids": [str(i) for i in expired_ids]},
                ),
            )
            return len(expired_ids)

    # -------------------------------------------------------------------------
    # FILE TRANSFERS
    # -------------------------------------------------------------------------

    def list_files(self, session_id: UUID) -> tuple[FileRecord, ...]:
        """All file rows for a session in manifest order."""
        with self._unit_of_work() as db:
            rows = (
                db.query(FileTransfer)
                .filter(FileTransfer.session_id == session_id)
                .order_by(FileTransfer.position)
                .all()
            )
            return tuple(_file_record(row) for row in rows)

    def _update_file(self, file_id: UUID, values: dict) -> None:
        values[FileTransfer.updated_at] = _utcnow()
        with self._unit_of_work() as db:
            updated = (
                db.query(FileTransfer)
                .filter(FileTransfer.id == file_id)
                .update(values, synchronize_session=False)
            )
            if updated == 0:
                raise NotFoundError("File transfer record not found.")

    def mark_file_transferring(self, file_id: UUID) -> None:
        self._update_file(
            file_id,
            {
                FileTransfer.status: FileStatus.TRANSFERRING,
                FileTransfer.transfer_started_at: _utcnow(),
            },
        )

    def mark_file_completed(self, file_id: UUID) -> None:
        self._update_file(
            file_id,
            {
                FileTransfer.status: FileStatus.COMPLETED,
                FileTransfer.transfer_completed_at: _utcnow(),
                FileTransfer.error_message: None,
            },
        )

    def mark_file_failed(self, file_id: UUID, error_message: str) -> None:
        self._update_file(
            file_id,
            {
                FileTransfer.status: FileStatus.FAILED,
                FileTransfer.error_message: error_message,
                FileTransfer.retry_count: FileTransfer.retry_count + 1,
            },
        )

    def fail_unfinished_files(self, session_id: UUID, error_message: str) -> int:
        """Mark every pending/transferring file of a session failed."""
        with self._unit_of_work() as db:
            return (
                db.query(FileTransfer)
                .filter(
                    FileTransfer.session_id == session_id,
                    FileTransfer.status.in_([FileStatus.PENDING, FileStatus.TRANSFERRING]),
                )
                .update(
                    {
                        FileTransfer.status: FileStatus.FAILED,
                        FileTransfer.error_message: error_message,
                        FileTransfer.retry_count: FileTransfer.retry_count + 1,
                        FileTransfer.updated_at: _utcnow(),
                    },
                    synchronize_session=False,
                )
            )

    def skip_pending_files(self, session_id: UUID) -> int:
        """Mark files never attempted as skipped (batch was cancelled)."""
        with self._unit_of_work() as db:
            return (
                db.query(FileTransfer)
                .filter(
                    FileTransfer.session_id == session_id,
                    FileTransfer.status == FileStatus.PENDING,
                )
                .update(
                    {
                        FileTransfer.status: FileStatus.SKIPPED,
                        FileTransfer.updated_at: _utcnow(),
                    },
                    synchronize_session=False,
                )
            )
