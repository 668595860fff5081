"""
Transfer Orchestrator - the lifecycle of a transfer session.

Operations:
===========
- create_session: validate the manifest and participants, persist a
  pending session with one pending file per manifest entry
- get_session / get_progress: read-only views by session token
- accept_session: receiver agrees (pending -> authenticated)
- reject_session / cancel_session: either participant backs out
- start_transfer: authenticated -> transferring, batch runs in background
- list_history: a user's sessions, newest first
- get_user_stats: totals of the file transfers a user took part in
- expire: delete sessions past their expires_at

Every session status change goes through SessionRepository.transition_session,
which enforces the state machine and writes compare-and-set. Validation and
state errors are raised before anything is written.
"""

import asyncio
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Sequence, Union
from uuid import UUID

from app.core.config import settings
from app.models.transfer import SessionStatus
from app.monitoring.logger import TransferLogger, transfer_logger
from app.services.transfer.engine import BatchTransferEngine
from app.services.transfer.errors import (
    InvalidManifestError,
    InvalidParticipantsError,
    InvalidStateTransitionError,
    NotFoundError,
    ReceiverNotFoundError,
    TransferError,
    UnauthorizedError,
)
from app.services.transfer.progress import build_progress
from app.services.transfer.records import (
    BatchResult,
    CreatedSession,
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
from app.services.transfer.state_machine import USER_CANCELLABLE, ensure_transition
from app.services.transfer.token_store import TokenStore


logger = logging.getLogger("handoff.services.transfer.orchestrator")

ManifestInput = Union[ManifestFile, Mapping[str, Any]]


class TransferOrchestrator:
    """
    Owns session status; delegates storage, tokens and the batch itself.

    Args:
        repository: session storage
        token_store: Google credentials lookup
        engine: batch transfer engine
        runner: background task tracker (a fresh one by default)
        session_ttl: lifetime of a new session
        event_logger: structured transfer logger
    """

    def __init__(
        self,
        repository: SessionRepository,
        token_store: TokenStore,
        engine: BatchTransferEngine,
        runner: Optional[TransferRunner] = None,
        session_ttl: Optional[timedelta] = None,
        event_logger: TransferLogger = transfer_logger,
    ):
        self.repository = repository
        self.token_store = token_store
        self.engine = engine
        self.runner = runner or TransferRunner()
        self.session_ttl = session_ttl or timedelta(hours=settings.TRANSFER_SESSION_TTL_HOURS)
        self._events = event_logger
        self._expiry_task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------------------
    # CREATE
    # -------------------------------------------------------------------------

    async def create_session(
        self,
        sender_id: UUID,
        receiver: Union[str, UUID],
        files: Sequence[ManifestInput],
    ) -> CreatedSession:
        """
        Create a pending session for sending `files` to `receiver`.

        Args:
            sender_id: the signed-in user who owns the files
            receiver: receiver email or user id
            files: manifest entries (file_id, file_name, file_type, file_size)

        Raises:
            InvalidManifestError: empty or malformed file list
            NotFoundError: unknown sender
            ReceiverNotFoundError: receiver unknown, inactive or without Google credentials
            InvalidParticipantsError: sender and receiver are the same user
        """
        manifest = parse_manifest(files)

        sender = self.repository.get_user(sender_id)
        if sender is None or not sender.is_active:
            raise NotFoundError("Sender not found.")

        receiver_user = self.repository.find_user(str(receiver))
        if receiver_user is None or not receiver_user.is_active:
            raise ReceiverNotFoundError()
        if receiver_user.id == sender.id:
            raise InvalidParticipantsError()
        if not self.token_store.has_credentials(receiver_user.id):
            raise ReceiverNotFoundError()

        expires_at = datetime.now(timezone.utc) + self.session_ttl
        session = self.repository.create_session(
            session_token=secrets.token_urlsafe(32),
            sender_id=sender.id,
            receiver_id=receiver_user.id,
            manifest=manifest,
            expires_at=expires_at,
            audit=AuditEntry(
                action="session_created",
                user_id=sender.id,
                details={"receiver_id": str(receiver_user.id), "file_count": len(manifest)},
            ),
        )

        self._events.log_event(
            "session_created",
            session.id,
            sender_id=sender.id,
            receiver_id=receiver_user.id,
            file_count=len(manifest),
        )
        return CreatedSession(
            session_id=session.id,
            session_token=session.session_token,
            expires_at=session.expires_at,
            file_count=len(manifest),
        )

    # -------------------------------------------------------------------------
    # READ
    # -------------------------------------------------------------------------

    def _require_session(self, session_token: str) -> SessionRecord:
        session = self.repository.get_session_by_token(session_token)
        if session is None:
            raise NotFoundError()
        return session

    def _require_view(self, session_token: str, caller_id: Optional[UUID]) -> SessionView:
        view = self.repository.get_session_view(session_token)
        if view is None:
            raise NotFoundError()
        if caller_id is not None and not view.session.is_participant(caller_id):
            raise UnauthorizedError()
        return view

    async def get_session(self, session_token: str, caller_id: Optional[UUID] = None) -> SessionView:
        """Session details and file rows. Participants only when caller_id is given."""
        return self._require_view(session_token, caller_id)

    async def get_progress(self, session_token: str, caller_id: Optional[UUID] = None) -> TransferProgress:
        """Status counts for polling; read from a single snapshot."""
        view = self._require_view(session_token, caller_id)
        return build_progress(
            view.session,
            view.files,
            is_running=self.runner.is_running(view.session.id),
        )

    async def list_history(self, user_id: UUID, page: int = 1, page_size: int = 20) -> list[HistoryEntry]:
        page = max(page, 1)
        page_size = min(max(page_size, 1), settings.HISTORY_MAX_PAGE_SIZE)
        return self.repository.list_history(user_id, page, page_size)

    async def get_user_stats(self, user_id: UUID) -> UserStats:
        return self.repository.user_stats(user_id)

    # -------------------------------------------------------------------------
    # RECEIVER DECISION
    # -------------------------------------------------------------------------

    async def accept_session(self, session_token: str, caller_id: UUID) -> SessionRecord:
        """
        Receiver accepts the session (pending -> authenticated).

        Raises:
            UnauthorizedError: caller is not the receiver
            InvalidStateTransitionError: session is not pending
        """
        session = self._require_session(session_token)
        if caller_id != session.receiver_id:
            raise UnauthorizedError("Only the receiver can accept this session.")
        ensure_transition(session.status, SessionStatus.AUTHENTICATED)

        updated = self.repository.transition_session(
            session.id,
            session.status,
            SessionStatus.AUTHENTICATED,
            audit=AuditEntry(action="session_accepted", user_id=caller_id),
        )
        self._events.log_event("session_accepted", session.id, receiver_id=caller_id)
        return updated

    async def reject_session(self, session_token: str, caller_id: UUID) -> SessionRecord:
        return await self._cancel(session_token, caller_id, "session_rejected")

    async def cancel_session(self, session_token: str, caller_id: UUID) -> SessionRecord:
        return await self._cancel(session_token, caller_id, "session_cancelled")

    async def _cancel(self, session_token: str, caller_id: UUID, action: str) -> SessionRecord:
        session = self._require_session(session_token)
        if not session.is_participant(caller_id):
            raise UnauthorizedError()

        if session.status == SessionStatus.CANCELLED:
            return session
        if session.status not in USER_CANCELLABLE:
            raise InvalidStateTransitionError(session.status.value, SessionStatus.CANCELLED.value)

        try:
            updated = self.repository.transition_session(
                session.id,
                session.status,
                SessionStatus.CANCELLED,
                audit=AuditEntry(action=action, user_id=caller_id, details={"role": session.role_of(caller_id)}),
            )
        except InvalidStateTransitionError as e:
            # Lost a race with another cancel: the outcome is the same
            if e.current == SessionStatus.CANCELLED.value:
                current = self.repository.get_session(session.id)
                if current is not None:
                    return current
            raise

        self._events.log_event(action, session.id, user_id=caller_id, role=session.role_of(caller_id))
        return updated

    # -------------------------------------------------------------------------
    # TRANSFER
    # -------------------------------------------------------------------------

    async def start_transfer(self, session_token: str, caller_id: Optional[UUID] = None) -> StartedTransfer:
        """
        Move an authenticated session to transferring and launch its batch.

        Returns as soon as the batch is scheduled; progress is polled.

        Raises:
            UnauthorizedError: caller given and not a participant
            InvalidStateTransitionError: session not authenticated, or
                                         another start won the race
        """
        session = self._require_session(session_token)
        if caller_id is not None and not session.is_participant(caller_id):
            raise UnauthorizedError()
        ensure_transition(session.status, SessionStatus.TRANSFERRING)

        started = self.repository.transition_session(
            session.id,
            SessionStatus.AUTHENTICATED,
            SessionStatus.TRANSFERRING,
            audit=AuditEntry(
                action="transfer_started",
                user_id=caller_id,
                details={"file_count": len(session.file_manifest)},
            ),
        )

        self.runner.submit(started.id, lambda stop_event: self._run_batch(started, stop_event))
        self._events.log_event("transfer_started", started.id, file_count=len(started.file_manifest))
        return StartedTransfer(session_id=started.id, file_count=len(started.file_manifest))

    async def _run_batch(self, session: SessionRecord, stop_event: asyncio.Event) -> BatchResult:
        try:
            result = await self.engine.run(session, stop_event)
        except asyncio.CancelledError:
            self._finish(session, SessionStatus.CANCELLED, {"reason": "runner_shutdown"})
            raise

        if result.unrecoverable_error:
            target = SessionStatus.FAILED
        elif result.cancelled:
            target = SessionStatus.CANCELLED
        else:
            target = SessionStatus.COMPLETED

        self._finish(
            session,
            target,
            {
                "completed": result.completed,
                "failed": result.failed,
                "skipped": result.skipped,
                "error": result.unrecoverable_error,
            },
        )
        return result

    def _finish(self, session: SessionRecord, target: SessionStatus, details: dict) -> None:
        """Write the batch's final session status."""
        try:
            self.repository.transition_session(
                session.id,
                SessionStatus.TRANSFERRING,
                target,
                audit=AuditEntry(action=f"transfer_{target.value}", details=details),
            )
        except TransferError as e:
            logger.error(f"Could not finalise session {session.id} as {target.value}: {e.message}")
            return

        level = logging.INFO if target == SessionStatus.COMPLETED else logging.WARNING
        self._events.log_event("transfer_finished", session.id, level=level, status=target.value, **details)

    # -------------------------------------------------------------------------
    # EXPIRY
    # -------------------------------------------------------------------------

    async def expire(self, now: Optional[datetime] = None) -> int:
        """Delete expired, non-transferring sessions. Returns how many."""
        removed = self.repository.delete_expired(now)
        if removed:
            self._events.log_event("sessions_expired", count=removed)
        return removed

    def start_expiry_loop(self, interval_seconds: int) -> None:
        """Run expire() every interval_seconds until stop() is called."""
        if self._expiry_task is not None:
            logger.warning("Expiry loop already running")
            return

        async def expiry_loop():
            while True:
                try:
                    await asyncio.sleep(interval_seconds)
                    await self.expire()
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.error(f"Expiry loop error: {e}")

        self._expiry_task = asyncio.create_task(expiry_loop())
        logger.info(f"Started expiry loop (interval: {interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the expiry loop and every running batch."""
        if self._expiry_task is not None:
            self._expiry_task.cancel()
            try:
                await self._expiry_task
            except asyncio.CancelledError:
                pass
            self._expiry_task = None
            logger.info("Stopped expiry loop")

        await self.runner.shutdown()


# ---------------------------------------------------------------------------
# MANIFEST VALIDATION
# ---------------------------------------------------------------------------

def _entry_value(entry: ManifestInput, key: str) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(key)
    return getattr(entry, key, None)


def parse_manifest(files: Sequence[ManifestInput]) -> list[ManifestFile]:
    """
    Validate a requested file list and normalise it to ManifestFile entries.

    Raises:
        InvalidManifestError: empty list, missing id or name, duplicate id,
                              negative size
    """
    if not files:
        raise InvalidManifestError("Select at least one file to transfer.")

    manifest: list[ManifestFile] = []
    seen: set[str] = set()
    for position, entry in enumerate(files):
        file_id = _entry_value(entry, "file_id")
        file_name = _entry_value(entry, "file_name")
        file_type = _entry_value(entry, "file_type")
        file_size = _entry_value(entry, "file_size")

        if not isinstance(file_id, str) or not file_id.strip():
            raise InvalidManifestError(detail=f"entry {position}: missing file_id")
        if not isinstance(file_name, str) or not file_name.strip():
            raise InvalidManifestError(detail=f"entry {position}: missing file_name")
        if file_id in seen:
            raise InvalidManifestError(
                "The same file appears more than once.", detail=f"duplicate file_id {file_id}"
            )
        if file_size is not None and (
            isinstance(file_size, bool) or not isinstance(file_size, int) or file_size < 0
        ):
            raise InvalidManifestError(detail=f"entry {position}: invalid file_size {file_size!r}")

        seen.add(file_id)
        manifest.append(
            ManifestFile(
                file_id=file_id,
                file_name=file_name,
                file_type=file_type,
                file_size=file_size,
            )
        )
    return manifest
