"""
Batch Transfer Engine - moves ownership of a session's files one by one.

Flow for one run:
=================
1. Resolve sender and receiver identities and the sender's access
   token (once per run)
2. For each file, in manifest order:
   a. mark it transferring
   b. get a valid sender access token (refreshing if needed)
   c. Drive: grant/reuse the receiver's permission, promote it to owner
   d. mark it completed, or failed with the error text
3. Return a BatchResult; the orchestrator decides the session's final status

A failing file never stops the batch. Identity or credential resolution
failing does: nothing can be transferred, so every unfinished file is failed.

Cancellation:
=============
The runner can ask a batch to stop (stop_event) or cancel it outright.
A stop request is honoured between files; files never attempted become
skipped. A hard cancel also fails the file that was in flight.
"""

import asyncio
import logging
from typing import Callable, Optional

from app.environments.base import EnvironmentError
from app.environments.google.drive import GoogleDriveClient
from app.monitoring.logger import TransferLogger, transfer_logger
from app.services.transfer.errors import PersistenceError, TransferError
from app.services.transfer.records import (
    BatchResult,
    FileRecord,
    SessionRecord,
)
from app.services.transfer.repository import SessionRepository
from app.services.transfer.state_machine import TERMINAL_FILE_STATES
from app.services.transfer.token_store import TokenStore


logger = logging.getLogger("handoff.services.transfer.engine")

CANCELLED_IN_FLIGHT = "Transfer cancelled while in progress."
UNEXPECTED_FILE_ERROR = "Unexpected error while transferring this file."

DriveClientFactory = Callable[[str], GoogleDriveClient]


class BatchTransferEngine:
    """
    Sequential per-file ownership transfer with failure isolation.

    Args:
        repository: where file statuses are written
        token_store: source of the sender's identity and access token
        drive_client_factory: builds a Drive client from an access token
        event_logger: structured transfer logger
    """

    def __init__(
        self,
        repository: SessionRepository,
        token_store: TokenStore,
        drive_client_factory: DriveClientFactory = GoogleDriveClient,
        event_logger: TransferLogger = transfer_logger,
    ):
        self._repository = repository
        self._token_store = token_store
        self.drive_client_factory = drive_client_factory
        self._events = event_logger

    async def run(
        self,
        session: SessionRecord,
        stop_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """Transfer every file of the session. Never raises for per-file errors."""
        try:
            self._token_store.get_identity(session.sender_id)
            receiver = self._token_store.get_identity(session.receiver_id)
            # Sender credentials must resolve once before any file is touched
            await self._token_store.get_access_token(session.sender_id)
            files = self._repository.list_files(session.id)
        except TransferError as e:
            return self._abort(session, e)

        completed = 0
        failed = 0

        for index, record in enumerate(files):
            if record.status in TERMINAL_FILE_STATES:
                continue

            if stop_event is not None and stop_event.is_set():
                skipped = self._skip_remaining(session)
                self._events.log_event(
                    "batch_stopped", session.id, completed=completed, failed=failed, skipped=skipped
                )
                return BatchResult(completed=completed, failed=failed, skipped=skipped, cancelled=True)

            try:
                success = await self._transfer_file(session, record, receiver.email)
            except asyncio.CancelledError:
                self._write(self._repository.mark_file_failed, record.id, CANCELLED_IN_FLIGHT)
                self._skip_remaining(session)
                self._events.log_event("batch_cancelled", session.id, level=logging.WARNING, position=index)
                raise

            if success:
                completed += 1
            else:
                failed += 1

        self._events.log_event(
            "batch_finished", session.id, total=len(files), completed=completed, failed=failed
        )
        return BatchResult(completed=completed, failed=failed)

    # -------------------------------------------------------------------------
    # PER-FILE TRANSFER
    # -------------------------------------------------------------------------

    async def _transfer_file(self, session: SessionRecord, record: FileRecord, receiver_email: str) -> bool:
        self._write(self._repository.mark_file_transferring, record.id)

        try:
            access_token = await self._token_store.get_access_token(session.sender_id)
            drive = self.drive_client_factory(access_token)
            await drive.transfer_ownership(record.source_file_id, receiver_email)
        except (EnvironmentError, TransferError) as e:
            error = getattr(e, "message", None) or str(e)
            return self._record_failure(session, record, error)
        except Exception:
            logger.exception(f"Unexpected error transferring file {record.source_file_id}")
            return self._record_failure(session, record, UNEXPECTED_FILE_ERROR)

        self._write(self._repository.mark_file_completed, record.id)
        self._events.log_file_result(
            session.id, record.id, record.source_file_id, record.file_name, success=True
        )
        return True

    def _record_failure(self, session: SessionRecord, record: FileRecord, error: str) -> bool:
        self._write(self._repository.mark_file_failed, record.id, error)
        self._events.log_file_result(
            session.id, record.id, record.source_file_id, record.file_name, success=False, error=error
        )
        return False

    # -------------------------------------------------------------------------
    # BOOKKEEPING
    # -------------------------------------------------------------------------

    def _write(self, operation: Callable, *args) -> None:
        """Run a file-status write; a failed write is logged and the batch goes on."""
        try:
            operation(*args)
        except TransferError as e:
            logger.error(f"Could not record file status ({operation.__name__}): {e.detail or e.message}")

    def _skip_remaining(self, session: SessionRecord) -> int:
        try:
            return self._repository.skip_pending_files(session.id)
        except PersistenceError as e:
            logger.error(f"Could not skip pending files for session {session.id}: {e.detail or e.message}")
            return 0

    def _abort(self, session: SessionRecord, error: TransferError) -> BatchResult:
        message = f"Batch aborted: {error.message}"
        self._events.log_event(
            "batch_aborted", session.id, level=logging.ERROR, error=error.message
        )
        try:
            failed = self._repository.fail_unfinished_files(session.id, message)
        except PersistenceError as e:
            logger.error(f"Could not fail files for session {session.id}: {e.detail or e.message}")
            failed = 0
        return BatchResult(failed=failed, unrecoverable_error=message)

