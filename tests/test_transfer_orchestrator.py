"""
Tests for the transfer orchestrator.

These tests verify:
- Session creation validates manifest and participants before writing
- Only the receiver can accept; either participant can reject/cancel
- start_transfer runs the batch in the background and finalises the session
- Partial failure still completes the session
- A sender whose Google credentials are gone fails the session without Drive calls
- Concurrent starts: exactly one wins
- Runner shutdown mid-batch cancels the session and skips the rest
- Expiry and history
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from app.environments.base import APIError
from app.models.audit_log import AuditLog
from app.models.oauth_credential import OAuthCredential
from app.models.transfer import FileStatus, SessionStatus, TransferSession
from app.services.transfer.errors import (
    InvalidManifestError,
    InvalidParticipantsError,
    InvalidStateTransitionError,
    NotFoundError,
    ReceiverNotFoundError,
    UnauthorizedError,
)
from app.services.transfer.orchestrator import parse_manifest
from tests.helpers import create_user, manifest


async def accepted_session(orchestrator, sender, receiver, *file_ids):
    created = await orchestrator.create_session(sender.id, receiver.email, manifest(*file_ids))
    await orchestrator.accept_session(created.session_token, receiver.id)
    return created


# ---------------------------------------------------------------------------
# CREATE
# ---------------------------------------------------------------------------

class TestCreateSession:

    @pytest.mark.asyncio
    async def test_creates_pending_session(self, orchestrator, sender, receiver):
        created = await orchestrator.create_session(sender.id, "bob@example.com", manifest("f1", "f2"))

        assert created.file_count == 2
        assert len(created.session_token) >= 32
        view = await orchestrator.get_session(created.session_token)
        assert view.session.status == SessionStatus.PENDING
        assert view.session.receiver_id == receiver.id
        assert [f.status for f in view.files] == [FileStatus.PENDING, FileStatus.PENDING]

    @pytest.mark.asyncio
    async def test_receiver_by_id(self, orchestrator, sender, receiver):
        created = await orchestrator.create_session(sender.id, receiver.id, manifest("f1"))

        view = await orchestrator.get_session(created.session_token)
        assert view.session.receiver_id == receiver.id

    @pytest.mark.asyncio
    async def test_expires_after_ttl(self, orchestrator, sender, receiver):
        before = datetime.now(timezone.utc)
        created = await orchestrator.create_session(sender.id, receiver.email, manifest("f1"))

        assert timedelta(hours=23) < created.expires_at - before <= timedelta(hours=24, minutes=1)

    @pytest.mark.asyncio
    async def test_empty_manifest_persists_nothing(self, db: Session, orchestrator, sender, receiver):
        with pytest.raises(InvalidManifestError):
            await orchestrator.create_session(sender.id, receiver.email, [])

        assert db.query(TransferSession).count() == 0

    @pytest.mark.asyncio
    async def test_unknown_receiver_persists_nothing(self, db: Session, orchestrator, sender):
        with pytest.raises(ReceiverNotFoundError) as exc_info:
            await orchestrator.create_session(sender.id, "nobody@example.com", manifest("f1"))

        assert exc_info.value.kind == "receiver_not_found"
        assert isinstance(exc_info.value, NotFoundError)
        assert db.query(TransferSession).count() == 0

    @pytest.mark.asyncio
    async def test_receiver_without_google_credentials(self, db: Session, orchestrator, sender):
        create_user(db, "dave@example.com", with_credential=False)

        with pytest.raises(ReceiverNotFoundError):
            await orchestrator.create_session(sender.id, "dave@example.com", manifest("f1"))

    @pytest.mark.asyncio
    async def test_inactive_receiver(self, db: Session, orchestrator, sender):
        create_user(db, "erin@example.com", is_active=False)

        with pytest.raises(ReceiverNotFoundError):
            await orchestrator.create_session(sender.id, "erin@example.com", manifest("f1"))

    @pytest.mark.asyncio
    async def test_sender_cannot_send_to_self(self, db: Session, orchestrator, sender):
        with pytest.raises(InvalidParticipantsError):
            await orchestrator.create_session(sender.id, sender.email, manifest("f1"))

        assert db.query(TransferSession).count() == 0


class TestParseManifest:

    def test_duplicate_file_id(self):
        with pytest.raises(InvalidManifestError) as exc_info:
            parse_manifest(manifest("f1", "f1"))
        assert "duplicate" in exc_info.value.detail

    def test_negative_size(self):
        entry = {"file_id": "f1", "file_name": "a.pdf", "file_size": -1}
        with pytest.raises(InvalidManifestError):
            parse_manifest([entry])

    @pytest.mark.parametrize("size", [True, False, 1.5, "2048"])
    def test_non_integer_size(self, size):
        entry = {"file_id": "f1", "file_name": "a.pdf", "file_size": size}
        with pytest.raises(InvalidManifestError) as exc_info:
            parse_manifest([entry])
        assert "file_size" in exc_info.value.detail

    @pytest.mark.parametrize("missing", ["file_id", "file_name"])
    def test_missing_required_field(self, missing):
        entry = {"file_id": "f1", "file_name": "a.pdf"}
        entry[missing] = "  "
        with pytest.raises(InvalidManifestError):
            parse_manifest([entry])

    def test_optional_fields(self):
        parsed = parse_manifest([{"file_id": "f1", "file_name": "a.pdf"}])
        assert parsed[0].file_type is None
        assert parsed[0].file_size is None


# ---------------------------------------------------------------------------
# RECEIVER DECISION
# ---------------------------------------------------------------------------

class TestAcceptRejectCancel:

    @pytest.mark.asyncio
    async def test_receiver_accepts(self, orchestrator, sender, receiver):
        created = await orchestrator.create_session(sender.id, receiver.email, manifest("f1"))

        updated = await orchestrator.accept_session(created.session_token, receiver.id)

        assert updated.status == SessionStatus.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_sender_cannot_accept(self, orchestrator, sender, receiver):
        created = await orchestrator.create_session(sender.id, receiver.email, manifest("f1"))

        with pytest.raises(UnauthorizedError):
            await orchestrator.accept_session(created.session_token, sender.id)

        view = await orchestrator.get_session(created.session_token)
        assert view.session.status == SessionStatus.PENDING

    @pytest.mark.asyncio
    async def test_accept_twice(self, orchestrator, sender, receiver):
        created = await accepted_session(orchestrator, sender, receiver, "f1")

        with pytest.raises(InvalidStateTransitionError):
            await orchestrator.accept_session(created.session_token, receiver.id)

    @pytest.mark.asyncio
    async def test_unknown_token(self, orchestrator, receiver):
        with pytest.raises(NotFoundError):
            await orchestrator.accept_session("does-not-exist", receiver.id)

    @pytest.mark.asyncio
    async def test_receiver_rejects(self, db: Session, orchestrator, sender, receiver):
        created = await orchestrator.create_session(sender.id, receiver.email, manifest("f1"))

        updated = await orchestrator.reject_session(created.session_token, receiver.id)

        assert updated.status == SessionStatus.CANCELLED
        actions = [a.action for a in db.query(AuditLog).filter(AuditLog.session_id == created.session_id)]
        assert "session_rejected" in actions

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, orchestrator, sender, receiver):
        created = await accepted_session(orchestrator, sender, receiver, "f1")

        first = await orchestrator.cancel_session(created.session_token, sender.id)
        second = await orchestrator.cancel_session(created.session_token, receiver.id)

        assert first.status == SessionStatus.CANCELLED
        assert second.status == SessionStatus.CANCELLED
        assert second.version == first.version

    @pytest.mark.asyncio
    async def test_cancel_racing_another_cancel_returns_cancelled(self, monkeypatch, orchestrator, sender, receiver):
        created = await accepted_session(orchestrator, sender, receiver, "f1")
        transition = orchestrator.repository.transition_session

        def cancelled_concurrently(session_id, expected, target, audit=None):
            transition(session_id, expected, target)
            raise InvalidStateTransitionError(SessionStatus.CANCELLED.value, target.value)

        monkeypatch.setattr(orchestrator.repository, "transition_session", cancelled_concurrently)

        result = await orchestrator.cancel_session(created.session_token, sender.id)

        assert result.id == created.session_id
        assert result.status == SessionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_outsider_cannot_cancel(self, orchestrator, sender, receiver, outsider):
        created = await orchestrator.create_session(sender.id, receiver.email, manifest("f1"))

        with pytest.raises(UnauthorizedError):
            await orchestrator.cancel_session(created.session_token, outsider.id)

    @pytest.mark.asyncio
    async def test_outsider_cannot_view(self, orchestrator, sender, receiver, outsider):
        created = await orchestrator.create_session(sender.id, receiver.email, manifest("f1"))

        with pytest.raises(UnauthorizedError):
            await orchestrator.get_session(created.session_token, outsider.id)
        with pytest.raises(UnauthorizedError):
            await orchestrator.get_progress(created.session_token, outsider.id)

    @pytest.mark.asyncio
    async def test_cannot_cancel_completed_session(self, orchestrator, sender, receiver):
        created = await accepted_session(orchestrator, sender, receiver, "f1")
        await orchestrator.start_transfer(created.session_token, sender.id)
        await orchestrator.runner.wait(created.session_id)

        with pytest.raises(InvalidStateTransitionError):
            await orchestrator.cancel_session(created.session_token, sender.id)


# ---------------------------------------------------------------------------
# TRANSFER
# ---------------------------------------------------------------------------

class TestStartTransfer:

    @pytest.mark.asyncio
    async def test_happy_path(self, orchestrator, fake_drive, sender, receiver):
        created = await accepted_session(orchestrator, sender, receiver, "f1", "f2")

        started = await orchestrator.start_transfer(created.session_token, sender.id)
        assert started.file_count == 2
        assert await orchestrator.runner.wait(created.session_id, timeout=5)

        progress = await orchestrator.get_progress(created.session_token, sender.id)
        assert progress.session_status == SessionStatus.COMPLETED
        assert (progress.total, progress.completed, progress.failed) == (2, 2, 0)
        assert (progress.pending, progress.transferring, progress.skipped) == (0, 0, 0)
        assert progress.is_running is False
        assert fake_drive.transfers == [("f1", "bob@example.com"), ("f2", "bob@example.com")]

    @pytest.mark.asyncio
    async def test_partial_failure_completes_session(self, orchestrator, fake_drive, sender, receiver):
        fake_drive.failures["f2"] = APIError("Permission denied", status_code=403)
        created = await accepted_session(orchestrator, sender, receiver, "f1", "f2", "f3")

        await orchestrator.start_transfer(created.session_token)
        await orchestrator.runner.wait(created.session_id, timeout=5)

        progress = await orchestrator.get_progress(created.session_token)
        assert progress.session_status == SessionStatus.COMPLETED
        assert (progress.completed, progress.failed) == (2, 1)
        assert progress.files[1].error == "Permission denied"

    @pytest.mark.asyncio
    async def test_unrecoverable_error_fails_session(self, db: Session, orchestrator, sender, receiver):
        created = await accepted_session(orchestrator, sender, receiver, "f1", "f2")
        receiver.is_active = False
        db.commit()

        await orchestrator.start_transfer(created.session_token)
        await orchestrator.runner.wait(created.session_id, timeout=5)

        progress = await orchestrator.get_progress(created.session_token)
        assert progress.session_status == SessionStatus.FAILED
        assert progress.failed == 2

    @pytest.mark.asyncio
    async def test_sender_disconnected_after_accept_fails_session(self, db: Session, orchestrator, fake_drive, sender, receiver):
        created = await accepted_session(orchestrator, sender, receiver, "f1", "f2")
        db.query(OAuthCredential).filter(OAuthCredential.user_id == sender.id).delete()
        db.commit()

        await orchestrator.start_transfer(created.session_token, sender.id)
        await orchestrator.runner.wait(created.session_id, timeout=5)

        progress = await orchestrator.get_progress(created.session_token, sender.id)
        assert progress.session_status == SessionStatus.FAILED
        assert (progress.completed, progress.failed) == (0, 2)
        assert all(f.error.startswith("Batch aborted") for f in progress.files)
        assert fake_drive.transfers == []

    @pytest.mark.asyncio
    async def test_start_from_pending_is_rejected(self, orchestrator, fake_drive, sender, receiver):
        created = await orchestrator.create_session(sender.id, receiver.email, manifest("f1"))

        with pytest.raises(InvalidStateTransitionError):
            await orchestrator.start_transfer(created.session_token, sender.id)

        assert not orchestrator.runner.is_running(created.session_id)
        assert fake_drive.transfers == []

    @pytest.mark.asyncio
    async def test_outsider_cannot_start(self, orchestrator, sender, receiver, outsider):
        created = await accepted_session(orchestrator, sender, receiver, "f1")

        with pytest.raises(UnauthorizedError):
            await orchestrator.start_transfer(created.session_token, outsider.id)

    @pytest.mark.asyncio
    async def test_double_start_only_one_wins(self, orchestrator, fake_drive, sender, receiver):
        created = await accepted_session(orchestrator, sender, receiver, "f1")

        results = await asyncio.gather(
            orchestrator.start_transfer(created.session_token),
            orchestrator.start_transfer(created.session_token),
            return_exceptions=True,
        )
        await orchestrator.runner.wait(created.session_id, timeout=5)

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidStateTransitionError)
        assert fake_drive.transfers == [("f1", "bob@example.com")]

    @pytest.mark.asyncio
    async def test_progress_while_running(self, orchestrator, fake_drive, sender, receiver):
        fake_drive.gate = asyncio.Event()
        fake_drive.called = asyncio.Event()
        created = await accepted_session(orchestrator, sender, receiver, "f1", "f2")

        await orchestrator.start_transfer(created.session_token)
        await fake_drive.called.wait()

        progress = await orchestrator.get_progress(created.session_token)
        assert progress.session_status == SessionStatus.TRANSFERRING
        assert progress.is_running is True
        assert (progress.transferring, progress.pending) == (1, 1)

        fake_drive.gate.set()
        await orchestrator.runner.wait(created.session_id, timeout=5)

    @pytest.mark.asyncio
    async def test_shutdown_mid_batch_cancels_session(self, orchestrator, fake_drive, sender, receiver):
        fake_drive.gate = asyncio.Event()
        fake_drive.called = asyncio.Event()
        created = await accepted_session(orchestrator, sender, receiver, "f1", "f2", "f3")

        await orchestrator.start_transfer(created.session_token)
        await fake_drive.called.wait()
        await orchestrator.runner.shutdown(grace_period=0.05)

        progress = await orchestrator.get_progress(created.session_token)
        assert progress.session_status == SessionStatus.CANCELLED
        assert [f.status for f in progress.files] == [
            FileStatus.FAILED,
            FileStatus.SKIPPED,
            FileStatus.SKIPPED,
        ]

    @pytest.mark.asyncio
    async def test_cooperative_stop_between_files(self, orchestrator, fake_drive, sender, receiver):
        fake_drive.gate = asyncio.Event()
        fake_drive.called = asyncio.Event()
        created = await accepted_session(orchestrator, sender, receiver, "f1", "f2")

        await orchestrator.start_transfer(created.session_token)
        await fake_drive.called.wait()
        shutdown = asyncio.create_task(orchestrator.runner.shutdown(grace_period=5))
        await asyncio.sleep(0)
        fake_drive.gate.set()
        await shutdown

        progress = await orchestrator.get_progress(created.session_token)
        assert progress.session_status == SessionStatus.CANCELLED
        assert [f.status for f in progress.files] == [FileStatus.COMPLETED, FileStatus.SKIPPED]


# ---------------------------------------------------------------------------
# EXPIRY / HISTORY
# ---------------------------------------------------------------------------

class TestExpire:

    @pytest.mark.asyncio
    async def test_expire_removes_old_sessions(self, orchestrator, sender, receiver):
        created = await orchestrator.create_session(sender.id, receiver.email, manifest("f1"))

        assert await orchestrator.expire() == 0
        assert await orchestrator.expire(now=datetime.now(timezone.utc) + timedelta(hours=25)) == 1

        with pytest.raises(NotFoundError):
            await orchestrator.get_session(created.session_token)

    @pytest.mark.asyncio
    async def test_expiry_loop_starts_and_stops(self, orchestrator):
        orchestrator.start_expiry_loop(interval_seconds=3600)
        assert orchestrator._expiry_task is not None

        await orchestrator.stop()

        assert orchestrator._expiry_task is None


class TestHistory:

    @pytest.mark.asyncio
    async def test_history_roles(self, orchestrator, sender, receiver):
        sent = await orchestrator.create_session(sender.id, receiver.email, manifest("f1"))
        received = await orchestrator.create_session(receiver.id, sender.email, manifest("f2", "f3"))

        history = await orchestrator.list_history(sender.id)

        roles = {entry.id: entry.role for entry in history}
        assert roles == {sent.session_id: "sender", received.session_id: "receiver"}

    @pytest.mark.asyncio
    async def test_page_is_clamped(self, orchestrator, sender, receiver):
        await orchestrator.create_session(sender.id, receiver.email, manifest("f1"))

        assert len(await orchestrator.list_history(sender.id, page=0, page_size=0)) == 1
