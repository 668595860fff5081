"""
Transfers router - transfer session lifecycle endpoints.

Endpoints:
==========
- POST /transfers                        → create a session (sender)
- GET  /transfers/history                → sessions the user sent or received
- GET  /transfers/{token}                → session details with file rows
- POST /transfers/{token}/accept         → receiver accepts
- POST /transfers/{token}/reject         → either participant rejects
- POST /transfers/{token}/cancel         → either participant cancels
- POST /transfers/{token}/start          → launch the batch (returns at once)
- GET  /transfers/{token}/progress       → per-status counts for polling

Errors raised by the orchestrator (TransferError) are turned into JSON
responses by the exception handler registered in app.main.
"""

from fastapi import APIRouter, Depends, Query, status

from app.core.config import settings
from app.deps import get_current_user, get_transfer_orchestrator
from app.models.user import User
from app.schemas.transfer import (
    FileTransferOut,
    HistoryEntryOut,
    HistoryPage,
    SessionOut,
    SessionStatusOut,
    TransferCreate,
    TransferCreated,
    TransferProgressOut,
    TransferStarted,
)
from app.services.transfer import SessionRecord, SessionView, TransferOrchestrator

# ---------------------------------------------------------------------------
# ROUTER SETUP
# ---------------------------------------------------------------------------
router = APIRouter(prefix="/transfers", tags=["transfers"])


# ---------------------------------------------------------------------------
# HELPER FUNCTIONS
# ---------------------------------------------------------------------------

def session_view_out(view: SessionView, user: User) -> SessionOut:
    session = view.session
    return SessionOut(
        id=session.id,
        session_token=session.session_token,
        status=session.status,
        sender_id=session.sender_id,
        receiver_id=session.receiver_id,
        role=session.role_of(user.id),
        created_at=session.created_at,
        updated_at=session.updated_at,
        expires_at=session.expires_at,
        files=[FileTransferOut.model_validate(f) for f in view.files],
    )


def status_out(session: SessionRecord) -> SessionStatusOut:
    return SessionStatusOut(session_id=session.id, status=session.status)


# ---------------------------------------------------------------------------
# CREATE SESSION
# ---------------------------------------------------------------------------

@router.post("", response_model=TransferCreated, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    payload: TransferCreate,
    current_user: User = Depends(get_current_user),
    orchestrator: TransferOrchestrator = Depends(get_transfer_orchestrator),
):
    """
    Create a transfer session from the current user to `receiver`.

    The receiver gets nothing until they open the session by token and
    accept it. The token is only valid until expires_at.
    """
    created = await orchestrator.create_session(
        sender_id=current_user.id,
        receiver=payload.receiver,
        files=[entry.model_dump() for entry in payload.files],
    )
    return TransferCreated(
        session_id=created.session_id,
        session_token=created.session_token,
        expires_at=created.expires_at,
        file_count=created.file_count,
    )


# ---------------------------------------------------------------------------
# HISTORY
# ---------------------------------------------------------------------------
# Declared before /{session_token} so "history" is not read as a token

@router.get("/history", response_model=HistoryPage)
async def transfer_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=settings.HISTORY_MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    orchestrator: TransferOrchestrator = Depends(get_transfer_orchestrator),
):
    """Sessions the current user sent or received, newest first."""
    entries = await orchestrator.list_history(current_user.id, page=page, page_size=page_size)
    return HistoryPage(
        page=page,
        page_size=page_size,
        sessions=[HistoryEntryOut.model_validate(entry) for entry in entries],
    )


# ---------------------------------------------------------------------------
# SESSION DETAILS
# ---------------------------------------------------------------------------

@router.get("/{session_token}", response_model=SessionOut)
async def get_transfer(
    session_token: str,
    current_user: User = Depends(get_current_user),
    orchestrator: TransferOrchestrator = Depends(get_transfer_orchestrator),
):
    """Session details; only the sender and receiver can see it."""
    view = await orchestrator.get_session(session_token, caller_id=current_user.id)
    return session_view_out(view, current_user)


# ---------------------------------------------------------------------------
# RECEIVER DECISION / CANCELLATION
# ---------------------------------------------------------------------------

@router.post("/{session_token}/accept", response_model=SessionStatusOut)
async def accept_transfer(
    session_token: str,
    current_user: User = Depends(get_current_user),
    orchestrator: TransferOrchestrator = Depends(get_transfer_orchestrator),
):
    """Receiver accepts the files (pending → authenticated)."""
    session = await orchestrator.accept_session(session_token, current_user.id)
    return status_out(session)


@router.post("/{session_token}/reject", response_model=SessionStatusOut)
async def reject_transfer(
    session_token: str,
    current_user: User = Depends(get_current_user),
    orchestrator: TransferOrchestrator = Depends(get_transfer_orchestrator),
):
    session = await orchestrator.reject_session(session_token, current_user.id)
    return status_out(session)


@router.post("/{session_token}/cancel", response_model=SessionStatusOut)
async def cancel_transfer(
    session_token: str,
    current_user: User = Depends(get_current_user),
    orchestrator: TransferOrchestrator = Depends(get_transfer_orchestrator),
):
    """Cancel before the transfer starts. Cancelling twice is not an error."""
    session = await orchestrator.cancel_session(session_token, current_user.id)
    return status_out(session)


# ---------------------------------------------------------------------------
# TRANSFER
# ---------------------------------------------------------------------------

@router.post("/{session_token}/start", response_model=TransferStarted, status_code=status.HTTP_202_ACCEPTED)
async def start_transfer(
    session_token: str,
    current_user: User = Depends(get_current_user),
    orchestrator: TransferOrchestrator = Depends(get_transfer_orchestrator),
):
    """
    Start moving ownership of every file to the receiver.

    Returns immediately; poll /progress for per-file results. Files that
    fail do not stop the batch and are reported in the progress view.
    """
    started = await orchestrator.start_transfer(session_token, caller_id=current_user.id)
    return TransferStarted(session_id=started.session_id, file_count=started.file_count)


@router.get("/{session_token}/progress", response_model=TransferProgressOut)
async def transfer_progress(
    session_token: str,
    current_user: User = Depends(get_current_user),
    orchestrator: TransferOrchestrator = Depends(get_transfer_orchestrator),
):
    progress = await orchestrator.get_progress(session_token, caller_id=current_user.id)
    return TransferProgressOut.model_validate(progress)
