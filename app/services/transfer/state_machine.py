"""
Session state machine - the single table of allowed status changes.

    pending ──accept──▶ authenticated ──start──▶ transferring ──▶ completed
       │                     │                        │      └──▶ failed
       └──────cancel─────────┴──────────▶ cancelled ◀─┘ (runner shutdown only)

file_selected is reserved: nothing enters it, it can only be cancelled.
Every status write in the repository is checked against this table.
"""

from app.models.transfer import FileStatus, SessionStatus
from app.services.transfer.errors import InvalidStateTransitionError


ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.AUTHENTICATED, SessionStatus.CANCELLED}),
    SessionStatus.FILE_SELECTED: frozenset({SessionStatus.CANCELLED}),
    SessionStatus.AUTHENTICATED: frozenset({SessionStatus.TRANSFERRING, SessionStatus.CANCELLED}),
    SessionStatus.TRANSFERRING: frozenset(
        {SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED}
    ),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.FAILED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}

# States a participant may cancel from; a running batch is only cancelled by runner shutdown
USER_CANCELLABLE = frozenset(
    {SessionStatus.PENDING, SessionStatus.FILE_SELECTED, SessionStatus.AUTHENTICATED}
)

TERMINAL_SESSION_STATES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

TERMINAL_FILE_STATES = frozenset(
    {FileStatus.COMPLETED, FileStatus.FAILED, FileStatus.SKIPPED}
)


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: SessionStatus, target: SessionStatus) -> None:
    """Raise InvalidStateTransitionError unless current -> target is an edge."""
    if not can_transition(current, target):
        raise InvalidStateTransitionError(current.value, target.value)


def is_terminal(status: SessionStatus) -> bool:
    return status in TERMINAL_SESSION_STATES
