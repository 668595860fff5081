"""
Transfer errors - the typed failures of the transfer core.

Every error carries:
- kind: a stable machine-readable identifier (safe to show in production)
- message: a short user-facing sentence
- detail: optional diagnostic text (only exposed outside production)

State-machine and validation errors are raised before anything is
written, so a caller that gets one of these knows nothing changed.
"""

from typing import Optional


class TransferError(Exception):
    """Base class for all transfer-core errors."""

    kind = "transfer_error"
    default_message = "The transfer request failed."

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def to_dict(self, include_detail: bool = False) -> dict:
        body = {"success": False, "error": self.kind, "message": self.message}
        if include_detail and self.detail:
            body["detail"] = self.detail
        return body


class NotFoundError(TransferError):
    """Unknown or expired session token, or unknown user."""

    kind = "not_found"
    default_message = "Transfer session not found."


class ReceiverNotFoundError(NotFoundError):
    """The receiver does not exist or has never connected Google."""

    kind = "receiver_not_found"
    default_message = "Receiver not found. They need to sign in with Google first."


class UnauthorizedError(TransferError):
    """Caller is not allowed to act on this session."""

    kind = "unauthorized"
    default_message = "You are not allowed to perform this action on this session."


class InvalidStateTransitionError(TransferError):
    """Operation not allowed from the session's current status."""

    kind = "invalid_state_transition"
    default_message = "This action is not allowed in the session's current state."

    def __init__(self, current: str, target: str, detail: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move a {current} session to {target}.",
            detail=detail,
        )


class InvalidManifestError(TransferError):
    """Empty or malformed file list."""

    kind = "invalid_manifest"
    default_message = "The file list is empty or malformed."


class InvalidParticipantsError(TransferError):
    """Sender and receiver are the same user."""

    kind = "invalid_participants"
    default_message = "Sender and receiver must be different users."


class ExternalProviderError(TransferError):
    """A Google API call failed (network, auth, permission denial)."""

    kind = "external_provider_error"
    default_message = "Google Drive rejected the request."

    def __init__(
        self,
        message: Optional[str] = None,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.status_code = status_code
        super().__init__(message, detail=detail)


class PersistenceError(TransferError):
    """The session repository failed."""

    kind = "persistence_error"
    default_message = "Transfer state could not be saved."
