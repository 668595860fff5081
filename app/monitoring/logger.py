"""
Transfer Logger - Structured logging for transfer sessions.

Every lifecycle step of a transfer session is written as one JSON line so
a session can be traced end to end by grepping its id:

    Transfer Event: {"event": "transfer_started", "session_id": "...", ...}

Log Format:
==========
Each entry includes:
- event name
- session id
- timestamp (UTC, ISO 8601)
- event-specific fields (file counts, file ids, error text)

Tokens, refresh tokens and other secrets are never passed to this logger.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

logger = logging.getLogger("handoff.transfers")


def _jsonable(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):  # enums
        return value.value
    return value


class TransferLogger:
    """
    Structured logger for transfer operations.

    Usage:
        tlog = TransferLogger()
        tlog.log_event("session_accepted", session_id, receiver_id=user.id)
        tlog.log_file_result(session_id, file_transfer_id, "1AbC", "report.pdf", success=False, error="403")
    """

    def __init__(self, base_logger: Optional[logging.Logger] = None):
        self._logger = base_logger or logger

    def _build(self, event: str, session_id: Optional[UUID], fields: dict) -> dict:
        log_data = {
            "event": event,
            "session_id": str(session_id) if session_id else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        for key, value in fields.items():
            log_data[key] = _jsonable(value)
        return log_data

    def log_event(
        self,
        event: str,
        session_id: Optional[UUID] = None,
        level: int = logging.INFO,
        **fields: Any,
    ) -> None:
        """Log a session-level lifecycle event."""
        log_data = self._build(event, session_id, fields)
        self._logger.log(level, f"Transfer Event: {json.dumps(log_data)}")

    def log_file_result(
        self,
        session_id: UUID,
        file_transfer_id: UUID,
        source_file_id: str,
        file_name: str,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        """Log the outcome of one file's ownership transfer."""
        fields = {
            "file_transfer_id": file_transfer_id,
            "source_file_id": source_file_id,
            "file_name": file_name[:100],
            "success": success,
        }
        if error:
            fields["error"] = error
        event = "file_transfer_completed" if success else "file_transfer_failed"
        level = logging.INFO if success else logging.WARNING
        self.log_event(event, session_id, level=level, **fields)


# Shared instance
transfer_logger = TransferLogger()
