"""
Monitoring Module - structured logging for transfer lifecycle events.

Usage:
======
    from app.monitoring import transfer_logger

    transfer_logger.log_event("session_created", session_id, file_count=3)
"""

from app.monitoring.logger import TransferLogger, transfer_logger

__all__ = ["TransferLogger", "transfer_logger"]
