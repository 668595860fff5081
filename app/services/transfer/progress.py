"""
Progress Aggregator - turns file rows into the polling view of a session.

Pure functions over records; no I/O. The orchestrator reads the session
and its files in one repository call and hands the snapshot here, so the
counts always add up to the number of files in that snapshot.
"""

from typing import Sequence

from app.models.transfer import FileStatus
from app.services.transfer.records import (
    FileProgress,
    FileRecord,
    SessionRecord,
    TransferProgress,
)


def get_stats(files: Sequence[FileRecord]) -> dict[str, int]:
    """
    Count files per status.

    Returns:
        {"total": n, "pending": ..., "transferring": ..., "completed": ...,
         "failed": ..., "skipped": ...}
    """
    stats = {status.value: 0 for status in FileStatus}
    for record in files:
        stats[record.status.value] += 1
    stats["total"] = len(files)
    return stats


def build_progress(
    session: SessionRecord,
    files: Sequence[FileRecord],
    is_running: bool = False,
) -> TransferProgress:
    """Combine a session snapshot and its files into a TransferProgress."""
    stats = get_stats(files)
    return TransferProgress(
        session_status=session.status,
        total=stats["total"],
        pending=stats[FileStatus.PENDING.value],
        transferring=stats[FileStatus.TRANSFERRING.value],
        completed=stats[FileStatus.COMPLETED.value],
        failed=stats[FileStatus.FAILED.value],
        skipped=stats[FileStatus.SKIPPED.value],
        is_running=is_running,
        files=[
            FileProgress(
                file_name=record.file_name,
                status=record.status,
                error=record.error_message,
                retry_count=record.retry_count,
            )
            for record in files
        ],
    )
