"""
Transfer models - transfer sessions and their per-file transfer records.

A TransferSession pairs one sender with one receiver for a fixed list of
Drive files. Each file in that list gets one FileTransfer row, created
together with the session and never added to or removed afterwards.

Status Fields:
==============
Both status columns are closed enums (SessionStatus, FileStatus) stored as
their lowercase string values with a CHECK constraint, so neither the code
nor the database can hold a status outside the known set.

Ownership:
==========
- Session status is written only by the transfer orchestrator
- File status is written only by the batch engine during a run
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import (
    BigInteger,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class SessionStatus(str, enum.Enum):
    """Lifecycle states of a transfer session."""

    PENDING = "pending"
    AUTHENTICATED = "authenticated"
    # Reserved: no current flow enters this state
    FILE_SELECTED = "file_selected"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FileStatus(str, enum.Enum):
    """Lifecycle states of a single file transfer."""

    PENDING = "pending"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class TransferSession(Base):
    """
    SQLAlchemy ORM model for the 'transfer_sessions' table.

    The session_token is the only identifier handed to clients; lookups by
    token always exclude sessions whose expires_at has passed.
    """

    __tablename__ = "transfer_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    # session_token: unguessable, URL-safe, unique
    session_token: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)

    sender_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    receiver_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    status: Mapped[SessionStatus] = mapped_column(
        Enum(
            SessionStatus,
            name="transfer_session_status",
            native_enum=False,
            length=32,
            values_callable=_enum_values,
        ),
        default=SessionStatus.PENDING,
        nullable=False,
        index=True,
    )

    # version: bumped on every status write (compare-and-set guard)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # file_manifest: snapshot of the requested files, never modified
    file_manifest: Mapped[List[dict]] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # ---------------------------------------------------------------------------
    # RELATIONSHIPS
    # ---------------------------------------------------------------------------
    files: Mapped[List["FileTransfer"]] = relationship(
        "FileTransfer",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="FileTransfer.position",
    )

    def __repr__(self) -> str:
        return f"<TransferSession(id={self.id}, status='{self.status.value}')>"


class FileTransfer(Base):
    """
    SQLAlchemy ORM model for the 'file_transfers' table.

    Descriptive columns (name, type, size) are a snapshot taken when the
    session was created and are never re-fetched from Drive.
    """

    __tablename__ = "file_transfers"
    __table_args__ = (
        UniqueConstraint("session_id", "position", name="uq_file_transfers_session_position"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("transfer_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # position: index of the file in the session manifest (processing order)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    source_file_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    original_owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    new_owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )

    status: Mapped[FileStatus] = mapped_column(
        Enum(
            FileStatus,
            name="file_transfer_status",
            native_enum=False,
            length=32,
            values_callable=_enum_values,
        ),
        default=FileStatus.PENDING,
        nullable=False,
        index=True,
    )

    transfer_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    transfer_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # error_message: last failure reason, cleared when the file leaves FAILED
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # retry_count: failures recorded so far; bookkeeping only, never reset
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    session: Mapped["TransferSession"] = relationship("TransferSession", back_populates="files")

    def __repr__(self) -> str:
        return f"<FileTransfer(id={self.id}, file='{self.file_name}', status='{self.status.value}')>"
