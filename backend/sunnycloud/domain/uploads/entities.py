"""
Upload Entities

Domain entity for the chunked upload session registry.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sunnycloud.domain.errors import ValidationError
from sunnycloud.domain.file_storage.entities import format_datetime, parse_datetime, utc_now

from .value_objects import UploadState


@dataclass
class UploadSession:
    """
    Entity representing a chunked upload in progress.

    ``session_id`` is handed to the client; ``upload_id`` is the object
    store's own multipart handle. ``expires_at`` is the abandonment
    deadline after which the sweeper aborts the session, while
    ``file_expires_at`` is the expiry stamped on the resulting file.
    """

    session_id: str
    upload_id: str
    storage_key: str
    owner_id: str
    name: str
    declared_size: int
    total_chunks: int
    content_type: str
    state: UploadState = UploadState.CREATED
    group_id: Optional[int] = None
    file_expires_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    expires_at: Optional[datetime] = None

    @classmethod
    def create(
        cls,
        upload_id: str,
        storage_key: str,
        owner_id: str,
        name: str,
        declared_size: int,
        total_chunks: int,
        content_type: str,
        abandon_after: timedelta,
        group_id: Optional[int] = None,
        file_expires_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> "UploadSession":
        """
        Factory method to register a freshly opened multipart session.

        Returns:
            New UploadSession in the ``created`` state
        """
        now = now or utc_now()
        return cls(
            session_id=str(uuid.uuid4()),
            upload_id=upload_id,
            storage_key=storage_key,
            owner_id=owner_id,
            name=name,
            declared_size=declared_size,
            total_chunks=total_chunks,
            content_type=content_type,
            group_id=group_id,
            file_expires_at=file_expires_at,
            created_at=now,
            updated_at=now,
            expires_at=now + abandon_after,
        )

    def record_part(self) -> None:
        """
        Note that a part was accepted.

        Raises:
            ValidationError: If the session is already terminal
        """
        if not self.state.is_active():
            raise ValidationError(
                f"Upload session {self.session_id} is {self.state.value}"
            )
        self.state = UploadState.PARTS_IN_PROGRESS
        self.updated_at = utc_now()

    def complete(self) -> None:
        if not self.state.is_active():
            raise ValidationError(
                f"Cannot complete upload session in {self.state.value} state"
            )
        self.state = UploadState.COMPLETED
        self.updated_at = utc_now()

    def fail(self) -> None:
        self.state = UploadState.FAILED
        self.updated_at = utc_now()

    def abort(self) -> None:
        """
        Transition to aborted.

        Aborting an aborted or failed session is a no-op.

        Raises:
            ValidationError: If the session already completed
        """
        if self.state == UploadState.COMPLETED:
            raise ValidationError("Cannot abort a completed upload session")
        if self.state.is_active():
            self.state = UploadState.ABORTED
            self.updated_at = utc_now()

    def is_abandoned(self, now: Optional[datetime] = None) -> bool:
        """True once the deadline has passed and the upload never completed."""
        if self.state == UploadState.COMPLETED or self.expires_at is None:
            return False
        return self.expires_at <= (now or utc_now())

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "session_id": self.session_id,
            "upload_id": self.upload_id,
            "storage_key": self.storage_key,
            "owner_id": self.owner_id,
            "name": self.name,
            "declared_size": self.declared_size,
            "total_chunks": self.total_chunks,
            "content_type": self.content_type,
            "state": self.state.value,
            "group_id": self.group_id,
            "file_expires_at": format_datetime(self.file_expires_at),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "expires_at": format_datetime(self.expires_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UploadSession":
        """Create UploadSession from dictionary."""
        return cls(
            session_id=data["session_id"],
            upload_id=data["upload_id"],
            storage_key=data["storage_key"],
            owner_id=data["owner_id"],
            name=data["name"],
            declared_size=data["declared_size"],
            total_chunks=data["total_chunks"],
            content_type=data["content_type"],
            state=UploadState(data["state"]),
            group_id=data.get("group_id"),
            file_expires_at=parse_datetime(data.get("file_expires_at")),
            created_at=parse_datetime(data["created_at"]),
            updated_at=parse_datetime(data.get("updated_at") or data["created_at"]),
            expires_at=parse_datetime(data.get("expires_at")),
        )
