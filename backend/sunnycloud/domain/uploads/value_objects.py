"""
Upload Value Objects

Immutable value objects for chunked upload sessions.
"""

from enum import Enum


class UploadState(Enum):
    """Chunked upload session state enumeration."""
    CREATED = "created"
    PARTS_IN_PROGRESS = "parts_in_progress"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        """Check if state is terminal (completed, aborted or failed)."""
        return self in (UploadState.COMPLETED, UploadState.ABORTED, UploadState.FAILED)

    def is_active(self) -> bool:
        """Check if the session still accepts parts."""
        return self in (UploadState.CREATED, UploadState.PARTS_IN_PROGRESS)
