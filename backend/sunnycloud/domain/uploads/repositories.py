"""
Upload Repositories

Repository interface for the upload session registry.
Concrete implementations are in the infrastructure layer.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entities import UploadSession
from .value_objects import UploadState


class UploadSessionRepository(ABC):
    """Abstract repository interface for upload session persistence."""

    @abstractmethod
    def save(self, session: UploadSession) -> bool:
        """
        Save or update a session.

        Args:
            session: UploadSession to save

        Returns:
            True if successful, False otherwise
        """
        pass  # pragma: no cover

    @abstractmethod
    def save_if_state(self, session: UploadSession, expected: UploadState) -> bool:
        """
        Atomically save a session only if the stored copy is still in ``expected``.

        Returns:
            True if saved, False if the stored session moved on or is gone
        """
        pass  # pragma: no cover

    @abstractmethod
    def get(self, session_id: str) -> Optional[UploadSession]:
        """
        Retrieve a session by id.

        Returns:
            UploadSession if found, None otherwise
        """
        pass  # pragma: no cover

    @abstractmethod
    def find_abandoned(self, now: datetime) -> List[UploadSession]:
        """Sessions whose abandonment deadline is at or before ``now``."""
        pass  # pragma: no cover

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """
        Delete a session.

        Returns:
            True if deleted, False if it was already gone
        """
        pass  # pragma: no cover
