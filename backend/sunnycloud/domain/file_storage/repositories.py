"""
File Storage Repositories

Repository interfaces for file metadata persistence.
Concrete implementations are in the infrastructure layer.

Deletes report how many rows they removed so callers can tell a real
deletion from a repeat of one that already happened.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entities import FileGroup, FileGroupItem, FileRecord


class StorageKeyConflictError(Exception):
    """Raised when a storage key is already referenced by another row."""
    pass


class FileRecordRepository(ABC):
    """Abstract repository interface for FileRecord persistence."""

    @abstractmethod
    def insert(self, record: FileRecord) -> int:
        """
        Insert a new record.

        Args:
            record: FileRecord without an id

        Returns:
            Generated record id

        Raises:
            StorageKeyConflictError: If the storage key is already referenced
        """
        pass  # pragma: no cover

    @abstractmethod
    def get(self, record_id: int) -> Optional[FileRecord]:
        """Retrieve a record by id."""
        pass  # pragma: no cover

    @abstractmethod
    def get_for_owner(self, record_id: int, owner_id: str) -> Optional[FileRecord]:
        """Retrieve a record by id only if it belongs to ``owner_id``."""
        pass  # pragma: no cover

    @abstractmethod
    def get_by_storage_key(self, storage_key: str) -> Optional[FileRecord]:
        """Retrieve the record referencing a storage key."""
        pass  # pragma: no cover

    @abstractmethod
    def set_expiration(self, record_id: int, expires_at: Optional[datetime]) -> bool:
        """
        Change (or clear) a record's expiry.

        Returns:
            True if the record exists and was updated
        """
        pass  # pragma: no cover

    @abstractmethod
    def find_expired(self, now: datetime) -> List[FileRecord]:
        """Records with a non-null expiry at or before ``now``."""
        pass  # pragma: no cover

    @abstractmethod
    def delete(self, record_id: int) -> int:
        """
        Delete a record.

        Returns:
            Number of rows deleted (0 if it was already gone)
        """
        pass  # pragma: no cover


class FileGroupRepository(ABC):
    """Abstract repository interface for FileGroup and FileGroupItem persistence."""

    @abstractmethod
    def insert(self, group: FileGroup) -> int:
        """Insert a new group and return its generated id."""
        pass  # pragma: no cover

    @abstractmethod
    def get(self, group_id: int) -> Optional[FileGroup]:
        pass  # pragma: no cover

    @abstractmethod
    def get_for_owner(self, group_id: int, owner_id: str) -> Optional[FileGroup]:
        pass  # pragma: no cover

    @abstractmethod
    def set_expiration(self, group_id: int, expires_at: Optional[datetime]) -> bool:
        pass  # pragma: no cover

    @abstractmethod
    def find_expired(self, now: datetime) -> List[FileGroup]:
        """Groups with a non-null expiry at or before ``now``."""
        pass  # pragma: no cover

    @abstractmethod
    def delete(self, group_id: int) -> int:
        """
        Delete a group row.

        Implementations cascade to the group's items.

        Returns:
            Number of group rows deleted (0 if it was already gone)
        """
        pass  # pragma: no cover

    @abstractmethod
    def insert_item(self, item: FileGroupItem) -> int:
        """
        Insert an item under its parent group.

        Raises:
            ResourceNotFoundError: If the parent group no longer exists
            StorageKeyConflictError: If the storage key is already referenced
        """
        pass  # pragma: no cover

    @abstractmethod
    def list_items(self, group_id: int) -> List[FileGroupItem]:
        """Items of a group ordered by name."""
        pass  # pragma: no cover

    @abstractmethod
    def get_item_by_storage_key(self, storage_key: str) -> Optional[FileGroupItem]:
        pass  # pragma: no cover

    @abstractmethod
    def delete_items(self, group_id: int) -> int:
        """
        Delete every item of a group.

        Returns:
            Number of item rows deleted
        """
        pass  # pragma: no cover
