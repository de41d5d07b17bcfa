"""
File Service

Owner-initiated deletion and expiration changes for files and groups.

Deletion removes blobs first and rows last, so a crash in between leaves a
row whose redemption fails with ``blob-missing`` rather than a row-less blob
nobody can find. Every step is idempotent and safe to repeat.
"""

import logging
from typing import Optional

from sunnycloud.domain.errors import OwnershipViolationError, ResourceNotFoundError
from sunnycloud.domain.file_storage import storage_keys
from sunnycloud.domain.file_storage.entities import FileGroup, FileRecord, expiry_from_days
from sunnycloud.domain.file_storage.repositories import FileGroupRepository, FileRecordRepository
from sunnycloud.domain.file_storage.storage_repository import IObjectStorageRepository

logger = logging.getLogger(__name__)


class FileService:
    """Application service for file and group lifecycle operations."""

    def __init__(
        self,
        file_repository: FileRecordRepository,
        group_repository: FileGroupRepository,
        storage_repository: IObjectStorageRepository,
    ):
        self.file_repository = file_repository
        self.group_repository = group_repository
        self.storage_repository = storage_repository

    def _owned_file(self, owner_id: str, file_id: int) -> FileRecord:
        record = self.file_repository.get(file_id)
        if record is None:
            raise ResourceNotFoundError(f"File {file_id} not found")
        if record.owner_id != owner_id:
            raise OwnershipViolationError(f"File {file_id} belongs to another owner")
        return record

    def _owned_group(self, owner_id: str, group_id: int) -> FileGroup:
        group = self.group_repository.get(group_id)
        if group is None:
            raise ResourceNotFoundError(f"Group {group_id} not found")
        if group.owner_id != owner_id:
            raise OwnershipViolationError(f"Group {group_id} belongs to another owner")
        return group

    # Purge (shared with the expiration sweeper)

    def purge_file(self, record: FileRecord) -> int:
        """
        Delete a file's blob, then its row.

        Returns:
            Rows deleted (0 if another run already removed it)
        """
        self.storage_repository.delete(record.storage_key)
        return self.file_repository.delete(record.id)

    def purge_group(self, group: FileGroup) -> int:
        """
        Delete every blob of a group, then its item rows, then the group row.

        The group prefix is swept too, catching blobs from completions that
        failed before their item row was written.

        Returns:
            Group rows deleted (0 if another run already removed it)
        """
        for item in self.group_repository.list_items(group.id):
            self.storage_repository.delete(item.storage_key)
        orphans = self.storage_repository.delete_prefix(
            storage_keys.group_prefix(group.owner_id, group.id)
        )
        if orphans:
            logger.debug(f"Removed {orphans} blobs under the prefix of group {group.id}")
        self.group_repository.delete_items(group.id)
        return self.group_repository.delete(group.id)

    # Owner operations

    def delete_file(self, owner_id: str, file_id: int) -> None:
        """
        Delete a file the caller owns.

        Raises:
            ResourceNotFoundError: If the file does not exist
            OwnershipViolationError: If the file belongs to another owner
        """
        record = self._owned_file(owner_id, file_id)
        self.purge_file(record)
        logger.info(f"Owner {owner_id} deleted file {file_id}")

    def delete_group(self, owner_id: str, group_id: int) -> None:
        """Delete a group the caller owns, with all of its items."""
        group = self._owned_group(owner_id, group_id)
        self.purge_group(group)
        logger.info(f"Owner {owner_id} deleted group {group_id}")

    def set_file_expiration(
        self, owner_id: str, file_id: int, expires_in_days: Optional[int]
    ) -> FileRecord:
        """
        Change when a file expires.

        Args:
            expires_in_days: Days from now; None or 0 makes the file permanent
        """
        record = self._owned_file(owner_id, file_id)
        record.expires_at = expiry_from_days(expires_in_days)
        if not self.file_repository.set_expiration(file_id, record.expires_at):
            raise ResourceNotFoundError(f"File {file_id} not found")
        return record

    def set_group_expiration(
        self, owner_id: str, group_id: int, expires_in_days: Optional[int]
    ) -> FileGroup:
        group = self._owned_group(owner_id, group_id)
        group.expires_at = expiry_from_days(expires_in_days)
        if not self.group_repository.set_expiration(group_id, group.expires_at):
            raise ResourceNotFoundError(f"Group {group_id} not found")
        return group
