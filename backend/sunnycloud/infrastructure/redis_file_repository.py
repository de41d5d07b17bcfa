"""
Redis File Repository Implementation

Concrete Redis-based implementations of FileRecordRepository and
FileGroupRepository. Records are JSON documents; expiries are indexed in
sorted sets so the sweeper can select candidates without scanning.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sunnycloud.domain.errors import ResourceNotFoundError
from sunnycloud.domain.file_storage.entities import FileGroup, FileGroupItem, FileRecord
from sunnycloud.domain.file_storage.repositories import (
    FileGroupRepository,
    FileRecordRepository,
    StorageKeyConflictError,
)

logger = logging.getLogger(__name__)

# Shared by files and group items so a key is referenced by exactly one row
STORAGE_KEY_INDEX = "storage_key"


def _claim_storage_key(redis_repo, storage_key: str, owner_ref: str) -> None:
    if not redis_repo.set_if_absent(f"{STORAGE_KEY_INDEX}:{storage_key}", owner_ref):
        raise StorageKeyConflictError(f"Storage key already referenced: {storage_key}")


def _lookup_storage_key(redis_repo, storage_key: str, kind: str) -> Optional[int]:
    ref = redis_repo.get_value(f"{STORAGE_KEY_INDEX}:{storage_key}")
    if ref is None or not ref.startswith(f"{kind}:"):
        return None
    return int(ref.split(":", 1)[1])


class RedisFileRecordRepository(FileRecordRepository):
    """
    Redis-based implementation of FileRecordRepository.

    Key Schema:
        - file:{id} -> FileRecord JSON
        - file:expiry -> Sorted Set of ids scored by expiry epoch
        - storage_key:{key} -> "file:{id}"
        - seq:file -> id sequence
    """

    KEY_PREFIX = "file"
    EXPIRY_INDEX = "file:expiry"

    def __init__(self, redis_repository):
        """
        Initialize with Redis repository.

        Args:
            redis_repository: RedisRepository instance from infrastructure layer
        """
        self.redis_repo = redis_repository

    def _key(self, record_id: int) -> str:
        return f"{self.KEY_PREFIX}:{int(record_id)}"

    def insert(self, record: FileRecord) -> int:
        record_id = self.redis_repo.next_id(self.KEY_PREFIX)
        _claim_storage_key(self.redis_repo, record.storage_key, self._key(record_id))

        stored = record.with_id(record_id)
        self.redis_repo.set_json(self._key(record_id), stored.to_dict())
        if stored.expires_at is not None:
            self.redis_repo.index_add(
                self.EXPIRY_INDEX, str(record_id), stored.expires_at.timestamp()
            )
        return record_id

    def get(self, record_id: int) -> Optional[FileRecord]:
        data = self.redis_repo.get_json(self._key(record_id))
        if data is None:
            return None
        return FileRecord.from_dict(data)

    def get_for_owner(self, record_id: int, owner_id: str) -> Optional[FileRecord]:
        record = self.get(record_id)
        if record is None or record.owner_id != owner_id:
            return None
        return record

    def get_by_storage_key(self, storage_key: str) -> Optional[FileRecord]:
        record_id = _lookup_storage_key(self.redis_repo, storage_key, self.KEY_PREFIX)
        if record_id is None:
            return None
        return self.get(record_id)

    def set_expiration(self, record_id: int, expires_at: Optional[datetime]) -> bool:
        record = self.get(record_id)
        if record is None:
            return False

        record.expires_at = expires_at
        self.redis_repo.set_json(self._key(record_id), record.to_dict())
        if expires_at is None:
            self.redis_repo.index_remove(self.EXPIRY_INDEX, str(record_id))
        else:
            self.redis_repo.index_add(self.EXPIRY_INDEX, str(record_id), expires_at.timestamp())
        return True

    def find_expired(self, now: datetime) -> List[FileRecord]:
        ids = self.redis_repo.index_range(self.EXPIRY_INDEX, now.timestamp())
        documents = self.redis_repo.get_many_json([self._key(i) for i in ids])

        expired = []
        for record_id, data in zip(ids, documents):
            if data is None:
                # Row deleted by a concurrent run; drop the dangling index entry
                self.redis_repo.index_remove(self.EXPIRY_INDEX, record_id)
                continue
            record = FileRecord.from_dict(data)
            if record.is_expired(now):
                expired.append(record)
        return expired

    def delete(self, record_id: int) -> int:
        record = self.get(record_id)
        deleted = self.redis_repo.delete(self._key(record_id))
        self.redis_repo.index_remove(self.EXPIRY_INDEX, str(record_id))
        if deleted and record is not None:
            self.redis_repo.delete(f"{STORAGE_KEY_INDEX}:{record.storage_key}")
        return deleted


class RedisFileGroupRepository(FileGroupRepository):
    """
    Redis-based implementation of FileGroupRepository.

    Key Schema:
        - group:{id} -> FileGroup JSON
        - group:{id}:items -> Set of item ids
        - group:expiry -> Sorted Set of group ids scored by expiry epoch
        - item:{id} -> FileGroupItem JSON
        - storage_key:{key} -> "item:{id}"
        - seq:group, seq:item -> id sequences
    """

    KEY_PREFIX = "group"
    ITEM_PREFIX = "item"
    EXPIRY_INDEX = "group:expiry"

    def __init__(self, redis_repository):
        self.redis_repo = redis_repository

    def _key(self, group_id: int) -> str:
        return f"{self.KEY_PREFIX}:{int(group_id)}"

    def _items_key(self, group_id: int) -> str:
        return f"{self._key(group_id)}:items"

    def _item_key(self, item_id: int) -> str:
        return f"{self.ITEM_PREFIX}:{int(item_id)}"

    def insert(self, group: FileGroup) -> int:
        group_id = self.redis_repo.next_id(self.KEY_PREFIX)
        stored = group.with_id(group_id)
        self.redis_repo.set_json(self._key(group_id), stored.to_dict())
        if stored.expires_at is not None:
            self.redis_repo.index_add(
                self.EXPIRY_INDEX, str(group_id), stored.expires_at.timestamp()
            )
        return group_id

    def get(self, group_id: int) -> Optional[FileGroup]:
        data = self.redis_repo.get_json(self._key(group_id))
        if data is None:
            return None
        return FileGroup.from_dict(data)

    def get_for_owner(self, group_id: int, owner_id: str) -> Optional[FileGroup]:
        group = self.get(group_id)
        if group is None or group.owner_id != owner_id:
            return None
        return group

    def set_expiration(self, group_id: int, expires_at: Optional[datetime]) -> bool:
        group = self.get(group_id)
        if group is None:
            return False

        group.expires_at = expires_at
        self.redis_repo.set_json(self._key(group_id), group.to_dict())
        if expires_at is None:
            self.redis_repo.index_remove(self.EXPIRY_INDEX, str(group_id))
        else:
            self.redis_repo.index_add(self.EXPIRY_INDEX, str(group_id), expires_at.timestamp())
        return True

    def find_expired(self, now: datetime) -> List[FileGroup]:
        ids = self.redis_repo.index_range(self.EXPIRY_INDEX, now.timestamp())
        documents = self.redis_repo.get_many_json([self._key(i) for i in ids])

        expired = []
        for group_id, data in zip(ids, documents):
            if data is None:
                self.redis_repo.index_remove(self.EXPIRY_INDEX, group_id)
                continue
            group = FileGroup.from_dict(data)
            if group.is_expired(now):
                expired.append(group)
        return expired

    def delete(self, group_id: int) -> int:
        self.delete_items(group_id)
        deleted = self.redis_repo.delete(self._key(group_id))
        self.redis_repo.index_remove(self.EXPIRY_INDEX, str(group_id))
        return deleted

    def insert_item(self, item: FileGroupItem) -> int:
        if not self.redis_repo.exists(self._key(item.group_id)):
            raise ResourceNotFoundError(f"Group {item.group_id} not found")
        item_id = self.redis_repo.next_id(self.ITEM_PREFIX)
        _claim_storage_key(self.redis_repo, item.storage_key, self._item_key(item_id))

        stored = item.with_id(item_id)
        self.redis_repo.set_json(self._item_key(item_id), stored.to_dict())
        self.redis_repo.set_add(self._items_key(item.group_id), str(item_id))
        return item_id

    def list_items(self, group_id: int) -> List[FileGroupItem]:
        ids = self.redis_repo.set_members(self._items_key(group_id))
        documents = self.redis_repo.get_many_json([self._item_key(i) for i in ids])
        items = [FileGroupItem.from_dict(data) for data in documents if data is not None]
        return sorted(items, key=lambda item: (item.name, item.id))

    def get_item_by_storage_key(self, storage_key: str) -> Optional[FileGroupItem]:
        item_id = _lookup_storage_key(self.redis_repo, storage_key, self.ITEM_PREFIX)
        if item_id is None:
            return None
        data = self.redis_repo.get_json(self._item_key(item_id))
        return FileGroupItem.from_dict(data) if data is not None else None

    def delete_items(self, group_id: int) -> int:
        items = self.list_items(group_id)
        if not items:
            self.redis_repo.delete(self._items_key(group_id))
            return 0

        deleted = self.redis_repo.delete(*[self._item_key(item.id) for item in items])
        self.redis_repo.delete(
            *[f"{STORAGE_KEY_INDEX}:{item.storage_key}" for item in items]
        )
        self.redis_repo.delete(self._items_key(group_id))
        logger.debug(f"Deleted {deleted} item rows of group {group_id}")
        return deleted
