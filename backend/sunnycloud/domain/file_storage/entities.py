"""
File Storage Entities

Domain entities for stored files, file groups and their items.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def expiry_from_days(days: Optional[int], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Convert an "expires in N days" request into an absolute expiry.

    Zero, negative or missing values mean the resource is permanent.
    """
    if not days or days <= 0:
        return None
    return (now or utc_now()) + timedelta(days=days)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class GroupType(Enum):
    """Kind of grouped upload."""
    ARCHIVE = "archive"
    FOLDER = "folder"


@dataclass
class FileRecord:
    """
    Entity representing a single uploaded file.

    ``storage_key`` is the blob's key in the object store and is never
    shared with any other record.
    """
    owner_id: str
    name: str
    size: int
    content_type: str
    storage_key: str
    created_at: datetime = field(default_factory=utc_now)
    expires_at: Optional[datetime] = None
    id: Optional[int] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """A permanent record never expires."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utc_now())

    def with_id(self, record_id: int) -> "FileRecord":
        return replace(self, id=record_id)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "size": self.size,
            "content_type": self.content_type,
            "storage_key": self.storage_key,
            "created_at": format_datetime(self.created_at),
            "expires_at": format_datetime(self.expires_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FileRecord":
        """Create FileRecord from dictionary."""
        return cls(
            id=data.get("id"),
            owner_id=data["owner_id"],
            name=data["name"],
            size=data["size"],
            content_type=data["content_type"],
            storage_key=data["storage_key"],
            created_at=parse_datetime(data["created_at"]),
            expires_at=parse_datetime(data.get("expires_at")),
        )


@dataclass
class FileGroup:
    """
    Entity representing a grouped upload (an archive split into parts, or a folder).

    ``declared_total_size`` and ``declared_item_count`` are supplied by the
    client when the group is created. They are advisory and are never
    reconciled against the items actually committed.
    """
    owner_id: str
    name: str
    declared_total_size: int
    declared_item_count: int
    group_type: GroupType = GroupType.ARCHIVE
    created_at: datetime = field(default_factory=utc_now)
    expires_at: Optional[datetime] = None
    id: Optional[int] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utc_now())

    def with_id(self, group_id: int) -> "FileGroup":
        return replace(self, id=group_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "declared_total_size": self.declared_total_size,
            "declared_item_count": self.declared_item_count,
            "group_type": self.group_type.value,
            "created_at": format_datetime(self.created_at),
            "expires_at": format_datetime(self.expires_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FileGroup":
        return cls(
            id=data.get("id"),
            owner_id=data["owner_id"],
            name=data["name"],
            declared_total_size=data["declared_total_size"],
            declared_item_count=data["declared_item_count"],
            group_type=GroupType(data.get("group_type", GroupType.ARCHIVE.value)),
            created_at=parse_datetime(data["created_at"]),
            expires_at=parse_datetime(data.get("expires_at")),
        )


@dataclass
class FileGroupItem:
    """
    Entity representing one member of a FileGroup.

    ``name`` may encode a relative path (``folder/file.txt``). The item's
    lifetime is bound to its parent group.
    """
    group_id: int
    name: str
    size: int
    content_type: str
    storage_key: str
    created_at: datetime = field(default_factory=utc_now)
    id: Optional[int] = None

    def with_id(self, item_id: int) -> "FileGroupItem":
        return replace(self, id=item_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "name": self.name,
            "size": self.size,
            "content_type": self.content_type,
            "storage_key": self.storage_key,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FileGroupItem":
        return cls(
            id=data.get("id"),
            group_id=data["group_id"],
            name=data["name"],
            size=data["size"],
            content_type=data["content_type"],
            storage_key=data["storage_key"],
            created_at=parse_datetime(data["created_at"]),
        )
