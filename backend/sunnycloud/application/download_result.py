"""
Download Result Value Objects

What the download resolver hands back to the HTTP layer: either a blob
stream or a manifest of per-item links, plus the share links minted for
owners.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Union

from sunnycloud.domain.file_storage.storage_repository import StoredObject


@dataclass
class FileDownload:
    """
    A single blob ready to stream.

    Attributes:
        name: Display name the file was uploaded with
        content_type: Original MIME type
        size: Number of bytes in ``stored.body``
        stored: Open stored object; the caller must close it
    """
    name: str
    content_type: str
    size: int
    stored: StoredObject

    @property
    def body(self):
        return self.stored.body


@dataclass(frozen=True)
class ManifestEntry:
    """One group item with its short-lived download token."""
    name: str
    size: int
    content_type: str
    download_ref: str
    download_url: str
    expires_at: int

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "size": self.size,
            "content_type": self.content_type,
            "download_ref": self.download_ref,
            "download_url": self.download_url,
            "expires_at": self.expires_at,
        }


@dataclass
class GroupManifest:
    """
    Listing of a group's items, sorted by name.

    Declared values come from the client at group creation and are advisory;
    actual values are computed from the committed items.
    """
    group_id: int
    name: str
    group_type: str
    declared_total_size: int
    declared_item_count: int
    items: List[ManifestEntry] = field(default_factory=list)

    @property
    def actual_item_count(self) -> int:
        return len(self.items)

    @property
    def actual_total_size(self) -> int:
        return sum(item.size for item in self.items)

    def to_dict(self) -> dict:
        return {
            "group_id": self.group_id,
            "name": self.name,
            "type": self.group_type,
            "declared_total_size": self.declared_total_size,
            "declared_item_count": self.declared_item_count,
            "actual_total_size": self.actual_total_size,
            "actual_item_count": self.actual_item_count,
            "items": [item.to_dict() for item in self.items],
        }


DownloadResult = Union[FileDownload, GroupManifest]


@dataclass(frozen=True)
class ShareLink:
    """A bearer link minted for an owner."""
    url: str
    token: str
    expires_at: int
    permanent: bool

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "token": self.token,
            "expires_at": datetime.fromtimestamp(self.expires_at, tz=timezone.utc).isoformat(),
            "permanent": self.permanent,
        }
