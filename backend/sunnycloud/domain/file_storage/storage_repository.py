"""
Object Storage Repository Interface

Abstract interface for blob storage operations, including multipart
upload sessions. This abstraction keeps the domain layer independent of
the concrete backend (local filesystem, Google Cloud Storage, ...).

Failures of the backend are raised as ``AdapterFailureError``. The
repository never retries; retry policy belongs to the caller.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Iterable, List, Optional


DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class UploadedPart:
    """
    A part of a multipart session as acknowledged by the backend.
    """
    part_number: int
    etag: str

    def to_dict(self) -> dict:
        return {"part_number": self.part_number, "etag": self.etag}

    @classmethod
    def from_dict(cls, data: dict) -> "UploadedPart":
        return cls(part_number=int(data["part_number"]), etag=str(data["etag"]))


@dataclass
class StoredObject:
    """
    A blob read back from storage.

    The caller owns ``body`` and must close it.
    """
    key: str
    body: BinaryIO
    size: int
    content_type: str = DEFAULT_CONTENT_TYPE
    attributes: Dict[str, str] = field(default_factory=dict)

    def read(self) -> bytes:
        """Read the whole body and close it."""
        try:
            return self.body.read()
        finally:
            self.body.close()


class IObjectStorageRepository(ABC):
    """
    Unified interface for object storage operations.

    Contract Guarantees:
    - ``delete`` and ``abort_session`` are idempotent
    - ``get`` returns None for a missing key; ``head`` returns False
    - ``upload_part`` may be called in any order and re-uploading a part
      number replaces the earlier upload of that part
    - ``complete_session`` assembles parts in ascending part-number order,
      independent of the order of the ``parts`` argument

    Thread Safety:
    - Implementations must tolerate concurrent part uploads to one session
    """

    # Most parts ``complete_session`` can assemble; None means unbounded
    max_parts: Optional[int] = None

    @abstractmethod
    def put(
        self,
        key: str,
        content: BinaryIO,
        content_type: str = DEFAULT_CONTENT_TYPE,
        attributes: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Store a blob in a single request.

        Overwrites any existing blob at ``key``.

        Args:
            key: Storage key (e.g., 'uploads/7/1700000000000-ab12cd34-report.pdf')
            content: Binary content as a file-like object
            content_type: MIME type stored with the blob
            attributes: Free-form string metadata stored with the blob

        Raises:
            ValueError: If the key is empty or escapes the storage namespace
            AdapterFailureError: If the backend fails
        """
        pass  # pragma: no cover

    @abstractmethod
    def get(self, key: str) -> Optional[StoredObject]:
        """
        Retrieve a blob.

        Returns:
            StoredObject if the key exists, None otherwise

        Raises:
            AdapterFailureError: If the backend fails for a reason other
                than the key being absent
        """
        pass  # pragma: no cover

    @abstractmethod
    def head(self, key: str) -> bool:
        """
        Check whether a blob exists.

        Raises:
            AdapterFailureError: If the backend fails
        """
        pass  # pragma: no cover

    @abstractmethod
    def delete(self, key: str) -> None:
        """
        Delete a blob.

        Deleting a key that does not exist is a no-op.

        Raises:
            AdapterFailureError: If the backend fails
        """
        pass  # pragma: no cover

    @abstractmethod
    def list_keys(self, prefix: str) -> List[str]:
        """
        List blob keys starting with ``prefix``.

        Multipart session scratch data is never listed.
        """
        pass  # pragma: no cover

    def delete_prefix(self, prefix: str) -> int:
        """
        Delete every blob whose key starts with ``prefix``.

        Returns:
            Number of blobs deleted
        """
        if not prefix or not prefix.strip():
            raise ValueError("prefix cannot be empty")
        keys = self.list_keys(prefix)
        for key in keys:
            self.delete(key)
        return len(keys)

    @abstractmethod
    def create_session(
        self,
        key: str,
        content_type: str = DEFAULT_CONTENT_TYPE,
        attributes: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Open a multipart upload session bound to ``key``.

        Returns:
            Opaque session id
        """
        pass  # pragma: no cover

    @abstractmethod
    def upload_part(self, key: str, session_id: str, part_number: int, data: bytes) -> str:
        """
        Upload one part of a multipart session.

        Args:
            key: Storage key the session is bound to
            session_id: Session id from ``create_session``
            part_number: 1-based part number
            data: Part bytes

        Returns:
            Entity tag identifying this upload of the part

        Raises:
            AdapterFailureError: If the session is unknown or the backend fails
        """
        pass  # pragma: no cover

    @abstractmethod
    def complete_session(self, key: str, session_id: str, parts: Iterable[UploadedPart]) -> bool:
        """
        Assemble the supplied parts into the blob at ``key``.

        Args:
            key: Storage key the session is bound to
            session_id: Session id from ``create_session``
            parts: Every (part_number, etag) pair to keep

        Returns:
            True once the blob is committed

        Raises:
            AdapterFailureError: If a part is missing, an etag does not match
                the stored part, or the backend fails
        """
        pass  # pragma: no cover

    @abstractmethod
    def abort_session(self, key: str, session_id: str) -> None:
        """
        Discard a multipart session and its uploaded parts.

        Aborting an unknown or already-finished session is a no-op.
        """
        pass  # pragma: no cover
