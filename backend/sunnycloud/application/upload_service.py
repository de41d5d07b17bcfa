"""
Upload Service

Application service that drives direct and chunked uploads on top of the
object storage repository. Metadata rows are written only after the
storage backend has confirmed the blob is durable; a failure after the
blob lands but before the row is written leaves an orphan blob, which the
group-prefix sweep or an operator reclaims.
"""

import logging
import mimetypes
from collections import Counter
from dataclasses import dataclass
from datetime import timedelta
from io import BytesIO
from typing import Iterable, Optional, Union

from sunnycloud.config.storage_config import StorageConfig
from sunnycloud.domain.errors import (
    AdapterFailureError,
    IncompletePartSetError,
    OwnershipViolationError,
    PayloadTooLargeError,
    ResourceNotFoundError,
    ValidationError,
)
from sunnycloud.domain.file_storage import storage_keys
from sunnycloud.domain.file_storage.entities import (
    FileGroup,
    FileGroupItem,
    FileRecord,
    GroupType,
    expiry_from_days,
    utc_now,
)
from sunnycloud.domain.file_storage.repositories import FileGroupRepository, FileRecordRepository
from sunnycloud.domain.file_storage.storage_repository import (
    DEFAULT_CONTENT_TYPE,
    IObjectStorageRepository,
    UploadedPart,
)
from sunnycloud.domain.uploads.entities import UploadSession
from sunnycloud.domain.uploads.repositories import UploadSessionRepository
from sunnycloud.domain.uploads.value_objects import UploadState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadLimits:
    """Size ceilings enforced before any byte reaches the storage backend."""
    max_direct_upload_bytes: int
    max_chunk_bytes: int
    max_total_chunks: int = 10000
    session_ttl_seconds: int = 24 * 60 * 60

    @classmethod
    def from_config(cls, config: StorageConfig) -> "UploadLimits":
        return cls(
            max_direct_upload_bytes=config.max_direct_upload_bytes,
            max_chunk_bytes=config.max_chunk_bytes,
            max_total_chunks=config.max_total_chunks,
            session_ttl_seconds=config.upload_session_ttl_seconds,
        )


def _require_name(name: Optional[str], what: str = "name") -> str:
    if name is None or not str(name).strip():
        raise ValidationError(f"{what} cannot be empty")
    return str(name).strip()


def _guess_content_type(name: str, content_type: Optional[str]) -> str:
    if content_type:
        return content_type
    guessed, _ = mimetypes.guess_type(name)
    return guessed or DEFAULT_CONTENT_TYPE


def _coerce_part(part: Union[UploadedPart, dict]) -> UploadedPart:
    if isinstance(part, UploadedPart):
        return part
    try:
        return UploadedPart.from_dict(part)
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid part descriptor: {part!r}", e) from e


class UploadOrchestrator:
    """
    Application service for uploads.

    Chunked upload lifecycle::

        created -> parts_in_progress -> completed
        created | parts_in_progress -> aborted
        created | parts_in_progress -> failed   (backend failed at completion)

    Sessions that are never completed are reaped by the expiration sweeper
    once their abandonment deadline passes.
    """

    def __init__(
        self,
        file_repository: FileRecordRepository,
        group_repository: FileGroupRepository,
        session_repository: UploadSessionRepository,
        storage_repository: IObjectStorageRepository,
        limits: UploadLimits,
    ):
        """
        Initialize Upload Orchestrator with dependencies.

        Args:
            file_repository: Persistence for standalone files
            group_repository: Persistence for groups and their items
            session_repository: Registry of chunked upload sessions
            storage_repository: Object storage backend
            limits: Size ceilings and session lifetime
        """
        self.file_repository = file_repository
        self.group_repository = group_repository
        self.session_repository = session_repository
        self.storage_repository = storage_repository
        self.limits = limits

    # Groups

    def create_group(
        self,
        owner_id: str,
        name: str,
        declared_total_size: int,
        declared_item_count: int,
        group_type: Union[GroupType, str] = GroupType.ARCHIVE,
        expires_in_days: Optional[int] = None,
    ) -> FileGroup:
        """
        Register a group that items will be uploaded into.

        Raises:
            ValidationError: If the name is blank, the declared values are not
                positive, or the group type is unknown
        """
        name = _require_name(name)
        if declared_total_size is None or declared_total_size <= 0:
            raise ValidationError("declared_total_size must be positive")
        if declared_item_count is None or declared_item_count <= 0:
            raise ValidationError("declared_item_count must be positive")
        if not isinstance(group_type, GroupType):
            try:
                group_type = GroupType(group_type)
            except ValueError as e:
                raise ValidationError(f"Unknown group type: {group_type}", e) from e

        group = FileGroup(
            owner_id=owner_id,
            name=name,
            declared_total_size=int(declared_total_size),
            declared_item_count=int(declared_item_count),
            group_type=group_type,
            expires_at=expiry_from_days(expires_in_days),
        )
        group_id = self.group_repository.insert(group)
        logger.info(f"Created {group_type.value} group {group_id} for owner {owner_id}")
        return group.with_id(group_id)

    def _owned_group(self, owner_id: str, group_id: int) -> FileGroup:
        group = self.group_repository.get(group_id)
        if group is None:
            raise ResourceNotFoundError(f"Group {group_id} not found")
        if group.owner_id != owner_id:
            raise OwnershipViolationError(f"Group {group_id} belongs to another owner")
        return group

    # Direct uploads

    def put_direct(
        self,
        owner_id: str,
        name: str,
        data: bytes,
        content_type: Optional[str] = None,
        expires_in_days: Optional[int] = None,
    ) -> FileRecord:
        """
        Store a file in a single request.

        Raises:
            ValidationError: If the name is blank
            PayloadTooLargeError: If ``data`` exceeds the direct-upload ceiling
            AdapterFailureError: If the storage backend fails
        """
        name = _require_name(name)
        self._check_direct_size(data)
        content_type = _guess_content_type(name, content_type)

        key = storage_keys.file_key(owner_id, name)
        self.storage_repository.put(
            key, BytesIO(data), content_type, {"owner_id": str(owner_id), "name": name}
        )

        record = FileRecord(
            owner_id=owner_id,
            name=name,
            size=len(data),
            content_type=content_type,
            storage_key=key,
            expires_at=expiry_from_days(expires_in_days),
        )
        record_id = self.file_repository.insert(record)
        logger.info(f"Stored file {record_id} ({len(data)} bytes) at {key}")
        return record.with_id(record_id)

    def put_group_item(
        self,
        owner_id: str,
        group_id: int,
        name: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> FileGroupItem:
        """
        Store one group item in a single request.

        Raises:
            ResourceNotFoundError: If the group does not exist
            OwnershipViolationError: If the group belongs to another owner
            PayloadTooLargeError: If ``data`` exceeds the direct-upload ceiling
        """
        name = _require_name(name)
        group = self._owned_group(owner_id, group_id)
        self._check_direct_size(data)
        content_type = _guess_content_type(name, content_type)

        key = storage_keys.group_item_key(owner_id, group.id, name)
        self.storage_repository.put(
            key, BytesIO(data), content_type, {"owner_id": str(owner_id), "name": name}
        )

        item = FileGroupItem(
            group_id=group.id,
            name=name,
            size=len(data),
            content_type=content_type,
            storage_key=key,
        )
        item_id = self.group_repository.insert_item(item)
        return item.with_id(item_id)

    def _check_direct_size(self, data: bytes) -> None:
        limit = self.limits.max_direct_upload_bytes
        if len(data) > limit:
            raise PayloadTooLargeError(
                f"Upload of {len(data)} bytes exceeds the {limit} byte limit; use chunked upload",
                limit=limit,
                actual=len(data),
            )

    # Chunked uploads

    def init(
        self,
        owner_id: str,
        declared_name: str,
        declared_size: int,
        total_chunks: int,
        group_id: Optional[int] = None,
        content_type: Optional[str] = None,
        expires_in_days: Optional[int] = None,
    ) -> UploadSession:
        """
        Open a chunked upload.

        Args:
            owner_id: Principal performing the upload
            declared_name: Display name of the final file
            declared_size: Total size the client intends to upload
            total_chunks: Number of parts the client will send
            group_id: Group the resulting item belongs to, if any
            content_type: MIME type of the final file
            expires_in_days: Expiry stamped on the resulting file (ignored for
                group items, which live as long as their group)

        Returns:
            The registered UploadSession

        Raises:
            ValidationError: If the name is blank, the chunk count is out of
                range or the declared size is negative
            ResourceNotFoundError: If the target group does not exist
            OwnershipViolationError: If the target group belongs to another owner
        """
        name = _require_name(declared_name, "declared_name")
        if not isinstance(total_chunks, int) or isinstance(total_chunks, bool):
            raise ValidationError("total_chunks must be an integer")
        max_chunks = self.max_total_chunks
        if total_chunks < 1 or total_chunks > max_chunks:
            raise ValidationError(f"total_chunks must be between 1 and {max_chunks}")
        if declared_size is None or declared_size < 0:
            raise ValidationError("declared_size cannot be negative")
        content_type = _guess_content_type(name, content_type)

        if group_id is not None:
            group = self._owned_group(owner_id, group_id)
            key = storage_keys.group_item_key(owner_id, group.id, name)
            file_expires_at = None
        else:
            key = storage_keys.file_key(owner_id, name)
            file_expires_at = expiry_from_days(expires_in_days)

        upload_id = self.storage_repository.create_session(
            key, content_type, {"owner_id": str(owner_id), "name": name}
        )
        session = UploadSession.create(
            upload_id=upload_id,
            storage_key=key,
            owner_id=owner_id,
            name=name,
            declared_size=int(declared_size),
            total_chunks=total_chunks,
            content_type=content_type,
            abandon_after=timedelta(seconds=self.limits.session_ttl_seconds),
            group_id=group_id,
            file_expires_at=file_expires_at,
        )
        try:
            self.session_repository.save(session)
        except Exception:
            self.storage_repository.abort_session(key, upload_id)
            raise

        logger.info(
            f"Opened upload session {session.session_id} for {key} ({total_chunks} chunks)"
        )
        return session

    @property
    def max_total_chunks(self) -> int:
        """Configured chunk ceiling, lowered to what the storage backend can assemble."""
        backend_limit = self.storage_repository.max_parts
        if backend_limit is None:
            return self.limits.max_total_chunks
        return min(self.limits.max_total_chunks, backend_limit)

    def _load_session(self, session_id: str, owner_id: Optional[str]) -> UploadSession:
        session = self.session_repository.get(session_id)
        if session is None:
            raise ResourceNotFoundError(f"Upload session {session_id} not found")
        if owner_id is not None and session.owner_id != owner_id:
            raise OwnershipViolationError(
                f"Upload session {session_id} belongs to another owner"
            )
        return session

    def upload_part(
        self,
        session_id: str,
        part_number: int,
        data: bytes,
        owner_id: Optional[str] = None,
    ) -> UploadedPart:
        """
        Upload one chunk.

        Parts may arrive in any order; re-uploading a part number replaces it.

        Raises:
            ResourceNotFoundError: If the session is unknown
            OwnershipViolationError: If ``owner_id`` is given and differs
            ValidationError: If the session is terminal or the part number is
                outside ``1..total_chunks``
            PayloadTooLargeError: If the chunk exceeds the per-chunk ceiling
            AdapterFailureError: If the storage backend fails
        """
        session = self._load_session(session_id, owner_id)
        if not session.state.is_active():
            raise ValidationError(
                f"Upload session {session_id} is {session.state.value}"
            )
        if not isinstance(part_number, int) or not 1 <= part_number <= session.total_chunks:
            raise ValidationError(
                f"part_number must be between 1 and {session.total_chunks}"
            )
        limit = self.limits.max_chunk_bytes
        if len(data) > limit:
            raise PayloadTooLargeError(
                f"Chunk of {len(data)} bytes exceeds the {limit} byte limit",
                limit=limit,
                actual=len(data),
            )

        etag = self.storage_repository.upload_part(
            session.storage_key, session.upload_id, part_number, data
        )

        # Only the first part changes state, and only if complete() or abort()
        # has not moved the stored session on while the part was uploading
        if session.state == UploadState.CREATED:
            session.record_part()
            self.session_repository.save_if_state(session, UploadState.CREATED)

        return UploadedPart(part_number=part_number, etag=etag)

    def complete(
        self,
        session_id: str,
        parts: Iterable[Union[UploadedPart, dict]],
        final_name: Optional[str] = None,
        final_size: Optional[int] = None,
        owner_id: Optional[str] = None,
    ) -> Union[FileRecord, FileGroupItem]:
        """
        Assemble the uploaded parts and register the result.

        Args:
            session_id: Session returned by ``init``
            parts: Every ``(part_number, etag)`` pair, one per part 1..N
            final_name: Display name override
            final_size: Size to record (defaults to the declared size)
            owner_id: If given, must match the session owner

        Returns:
            The new FileRecord, or FileGroupItem for a group session

        Raises:
            IncompletePartSetError: If the part numbers are not exactly 1..N;
                nothing is written and the session stays open for a retry
            ResourceNotFoundError: If the target group is gone; the session is
                aborted and its parts discarded
            AdapterFailureError: If assembly fails; the session becomes failed
        """
        session = self._load_session(session_id, owner_id)
        if not session.state.is_active():
            raise ValidationError(
                f"Upload session {session_id} is {session.state.value}"
            )

        uploaded = [_coerce_part(part) for part in parts]
        self._check_part_set(session, uploaded)

        if session.group_id is not None and self.group_repository.get(session.group_id) is None:
            # The group was deleted or swept while parts were uploading
            self._discard(session)
            raise ResourceNotFoundError(
                f"Group {session.group_id} of upload session {session_id} no longer exists"
            )

        try:
            self.storage_repository.complete_session(
                session.storage_key, session.upload_id, uploaded
            )
        except AdapterFailureError:
            logger.error(
                f"Assembly of upload session {session_id} failed", exc_info=True
            )
            session.fail()
            self.session_repository.save(session)
            raise

        name = final_name.strip() if final_name and final_name.strip() else session.name
        size = int(final_size) if final_size is not None else session.declared_size

        if session.group_id is not None:
            item = FileGroupItem(
                group_id=session.group_id,
                name=name,
                size=size,
                content_type=session.content_type,
                storage_key=session.storage_key,
                created_at=utc_now(),
            )
            try:
                item_id = self.group_repository.insert_item(item)
            except ResourceNotFoundError:
                # Group purged between the check and assembly; its prefix is already gone
                self.storage_repository.delete(session.storage_key)
                session.fail()
                self.session_repository.save(session)
                raise
            result = item.with_id(item_id)
        else:
            record = FileRecord(
                owner_id=session.owner_id,
                name=name,
                size=size,
                content_type=session.content_type,
                storage_key=session.storage_key,
                created_at=utc_now(),
                expires_at=session.file_expires_at,
            )
            result = record.with_id(self.file_repository.insert(record))

        session.complete()
        self.session_repository.save(session)
        logger.info(f"Completed upload session {session_id} as {session.storage_key}")
        return result

    @staticmethod
    def _check_part_set(session: UploadSession, parts: list) -> None:
        numbers = [part.part_number for part in parts]
        expected = set(range(1, session.total_chunks + 1))
        counts = Counter(numbers)

        missing = expected - counts.keys()
        unexpected = counts.keys() - expected
        duplicated = {number for number, count in counts.items() if count > 1}

        if missing or unexpected or duplicated:
            raise IncompletePartSetError(
                f"Upload session {session.session_id} expects parts 1..{session.total_chunks}",
                missing=missing,
                unexpected=unexpected,
                duplicated=duplicated,
            )

    def abort(self, session_id: str, owner_id: Optional[str] = None) -> UploadSession:
        """
        Abandon a chunked upload and discard its parts.

        Aborting an aborted or failed session is a no-op.

        Raises:
            ResourceNotFoundError: If the session is unknown
            ValidationError: If the session already completed
        """
        session = self._load_session(session_id, owner_id)
        self._discard(session)
        return session

    def _discard(self, session: UploadSession) -> None:
        was_active = session.state.is_active()
        session.abort()
        self.storage_repository.abort_session(session.storage_key, session.upload_id)
        if was_active:
            self.session_repository.save(session)
            logger.info(f"Aborted upload session {session.session_id}")
