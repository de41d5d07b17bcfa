"""
Google Cloud Storage Repository Implementation

Concrete implementation of IObjectStorageRepository for Google Cloud Storage.

GCS has no multipart primitive with client-chosen part numbers, so parts are
uploaded as temporary blobs under ``_multipart/<session>/`` and completion
composes them into the destination. A compose request accepts at most 32
sources; longer uploads are folded into the destination batch by batch.
A composite object is limited to 1024 components, which caps the number
of parts per upload.
"""

import base64
import hashlib
import json
import logging
import uuid
from typing import Dict, Iterable, List, Optional, BinaryIO

from google.cloud import storage
from google.cloud.exceptions import GoogleCloudError, NotFound

from sunnycloud.domain.errors import AdapterFailureError
from sunnycloud.domain.file_storage.storage_repository import (
    DEFAULT_CONTENT_TYPE,
    IObjectStorageRepository,
    StoredObject,
    UploadedPart,
)

logger = logging.getLogger(__name__)

MULTIPART_PREFIX = "_multipart/"
COMPOSE_BATCH_SIZE = 32
# A composite object may be built from at most this many components
MAX_COMPOSITE_COMPONENTS = 1024


class GCSObjectStorageRepository(IObjectStorageRepository):
    """
    Google Cloud Storage implementation of IObjectStorageRepository.

    Thread Safety:
        This implementation is thread-safe. The GCS client handles concurrent
        operations safely.

    Attributes:
        bucket_name: Name of the GCS bucket for object storage
        client: Google Cloud Storage client instance
        bucket: GCS bucket object
    """

    max_parts = MAX_COMPOSITE_COMPONENTS

    def __init__(self, bucket_name: str, client: Optional[storage.Client] = None):
        """
        Initialize the GCS storage repository.

        Args:
            bucket_name: Name of the GCS bucket to use for storage
            client: Preconfigured client (defaults to ambient credentials)

        Raises:
            ValueError: If bucket_name is empty
        """
        if not bucket_name or not bucket_name.strip():
            raise ValueError("bucket_name cannot be empty")

        self.bucket_name = bucket_name
        self.client = client or storage.Client()
        self.bucket = self.client.bucket(bucket_name)

    @staticmethod
    def _validate_key(key: str) -> None:
        if not key or not key.strip():
            raise ValueError("key cannot be empty")
        if key.startswith(MULTIPART_PREFIX):
            raise ValueError(f"key is reserved for multipart scratch data: {key}")

    @staticmethod
    def _session_prefix(session_id: str) -> str:
        return f"{MULTIPART_PREFIX}{session_id}/"

    def _part_blob(self, session_id: str, part_number: int):
        return self.bucket.blob(f"{self._session_prefix(session_id)}part-{part_number:05d}")

    # Blob operations

    def put(
        self,
        key: str,
        content: BinaryIO,
        content_type: str = DEFAULT_CONTENT_TYPE,
        attributes: Optional[Dict[str, str]] = None,
    ) -> None:
        self._validate_key(key)
        try:
            blob = self.bucket.blob(key)
            blob.metadata = dict(attributes or {})
            if hasattr(content, "seek"):
                content.seek(0)
            blob.upload_from_file(content, content_type=content_type)
        except GoogleCloudError as e:
            raise AdapterFailureError(f"Failed to store object {key} in GCS: {e}", e) from e

    def get(self, key: str) -> Optional[StoredObject]:
        if not key or not key.strip():
            return None
        try:
            blob = self.bucket.get_blob(key)
            if blob is None:
                return None
            return StoredObject(
                key=key,
                body=blob.open("rb"),
                size=blob.size or 0,
                content_type=blob.content_type or DEFAULT_CONTENT_TYPE,
                attributes=dict(blob.metadata or {}),
            )
        except NotFound:
            return None
        except GoogleCloudError as e:
            raise AdapterFailureError(f"Failed to read object {key} from GCS: {e}", e) from e

    def head(self, key: str) -> bool:
        if not key or not key.strip():
            return False
        try:
            return self.bucket.blob(key).exists()
        except GoogleCloudError as e:
            raise AdapterFailureError(f"Failed to check object {key} in GCS: {e}", e) from e

    def delete(self, key: str) -> None:
        try:
            self.bucket.blob(key).delete()
        except NotFound:
            # Idempotent
            pass
        except GoogleCloudError as e:
            raise AdapterFailureError(f"Failed to delete object {key} from GCS: {e}", e) from e

    def list_keys(self, prefix: str) -> List[str]:
        try:
            names = [blob.name for blob in self.client.list_blobs(self.bucket, prefix=prefix)]
        except GoogleCloudError as e:
            raise AdapterFailureError(f"Failed to list objects under {prefix}: {e}", e) from e
        return sorted(name for name in names if not name.startswith(MULTIPART_PREFIX))

    # Multipart sessions

    def create_session(
        self,
        key: str,
        content_type: str = DEFAULT_CONTENT_TYPE,
        attributes: Optional[Dict[str, str]] = None,
    ) -> str:
        self._validate_key(key)
        session_id = uuid.uuid4().hex
        descriptor = {
            "key": key,
            "content_type": content_type,
            "attributes": dict(attributes or {}),
        }
        try:
            self.bucket.blob(f"{self._session_prefix(session_id)}session.json").upload_from_string(
                json.dumps(descriptor), content_type="application/json"
            )
        except GoogleCloudError as e:
            raise AdapterFailureError(f"Failed to open multipart session for {key}: {e}", e) from e
        return session_id

    def _load_session(self, key: str, session_id: str) -> dict:
        try:
            blob = self.bucket.get_blob(f"{self._session_prefix(session_id)}session.json")
            if blob is None:
                raise AdapterFailureError(f"Unknown multipart session: {session_id}")
            descriptor = json.loads(blob.download_as_bytes())
        except GoogleCloudError as e:
            raise AdapterFailureError(f"Unreadable multipart session {session_id}: {e}", e) from e
        if descriptor.get("key") != key:
            raise AdapterFailureError(f"Multipart session {session_id} is not bound to {key}")
        return descriptor

    def upload_part(self, key: str, session_id: str, part_number: int, data: bytes) -> str:
        if part_number < 1:
            raise AdapterFailureError(f"Invalid part number: {part_number}")
        self._load_session(key, session_id)
        try:
            self._part_blob(session_id, part_number).upload_from_string(
                data, content_type=DEFAULT_CONTENT_TYPE
            )
        except GoogleCloudError as e:
            raise AdapterFailureError(
                f"Failed to store part {part_number} of session {session_id}: {e}", e
            ) from e
        return hashlib.md5(data).hexdigest()

    def complete_session(self, key: str, session_id: str, parts: Iterable[UploadedPart]) -> bool:
        descriptor = self._load_session(key, session_id)
        ordered = sorted(parts, key=lambda part: part.part_number)
        if len(ordered) > self.max_parts:
            raise AdapterFailureError(
                f"Session {session_id} has {len(ordered)} parts; at most {self.max_parts} can be composed"
            )

        try:
            sources = []
            for part in ordered:
                blob = self.bucket.get_blob(self._part_blob(session_id, part.part_number).name)
                if blob is None:
                    raise AdapterFailureError(
                        f"Part {part.part_number} of session {session_id} was never uploaded"
                    )
                stored_md5 = base64.b64decode(blob.md5_hash).hex() if blob.md5_hash else None
                if stored_md5 != part.etag:
                    raise AdapterFailureError(
                        f"Part {part.part_number} of session {session_id} does not match its etag"
                    )
                sources.append(blob)

            destination = self.bucket.blob(key)
            destination.content_type = descriptor["content_type"]
            destination.metadata = descriptor["attributes"]

            # First batch creates the destination; later batches append to it
            destination.compose(sources[:COMPOSE_BATCH_SIZE])
            remaining = sources[COMPOSE_BATCH_SIZE:]
            while remaining:
                batch = remaining[:COMPOSE_BATCH_SIZE - 1]
                remaining = remaining[COMPOSE_BATCH_SIZE - 1:]
                destination.compose([destination] + batch)
        except GoogleCloudError as e:
            raise AdapterFailureError(f"Failed to compose session {session_id}: {e}", e) from e

        try:
            self._delete_session_blobs(session_id)
        except GoogleCloudError:
            # The destination is already durable; stray parts only cost storage
            logger.warning(
                f"Could not remove temporary parts of session {session_id}", exc_info=True
            )
        logger.info(f"Composed {len(sources)} parts into gs://{self.bucket_name}/{key}")
        return True

    def _delete_session_blobs(self, session_id: str) -> None:
        for blob in self.client.list_blobs(self.bucket, prefix=self._session_prefix(session_id)):
            try:
                blob.delete()
            except NotFound:
                pass

    def abort_session(self, key: str, session_id: str) -> None:
        try:
            self._delete_session_blobs(session_id)
        except GoogleCloudError as e:
            raise AdapterFailureError(f"Failed to abort session {session_id}: {e}", e) from e
