"""
Local Object Storage Repository Implementation

Concrete implementation of IObjectStorageRepository for the local filesystem.
Blobs, their metadata sidecars and in-flight multipart sessions live in
separate trees under one root:

    <root>/objects/<key>              blob content
    <root>/.meta/<key>.json           content type and attributes
    <root>/.multipart/<session>/      session descriptor and part files

Every file is written to a temporary name and moved into place with
``os.replace`` so readers never observe a partial write.
"""

import hashlib
import json
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, List, Optional

from sunnycloud.domain.errors import AdapterFailureError
from sunnycloud.domain.file_storage.storage_repository import (
    DEFAULT_CONTENT_TYPE,
    IObjectStorageRepository,
    StoredObject,
    UploadedPart,
)

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024
_TMP_PREFIX = ".tmp-"


def _md5_file(path: Path) -> str:
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class LocalObjectStorageRepository(IObjectStorageRepository):
    """
    Local filesystem implementation of IObjectStorageRepository.

    Thread Safety:
        Part uploads to the same session write distinct temporary files and
        are moved into place atomically; the last upload of a part number wins.

    Attributes:
        base_path: Root directory of the store
    """

    def __init__(self, base_path: str = "/tmp/sunnycloud"):
        """
        Initialize the local object storage repository.

        Args:
            base_path: Root directory for the store (default: /tmp/sunnycloud)
        """
        self.base_path = Path(base_path)
        self.objects_path = self.base_path / "objects"
        self.meta_path = self.base_path / ".meta"
        self.multipart_path = self.base_path / ".multipart"
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """
        Create the store's directory trees.

        Raises:
            PermissionError: If insufficient permissions to create directories
            OSError: If directory creation fails for other reasons
        """
        try:
            for path in (self.objects_path, self.meta_path, self.multipart_path):
                path.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise PermissionError(
                f"Insufficient permissions to create storage directory: {self.base_path}"
            ) from e

    # Path helpers

    def _resolve_under(self, root: Path, relative: str) -> Path:
        if not relative or not relative.strip():
            raise ValueError("key cannot be empty")
        root = root.resolve()
        full_path = (root / relative).resolve()
        if full_path == root or root not in full_path.parents:
            raise ValueError(f"key escapes the storage root: {relative}")
        return full_path

    def _object_path(self, key: str) -> Path:
        return self._resolve_under(self.objects_path, key)

    def _meta_file(self, key: str) -> Path:
        return self._resolve_under(self.meta_path, f"{key}.json")

    def _session_dir(self, session_id: str) -> Path:
        if not session_id or "/" in session_id or "\\" in session_id or session_id.startswith("."):
            raise AdapterFailureError(f"Unknown multipart session: {session_id}")
        return self.multipart_path / session_id

    @staticmethod
    def _part_file(session_dir: Path, part_number: int) -> Path:
        return session_dir / f"part-{part_number:05d}"

    @staticmethod
    def _atomic_write(target: Path, chunks: Iterable[bytes]) -> int:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.parent / f"{_TMP_PREFIX}{uuid.uuid4().hex}"
        written = 0
        try:
            with open(tmp, "wb") as f:
                for chunk in chunks:
                    f.write(chunk)
                    written += len(chunk)
            os.replace(tmp, target)
        finally:
            if tmp.exists():
                tmp.unlink()
        return written

    @staticmethod
    def _stream_chunks(content: BinaryIO) -> Iterable[bytes]:
        while True:
            chunk = content.read(_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk

    def _write_meta(self, key: str, content_type: str, attributes: Optional[Dict[str, str]]) -> None:
        meta = {"content_type": content_type, "attributes": dict(attributes or {})}
        self._atomic_write(self._meta_file(key), [json.dumps(meta).encode("utf-8")])

    def _read_meta(self, key: str) -> dict:
        meta_file = self._meta_file(key)
        if not meta_file.is_file():
            return {"content_type": DEFAULT_CONTENT_TYPE, "attributes": {}}
        return json.loads(meta_file.read_text(encoding="utf-8"))

    # Blob operations

    def put(
        self,
        key: str,
        content: BinaryIO,
        content_type: str = DEFAULT_CONTENT_TYPE,
        attributes: Optional[Dict[str, str]] = None,
    ) -> None:
        target = self._object_path(key)
        try:
            self._atomic_write(target, self._stream_chunks(content))
            self._write_meta(key, content_type, attributes)
        except OSError as e:
            raise AdapterFailureError(f"Failed to store object {key}: {e}", e) from e

    def get(self, key: str) -> Optional[StoredObject]:
        try:
            path = self._object_path(key)
        except ValueError:
            return None
        try:
            if not path.is_file():
                return None
            meta = self._read_meta(key)
            body = open(path, "rb")
            return StoredObject(
                key=key,
                body=body,
                size=path.stat().st_size,
                content_type=meta.get("content_type", DEFAULT_CONTENT_TYPE),
                attributes=meta.get("attributes", {}),
            )
        except FileNotFoundError:
            # Deleted between the existence check and the open
            return None
        except (OSError, json.JSONDecodeError) as e:
            raise AdapterFailureError(f"Failed to read object {key}: {e}", e) from e

    def head(self, key: str) -> bool:
        try:
            return self._object_path(key).is_file()
        except ValueError:
            return False

    def delete(self, key: str) -> None:
        try:
            self._object_path(key).unlink(missing_ok=True)
            self._meta_file(key).unlink(missing_ok=True)
        except OSError as e:
            raise AdapterFailureError(f"Failed to delete object {key}: {e}", e) from e

    def list_keys(self, prefix: str) -> List[str]:
        root = self.objects_path.resolve()
        keys = []
        for path in root.rglob("*"):
            if not path.is_file() or path.name.startswith(_TMP_PREFIX):
                continue
            key = path.relative_to(root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    # Multipart sessions

    def create_session(
        self,
        key: str,
        content_type: str = DEFAULT_CONTENT_TYPE,
        attributes: Optional[Dict[str, str]] = None,
    ) -> str:
        self._object_path(key)  # validate before allocating anything
        session_id = uuid.uuid4().hex
        descriptor = {
            "key": key,
            "content_type": content_type,
            "attributes": dict(attributes or {}),
        }
        try:
            session_dir = self._session_dir(session_id)
            session_dir.mkdir(parents=True)
            self._atomic_write(
                session_dir / "session.json", [json.dumps(descriptor).encode("utf-8")]
            )
        except OSError as e:
            raise AdapterFailureError(f"Failed to open multipart session for {key}: {e}", e) from e
        return session_id

    def _load_session(self, key: str, session_id: str) -> dict:
        descriptor_file = self._session_dir(session_id) / "session.json"
        try:
            descriptor = json.loads(descriptor_file.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise AdapterFailureError(f"Unknown multipart session: {session_id}", e) from e
        except (OSError, json.JSONDecodeError) as e:
            raise AdapterFailureError(f"Unreadable multipart session {session_id}: {e}", e) from e
        if descriptor.get("key") != key:
            raise AdapterFailureError(f"Multipart session {session_id} is not bound to {key}")
        return descriptor

    def upload_part(self, key: str, session_id: str, part_number: int, data: bytes) -> str:
        if part_number < 1:
            raise AdapterFailureError(f"Invalid part number: {part_number}")
        self._load_session(key, session_id)
        try:
            self._atomic_write(self._part_file(self._session_dir(session_id), part_number), [data])
        except OSError as e:
            raise AdapterFailureError(
                f"Failed to store part {part_number} of session {session_id}: {e}", e
            ) from e
        return hashlib.md5(data).hexdigest()

    def complete_session(self, key: str, session_id: str, parts: Iterable[UploadedPart]) -> bool:
        descriptor = self._load_session(key, session_id)
        session_dir = self._session_dir(session_id)
        ordered = sorted(parts, key=lambda part: part.part_number)

        try:
            part_files = []
            for part in ordered:
                part_file = self._part_file(session_dir, part.part_number)
                if not part_file.is_file():
                    raise AdapterFailureError(
                        f"Part {part.part_number} of session {session_id} was never uploaded"
                    )
                if _md5_file(part_file) != part.etag:
                    raise AdapterFailureError(
                        f"Part {part.part_number} of session {session_id} does not match its etag"
                    )
                part_files.append(part_file)

            def assembled() -> Iterable[bytes]:
                for part_file in part_files:
                    with open(part_file, "rb") as f:
                        yield from self._stream_chunks(f)

            size = self._atomic_write(self._object_path(key), assembled())
            self._write_meta(key, descriptor["content_type"], descriptor["attributes"])
        except OSError as e:
            raise AdapterFailureError(f"Failed to assemble session {session_id}: {e}", e) from e

        shutil.rmtree(session_dir, ignore_errors=True)
        logger.info(f"Assembled {len(part_files)} parts ({size} bytes) into {key}")
        return True

    def abort_session(self, key: str, session_id: str) -> None:
        try:
            session_dir = self._session_dir(session_id)
        except AdapterFailureError:
            return
        try:
            if session_dir.exists():
                shutil.rmtree(session_dir)
        except OSError as e:
            raise AdapterFailureError(f"Failed to abort session {session_id}: {e}", e) from e
