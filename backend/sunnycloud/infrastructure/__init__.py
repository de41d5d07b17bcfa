"""Infrastructure layer for Redis, object storage and credentials."""

from .credential_directory import ConfiguredCredentialDirectory
from .local_object_storage_repository import LocalObjectStorageRepository
from .redis_file_repository import RedisFileGroupRepository, RedisFileRecordRepository
from .redis_repository import RedisConnectionManager, RedisRepository
from .redis_upload_session_repository import RedisUploadSessionRepository
from .storage_factory import StorageFactory

__all__ = [
    "RedisRepository",
    "RedisConnectionManager",
    "RedisFileRecordRepository",
    "RedisFileGroupRepository",
    "RedisUploadSessionRepository",
    "LocalObjectStorageRepository",
    "ConfiguredCredentialDirectory",
    "StorageFactory",
]
