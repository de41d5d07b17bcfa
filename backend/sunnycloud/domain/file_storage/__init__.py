"""
File Storage Domain

Files, file groups and the object storage abstraction they live in.
"""

from .entities import FileGroup, FileGroupItem, FileRecord, GroupType, expiry_from_days, utc_now
from .repositories import FileGroupRepository, FileRecordRepository, StorageKeyConflictError
from .storage_repository import IObjectStorageRepository, StoredObject, UploadedPart

__all__ = [
    'FileRecord',
    'FileGroup',
    'FileGroupItem',
    'GroupType',
    'FileRecordRepository',
    'FileGroupRepository',
    'StorageKeyConflictError',
    'IObjectStorageRepository',
    'StoredObject',
    'UploadedPart',
    'expiry_from_days',
    'utc_now',
]
