"""
Test fixtures package.

Provides in-memory repository implementations for testing.
"""

from .mock_repositories import (
    MockFileGroupRepository,
    MockFileRecordRepository,
    MockObjectStorageRepository,
    MockUploadSessionRepository,
    create_repositories,
)

__all__ = [
    "MockFileRecordRepository",
    "MockFileGroupRepository",
    "MockUploadSessionRepository",
    "MockObjectStorageRepository",
    "create_repositories",
]
