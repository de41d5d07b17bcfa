"""
Uploads Domain

Registry of chunked upload sessions and their lifecycle.
"""

from .entities import UploadSession
from .repositories import UploadSessionRepository
from .value_objects import UploadState

__all__ = [
    'UploadSession',
    'UploadSessionRepository',
    'UploadState',
]
