"""
Storage Configuration

Object store backend selection and upload limits.
"""

import os

MIB = 1024 * 1024


class StorageConfig:
    """Object storage configuration settings."""

    def __init__(self):
        # "local" or "gcs"
        self.backend = os.getenv("STORAGE_BACKEND", "local").lower()
        self.local_root = os.getenv("STORAGE_ROOT", "/tmp/sunnycloud")
        self.bucket_name = os.getenv("GCS_BUCKET_NAME")
        self.credentials_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")

        # Size ceilings in bytes
        self.max_direct_upload_bytes = int(os.getenv("MAX_DIRECT_UPLOAD_BYTES", 100 * MIB))
        self.max_chunk_bytes = int(os.getenv("MAX_CHUNK_BYTES", 100 * MIB))
        self.max_total_chunks = int(os.getenv("MAX_TOTAL_CHUNKS", 10000))

        # Abandonment deadline for chunked upload sessions
        self.upload_session_ttl_seconds = int(
            os.getenv("UPLOAD_SESSION_TTL_SECONDS", 24 * 60 * 60)
        )
