"""
Storage Factory

Factory for creating the object storage repository implementation.

The application layer stays decoupled from the concrete backend via the
``IObjectStorageRepository`` interface.
"""

import logging
from typing import Optional

from sunnycloud.config.storage_config import StorageConfig
from sunnycloud.domain.file_storage.storage_repository import IObjectStorageRepository
from sunnycloud.infrastructure.local_object_storage_repository import LocalObjectStorageRepository

logger = logging.getLogger(__name__)


class StorageFactory:
    """Factory that returns the configured object storage repository."""

    @staticmethod
    def create_storage(config: Optional[StorageConfig] = None) -> IObjectStorageRepository:
        """
        Create the object storage repository selected by configuration.

        Environment Variables:
            STORAGE_BACKEND: "local" (default) or "gcs"
            STORAGE_ROOT: Root directory for local storage (default: /tmp/sunnycloud)
            GCS_BUCKET_NAME: Bucket used by the gcs backend

        Raises:
            ValueError: If the backend name is unknown
            RuntimeError: If the backend cannot be initialized
        """
        config = config or StorageConfig()

        if config.backend == "local":
            return StorageFactory._create_local_storage(config)
        if config.backend == "gcs":
            return StorageFactory._create_gcs_storage(config)
        raise ValueError(f"Unknown storage backend: {config.backend}")

    @staticmethod
    def _create_local_storage(config: StorageConfig) -> IObjectStorageRepository:
        try:
            storage = LocalObjectStorageRepository(config.local_root)
        except OSError as e:
            raise RuntimeError(f"Failed to initialize local storage: {e}") from e
        logger.info(f"Storage factory: Using local filesystem storage at {config.local_root}")
        return storage

    @staticmethod
    def _create_gcs_storage(config: StorageConfig) -> IObjectStorageRepository:
        # Imported lazily so local deployments never touch GCS credentials
        from google.cloud import storage
        from google.oauth2 import service_account

        from sunnycloud.infrastructure.gcs_object_storage_repository import (
            GCSObjectStorageRepository,
        )

        if not config.bucket_name:
            raise RuntimeError("GCS_BUCKET_NAME must be set when STORAGE_BACKEND=gcs")

        if config.credentials_path:
            credentials = service_account.Credentials.from_service_account_file(
                config.credentials_path
            )
            client = storage.Client(credentials=credentials, project=credentials.project_id)
        else:
            client = storage.Client()

        logger.info(f"Storage factory: Using GCS bucket {config.bucket_name}")
        return GCSObjectStorageRepository(config.bucket_name, client=client)
