"""
Application Factory

Creates and configures Flask application with all dependencies.
This factory pattern improves testability by allowing dependency injection
and configuration overrides.
"""

import logging
import os
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS

from sunnycloud.application.auth_service import AuthService
from sunnycloud.application.dependency_container import DependencyContainer
from sunnycloud.application.download_service import DownloadResolver
from sunnycloud.application.expiration_sweeper import ExpirationSweeper
from sunnycloud.application.file_service import FileService
from sunnycloud.application.upload_service import UploadLimits, UploadOrchestrator
from sunnycloud.config.celery_config import make_celery
from sunnycloud.config.logging_config import setup_logging
from sunnycloud.config.redis_config import (
    RedisConfig,
    get_redis_repository,
    init_redis,
    redis_health_check,
)
from sunnycloud.config.storage_config import StorageConfig
from sunnycloud.domain.access_tokens import CapabilityTokenService
from sunnycloud.domain.file_storage.repositories import FileGroupRepository, FileRecordRepository
from sunnycloud.domain.file_storage.storage_repository import IObjectStorageRepository
from sunnycloud.domain.identity import CredentialDirectory
from sunnycloud.domain.uploads.repositories import UploadSessionRepository
from sunnycloud.infrastructure.credential_directory import ConfiguredCredentialDirectory
from sunnycloud.infrastructure.redis_file_repository import (
    RedisFileGroupRepository,
    RedisFileRecordRepository,
)
from sunnycloud.infrastructure.redis_upload_session_repository import (
    RedisUploadSessionRepository,
)
from sunnycloud.infrastructure.storage_factory import StorageFactory

logger = logging.getLogger("sunnycloud.app")


class AppConfig:
    """Application configuration."""

    def __init__(self):
        self.api_version = os.getenv("API_VERSION", "v1")
        self.flask_env = os.getenv("FLASK_ENV", "development")
        self.is_production = self.flask_env == "production"

        # Shared secret for POST /admin/cleanup; unset disables the endpoint
        self.admin_key = os.getenv("ADMIN_KEY", "")
        # HMAC key for capability tokens; a random one is generated if unset
        self.secret_key = os.getenv("SECRET_KEY")

        # Link prefixes
        self.site_url = os.getenv("SITE_URL", "")
        self.api_base_url = os.getenv("API_BASE_URL", f"/api/{self.api_version}")

        self.cors_origins = os.getenv("CORS_ORIGINS", "*")


def create_app(
    config: Optional[AppConfig] = None,
    container: Optional[DependencyContainer] = None,
) -> Flask:
    """
    Create and configure Flask application.

    Args:
        config: Application configuration, uses default if None
        container: Prebuilt DependencyContainer (tests); built from the
            environment if None

    Returns:
        Configured Flask application
    """
    if config is None:
        config = AppConfig()

    setup_logging()

    # Create Flask app
    app = Flask(__name__)
    app.config["ADMIN_KEY"] = config.admin_key

    # Configure CORS
    CORS(
        app,
        resources={
            r"/*": {
                "origins": config.cors_origins,
                "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
                "allow_headers": ["Content-Type", "Authorization", "X-Admin-Key"],
                "expose_headers": ["Content-Type", "Content-Disposition", "Content-Length"],
                "max_age": 3600,
            }
        },
    )

    # Initialize infrastructure
    _initialize_infrastructure(app)

    # Initialize services
    if container is None:
        container = _build_container(config)
    app.container = container
    logger.info(f"Application services initialized ({len(container)} registrations)")

    # Register blueprints
    _register_blueprints(app, config)

    # Register health check endpoint
    _register_health_endpoint(app)

    return app


def _initialize_infrastructure(app: Flask) -> None:
    """
    Initialize infrastructure components (Redis, Celery).

    Neither connects eagerly, so the app starts even while Redis is down;
    ``/health`` reports the outage.
    """
    redis_config = RedisConfig()
    init_redis(redis_config)
    logger.info(f"Redis initialized for {redis_config.describe()}")

    app.celery = make_celery(app)
    logger.info("Celery initialized")


def _build_container(config: AppConfig) -> DependencyContainer:
    """
    Wire repositories and services into a DependencyContainer.

    This is the single dependency injection pattern of the application: the
    API and the Celery tasks resolve services from ``app.container``.

    Args:
        config: Application configuration

    Returns:
        Populated DependencyContainer
    """
    container = DependencyContainer()
    storage_config = StorageConfig()

    # Infrastructure adapters
    redis_repo = get_redis_repository()
    file_repository = RedisFileRecordRepository(redis_repo)
    group_repository = RedisFileGroupRepository(redis_repo)
    session_repository = RedisUploadSessionRepository(redis_repo)
    storage_repository = StorageFactory.create_storage(storage_config)
    credential_directory = ConfiguredCredentialDirectory.from_env()

    container.register_singleton(FileRecordRepository, file_repository)
    container.register_singleton(FileGroupRepository, group_repository)
    container.register_singleton(UploadSessionRepository, session_repository)
    container.register_singleton(IObjectStorageRepository, storage_repository)
    container.register_singleton(CredentialDirectory, credential_directory)

    # Domain services
    token_service = CapabilityTokenService(config.secret_key)
    container.register_singleton(CapabilityTokenService, token_service)

    # Application services
    file_service = FileService(file_repository, group_repository, storage_repository)
    container.register_singleton(FileService, file_service)

    container.register_singleton(
        UploadOrchestrator,
        UploadOrchestrator(
            file_repository,
            group_repository,
            session_repository,
            storage_repository,
            UploadLimits.from_config(storage_config),
        ),
    )
    container.register_singleton(
        DownloadResolver,
        DownloadResolver(
            token_service,
            file_repository,
            group_repository,
            storage_repository,
            api_base_url=config.api_base_url,
            site_url=config.site_url,
        ),
    )
    container.register_singleton(
        ExpirationSweeper,
        ExpirationSweeper(
            file_repository,
            group_repository,
            session_repository,
            storage_repository,
            file_service,
        ),
    )
    container.register_singleton(
        AuthService, AuthService(credential_directory, token_service)
    )

    return container


def _register_blueprints(app: Flask, config: AppConfig) -> None:
    """
    Register API blueprints.

    Args:
        app: Flask application
        config: Application configuration
    """
    from sunnycloud.api.v1 import api_v1_bp

    app.register_blueprint(api_v1_bp)

    logger.info(
        f"API {config.api_version} registered at /api/{config.api_version} "
        f"with Swagger UI at /api/{config.api_version}/docs"
    )


def _get_health_status(app: Flask) -> tuple[dict, int]:
    """
    Get health status of all system components.

    Args:
        app: Flask application instance

    Returns:
        Tuple of (health_status_dict, http_status_code)
    """
    health_status = {
        "status": "ok",
        "message": "backend ready",
        "redis": "unknown",
        "celery": "unknown",
    }

    # Check Redis connectivity
    if redis_health_check():
        health_status["redis"] = "connected"
    else:
        health_status["redis"] = "disconnected"
        health_status["status"] = "degraded"

    # Check Celery availability
    if getattr(app, "celery", None) is not None:
        health_status["celery"] = "available"
    else:
        health_status["celery"] = "unavailable"
        health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code


def _register_health_endpoint(app: Flask) -> None:
    """
    Register health check endpoint.

    Args:
        app: Flask application
    """

    @app.route("/health", methods=["GET"])
    def health():
        """
        Health check endpoint.
        Returns overall health status of the application and its dependencies.
        """
        health_status, status_code = _get_health_status(app)
        return jsonify(health_status), status_code
