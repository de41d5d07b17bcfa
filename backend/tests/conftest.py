"""
Shared pytest fixtures and configuration for the SunnyCloud backend test suite.

This module provides:
- Hypothesis configuration for property-based testing
- A controllable clock and token service
- In-memory repositories wired into the application services
"""

from datetime import datetime, timezone

import pytest
from hypothesis import HealthCheck, Phase, settings

from sunnycloud.application.download_service import DownloadResolver
from sunnycloud.application.expiration_sweeper import ExpirationSweeper
from sunnycloud.application.file_service import FileService
from sunnycloud.application.upload_service import UploadLimits, UploadOrchestrator
from sunnycloud.domain.access_tokens import CapabilityTokenService
from tests.fixtures.mock_repositories import create_repositories

# Register Hypothesis profiles
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.target, Phase.shrink],
)
settings.register_profile(
    "ci",
    max_examples=200,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)
settings.load_profile("default")

OWNER = "alice"
OTHER_OWNER = "bob"

# 2024-01-15T12:00:00Z
FIXED_EPOCH = 1705320000


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, epoch: int = FIXED_EPOCH):
        self.epoch = epoch

    def __call__(self) -> int:
        return self.epoch

    def advance(self, seconds: int) -> None:
        self.epoch += seconds

    def datetime(self) -> datetime:
        return datetime.fromtimestamp(self.epoch, tz=timezone.utc)


# =============================================================================
# Token Fixtures
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_service(clock) -> CapabilityTokenService:
    """Token service with a fixed secret and a controllable clock."""
    return CapabilityTokenService("test-secret-key", clock=clock)


# =============================================================================
# Repository Fixtures
# =============================================================================

@pytest.fixture
def repositories():
    return create_repositories()


@pytest.fixture
def file_repository(repositories):
    return repositories[0]


@pytest.fixture
def group_repository(repositories):
    return repositories[1]


@pytest.fixture
def session_repository(repositories):
    return repositories[2]


@pytest.fixture
def storage_repository(repositories):
    return repositories[3]


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def limits() -> UploadLimits:
    """Small ceilings so tests can exceed them cheaply."""
    return UploadLimits(
        max_direct_upload_bytes=1024,
        max_chunk_bytes=256,
        max_total_chunks=16,
        session_ttl_seconds=3600,
    )


@pytest.fixture
def orchestrator(file_repository, group_repository, session_repository, storage_repository, limits):
    return UploadOrchestrator(
        file_repository, group_repository, session_repository, storage_repository, limits
    )


@pytest.fixture
def resolver(token_service, file_repository, group_repository, storage_repository):
    return DownloadResolver(
        token_service,
        file_repository,
        group_repository,
        storage_repository,
        api_base_url="/api/v1",
        site_url="https://sunny.example",
    )


@pytest.fixture
def file_service(file_repository, group_repository, storage_repository):
    return FileService(file_repository, group_repository, storage_repository)


@pytest.fixture
def sweeper(file_repository, group_repository, session_repository, storage_repository, file_service):
    return ExpirationSweeper(
        file_repository, group_repository, session_repository, storage_repository, file_service
    )


# =============================================================================
# Pytest Configuration Hooks
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (require external services)"
    )
    config.addinivalue_line(
        "markers", "contract: Contract tests (verify interface compliance)"
    )
    config.addinivalue_line(
        "markers", "property: Property-based tests using Hypothesis"
    )


def pytest_collection_modifyitems(config, items):
    """
    Automatically mark tests based on their location.

    - tests/unit/* -> @pytest.mark.unit
    - tests/integration/* -> @pytest.mark.integration
    - tests/contracts/* -> @pytest.mark.contract
    - tests/property/* -> @pytest.mark.property
    """
    for item in items:
        test_path = str(item.fspath)

        if "/unit/" in test_path or "\\unit\\" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path or "\\integration\\" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/contracts/" in test_path or "\\contracts\\" in test_path:
            item.add_marker(pytest.mark.contract)
        elif "/property/" in test_path or "\\property\\" in test_path:
            item.add_marker(pytest.mark.property)
