"""
Fixtures for tests that need a live Redis.

Tests are skipped when Redis is not reachable at REDIS_HOST:REDIS_PORT.
Each test gets its own key prefix and its keys are removed afterwards.
"""

import os
import uuid

import pytest
import redis

from sunnycloud.infrastructure.redis_repository import RedisRepository


@pytest.fixture(scope="session")
def redis_client():
    client = redis.Redis(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", 6379)),
        db=int(os.getenv("REDIS_TEST_DB", 15)),
    )
    try:
        client.ping()
    except redis.ConnectionError:
        pytest.skip("Redis is not available")
    yield client
    client.close()


@pytest.fixture
def redis_repository(redis_client):
    prefix = f"sunnycloud-test-{uuid.uuid4().hex[:8]}"
    yield RedisRepository(redis_client, prefix)
    keys = list(redis_client.scan_iter(match=f"{prefix}:*"))
    if keys:
        redis_client.delete(*keys)
