"""
Redis Configuration

Connection settings for the metadata store and the module-level connection
manager shared by the API process and the Celery worker.
"""

import os
from typing import Optional

import redis

from sunnycloud.infrastructure.redis_repository import RedisConnectionManager, RedisRepository


class RedisConfig:
    """
    Redis configuration settings.

    ``REDIS_URL`` (``redis://[:password@]host:port/db``) overrides the
    individual host, port, db and password variables.
    """

    def __init__(self):
        self.host = os.getenv("REDIS_HOST", "localhost")
        self.port = int(os.getenv("REDIS_PORT", 6379))
        self.db = int(os.getenv("REDIS_DB", 0))
        self.password = os.getenv("REDIS_PASSWORD")
        self.max_connections = int(os.getenv("REDIS_MAX_CONNECTIONS", 20))
        # Keeps a request from hanging on an unreachable metadata store
        self.socket_timeout = float(os.getenv("REDIS_SOCKET_TIMEOUT", 5))
        # Namespace for every key this deployment writes
        self.key_prefix = os.getenv("REDIS_KEY_PREFIX", "sunnycloud")

        self.url = os.getenv("REDIS_URL")
        if self.url:
            params = redis.connection.parse_url(self.url)
            self.host = params.get("host", self.host)
            self.port = int(params.get("port", self.port))
            self.db = int(params.get("db", self.db))
            self.password = params.get("password", self.password)

    def describe(self) -> str:
        """Connection target for log lines; never includes the password."""
        auth = "***@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db} (prefix {self.key_prefix!r})"


_redis_manager: Optional[RedisConnectionManager] = None
_redis_config: Optional[RedisConfig] = None


def init_redis(config: Optional[RedisConfig] = None) -> RedisConnectionManager:
    """
    Create the shared connection manager.

    No connection is opened until the first command.
    """
    global _redis_manager, _redis_config

    _redis_config = config or RedisConfig()
    _redis_manager = RedisConnectionManager(
        host=_redis_config.host,
        port=_redis_config.port,
        db=_redis_config.db,
        password=_redis_config.password,
        max_connections=_redis_config.max_connections,
        socket_timeout=_redis_config.socket_timeout,
    )
    return _redis_manager


def get_redis_repository(key_prefix: Optional[str] = None) -> RedisRepository:
    """
    Build a repository on the shared connection.

    Args:
        key_prefix: Overrides the configured key prefix

    Raises:
        RuntimeError: If ``init_redis`` has not been called
    """
    if _redis_manager is None or _redis_config is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")

    prefix = _redis_config.key_prefix if key_prefix is None else key_prefix
    return RedisRepository(_redis_manager.client, prefix)


def redis_health_check() -> bool:
    """True if the metadata store answers a PING."""
    if _redis_manager is None:
        return False
    return _redis_manager.health_check()
