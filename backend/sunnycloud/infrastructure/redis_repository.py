"""
Redis Repository Base Class

Provides JSON documents, id sequences, set-if-absent claims and sorted-set
indexes for metadata persistence. Implements the repository pattern for
Redis-based data storage.

Connection errors are logged and propagated: a metadata store outage must
never be mistaken for a missing record.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import redis
from redis.exceptions import ConnectionError as RedisConnectionError

logger = logging.getLogger(__name__)


def _decode(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class RedisRepository:
    """Base Redis repository with atomic primitives."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = ""):
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _make_key(self, key: str) -> str:
        """Create a prefixed key for Redis storage."""
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    def set_json(self, key: str, data: Dict[str, Any], ttl: Optional[int] = None) -> bool:
        """
        Set JSON data with optional TTL.

        Args:
            key: Redis key
            data: Dictionary to store as JSON
            ttl: Time to live in seconds

        Returns:
            True if successful
        """
        redis_key = self._make_key(key)
        json_data = json.dumps(data)
        try:
            if ttl:
                return bool(self.redis.setex(redis_key, ttl, json_data))
            return bool(self.redis.set(redis_key, json_data))
        except RedisConnectionError:
            logger.error(f"Redis unavailable while setting key {key}")
            raise

    def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Get JSON data from Redis.

        Returns:
            Dictionary if found and valid JSON, None otherwise
        """
        try:
            data = self.redis.get(self._make_key(key))
        except RedisConnectionError:
            logger.error(f"Redis unavailable while reading key {key}")
            raise

        if data is None:
            return None

        try:
            return json.loads(_decode(data))
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt JSON stored at key {key}: {e}")
            return None

    def compare_and_set_json(
        self, key: str, field: str, expected: str, data: Dict[str, Any]
    ) -> bool:
        """
        Replace a JSON document only while ``document[field] == expected``.

        The read and the write run in one Lua script so no other client can
        change the document in between.

        Returns:
            True if the document was replaced
        """
        lua_script = """
        local data = redis.call('GET', KEYS[1])
        if not data then
            return 0
        end
        if cjson.decode(data)[ARGV[1]] ~= ARGV[2] then
            return 0
        end
        redis.call('SET', KEYS[1], ARGV[3])
        return 1
        """
        try:
            result = self.redis.eval(
                lua_script, 1, self._make_key(key), field, expected, json.dumps(data)
            )
        except RedisConnectionError:
            logger.error(f"Redis unavailable while updating key {key}")
            raise
        return result == 1

    def get_many_json(self, keys: List[str]) -> List[Optional[Dict[str, Any]]]:
        """Fetch several JSON documents in one round trip."""
        if not keys:
            return []
        raw = self.redis.mget([self._make_key(key) for key in keys])
        results = []
        for key, data in zip(keys, raw):
            if data is None:
                results.append(None)
                continue
            try:
                results.append(json.loads(_decode(data)))
            except json.JSONDecodeError as e:
                logger.error(f"Corrupt JSON stored at key {key}: {e}")
                results.append(None)
        return results

    def next_id(self, sequence: str) -> int:
        """Atomically allocate the next integer id of a sequence."""
        return int(self.redis.incr(self._make_key(f"seq:{sequence}")))

    def set_if_absent(self, key: str, value: str) -> bool:
        """
        Claim a key.

        Returns:
            True if the key was created, False if it already existed
        """
        return bool(self.redis.set(self._make_key(key), value, nx=True))

    def get_value(self, key: str) -> Optional[str]:
        data = self.redis.get(self._make_key(key))
        return None if data is None else _decode(data)

    def delete(self, *keys: str) -> int:
        """
        Delete keys from Redis.

        Returns:
            Number of keys that existed and were deleted
        """
        if not keys:
            return 0
        return int(self.redis.delete(*[self._make_key(key) for key in keys]))

    def exists(self, key: str) -> bool:
        return self.redis.exists(self._make_key(key)) > 0

    def index_add(self, index: str, member: str, score: float) -> None:
        """Add or move a member in a sorted-set index."""
        self.redis.zadd(self._make_key(index), {member: score})

    def index_remove(self, index: str, *members: str) -> None:
        if members:
            self.redis.zrem(self._make_key(index), *members)

    def index_range(self, index: str, max_score: float) -> List[str]:
        """Members with a score at or below ``max_score``, lowest first."""
        members = self.redis.zrangebyscore(self._make_key(index), "-inf", max_score)
        return [_decode(member) for member in members]

    def set_add(self, key: str, *members: str) -> None:
        if members:
            self.redis.sadd(self._make_key(key), *members)

    def set_members(self, key: str) -> List[str]:
        return [_decode(member) for member in self.redis.smembers(self._make_key(key))]

    def set_remove(self, key: str, *members: str) -> None:
        if members:
            self.redis.srem(self._make_key(key), *members)


class RedisConnectionManager:
    """Manages Redis connection with connection pooling."""

    def __init__(self, host: str = 'localhost', port: int = 6379, db: int = 0,
                 password: Optional[str] = None, max_connections: int = 20,
                 decode_responses: bool = False, socket_timeout: Optional[float] = None):
        self.connection_pool = redis.ConnectionPool(
            host=host,
            port=port,
            db=db,
            password=password,
            max_connections=max_connections,
            decode_responses=decode_responses,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            retry_on_timeout=True,
            socket_keepalive=True,
            socket_keepalive_options={}
        )
        self._client = None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client instance with connection pooling."""
        if self._client is None:
            self._client = redis.Redis(connection_pool=self.connection_pool)
        return self._client

    def health_check(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False

    def close(self):
        """Close the connection pool."""
        if self.connection_pool:
            self.connection_pool.disconnect()
