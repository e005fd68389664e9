"""
Shared key-value cache clients with a common async interface.

Backends (fastest to slowest):
1. Valkey (Redis protocol) - 1-5ms, in-cluster
2. Upstash Redis (REST API) - 10-30ms, full Redis command set over HTTPS

Both expose get/set/delete with TTL, pattern scan-and-delete and hash
get/set. Every method swallows backend errors and returns an empty value so
that cache unavailability degrades performance, never correctness.
"""

import logging
from typing import Any, Optional, Protocol

import httpx
import redis.asyncio as redis

from routing_core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class SharedCache(Protocol):
    """Interface the routing layer needs from a shared key-value cache."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ex: int = 300) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def scan_delete(self, pattern: str) -> int: ...

    async def hget(self, name: str, field: str) -> str | None: ...

    async def hset(self, name: str, field: str, value: str) -> bool: ...

    async def ping(self) -> bool: ...


# =============================================================================
# Valkey Client (Redis-compatible)
# =============================================================================


class ValkeyClient:
    """Valkey (Redis-compatible) cache client."""

    def __init__(self, url: str, max_connections: int = 10):
        """Initialize Valkey client.

        Args:
            url: Redis-compatible URL (e.g., redis://:password@host:port)
            max_connections: Connection pool size
        """
        self.url = url
        self.max_connections = max_connections
        self._pool: redis.ConnectionPool | None = None
        self._client: redis.Redis | None = None

    async def _get_client(self) -> redis.Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._pool = redis.ConnectionPool.from_url(
                self.url,
                max_connections=self.max_connections,
                decode_responses=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)
        return self._client

    async def get(self, key: str) -> str | None:
        """Get a value from Valkey."""
        try:
            client = await self._get_client()
            return await client.get(key)
        except Exception as e:
            logger.warning(f"Valkey get exception: {e}")
            return None

    async def set(self, key: str, value: str, ex: int = 300) -> bool:
        """Set a value in Valkey with TTL."""
        try:
            client = await self._get_client()
            await client.set(key, value, ex=ex)
            return True
        except Exception as e:
            logger.warning(f"Valkey set exception: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete a value from Valkey."""
        try:
            client = await self._get_client()
            await client.delete(key)
            return True
        except Exception as e:
            logger.warning(f"Valkey delete exception: {e}")
            return False

    async def scan_delete(self, pattern: str) -> int:
        """Delete every key matching a glob pattern using SCAN + DEL.

        Returns:
            Number of keys deleted
        """
        try:
            client = await self._get_client()
            deleted = 0
            cursor = 0
            while True:
                cursor, keys = await client.scan(cursor=cursor, match=pattern, count=100)
                if keys:
                    await client.delete(*keys)
                    deleted += len(keys)
                if cursor == 0:
                    break
            return deleted
        except Exception as e:
            logger.warning(f"Valkey scan_delete exception: {e}")
            return 0

    async def hget(self, name: str, field: str) -> str | None:
        """Get a hash field from Valkey."""
        try:
            client = await self._get_client()
            return await client.hget(name, field)
        except Exception as e:
            logger.warning(f"Valkey hget exception: {e}")
            return None

    async def hset(self, name: str, field: str, value: str) -> bool:
        """Set a hash field in Valkey."""
        try:
            client = await self._get_client()
            await client.hset(name, field, value)
            return True
        except Exception as e:
            logger.warning(f"Valkey hset exception: {e}")
            return False

    async def ping(self) -> bool:
        """Check if Valkey is reachable."""
        try:
            client = await self._get_client()
            return await client.ping()
        except Exception:
            return False

    async def close(self):
        """Close the Redis client."""
        if self._client:
            await self._client.close()
            self._client = None
        if self._pool:
            await self._pool.disconnect()
            self._pool = None


# =============================================================================
# Upstash Redis Client (REST API)
# =============================================================================


class UpstashRedisClient:
    """Upstash Redis REST API client.

    REST API format: POST {url} with a JSON array of command args.
    Response format: {"result": <value>}
    """

    def __init__(self, rest_url: str, rest_token: str, timeout: float = 10.0):
        """Initialize Upstash Redis client.

        Args:
            rest_url: Upstash REST URL (e.g., https://xxx.upstash.io)
            rest_token: Upstash REST API token
            timeout: HTTP timeout in seconds
        """
        self.rest_url = rest_url.rstrip("/")
        self.rest_token = rest_token
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    def _get_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.rest_token}",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _execute(self, *args: str) -> Any:
        """Execute a Redis command via REST API.

        Args:
            *args: Redis command and arguments (e.g., "GET", "mykey")

        Returns:
            The result from the response
        """
        client = await self._get_client()
        response = await client.post(
            self.rest_url,
            headers=self._get_headers(),
            json=list(args),
        )
        if response.status_code == 200:
            data = response.json()
            return data.get("result")
        logger.warning(f"Upstash error: {response.status_code} - {response.text}")
        return None

    async def get(self, key: str) -> str | None:
        """Get a value from Upstash Redis."""
        try:
            return await self._execute("GET", key)
        except Exception as e:
            logger.warning(f"Upstash get exception: {e}")
            return None

    async def set(self, key: str, value: str, ex: int = 300) -> bool:
        """Set a value in Upstash Redis with TTL."""
        try:
            result = await self._execute("SET", key, value, "EX", str(ex))
            return result == "OK"
        except Exception as e:
            logger.warning(f"Upstash set exception: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete a value from Upstash Redis."""
        try:
            result = await self._execute("DEL", key)
            return result is not None and result > 0
        except Exception as e:
            logger.warning(f"Upstash delete exception: {e}")
            return False

    async def scan_delete(self, pattern: str) -> int:
        """Delete every key matching a glob pattern using SCAN + DEL."""
        try:
            deleted = 0
            cursor = "0"
            while True:
                result = await self._execute("SCAN", cursor, "MATCH", pattern, "COUNT", "100")
                if not result:
                    break
                cursor, keys = str(result[0]), result[1]
                if keys:
                    removed = await self._execute("DEL", *keys)
                    deleted += int(removed or 0)
                if cursor == "0":
                    break
            return deleted
        except Exception as e:
            logger.warning(f"Upstash scan_delete exception: {e}")
            return 0

    async def hget(self, name: str, field: str) -> str | None:
        """Get a hash field from Upstash Redis."""
        try:
            return await self._execute("HGET", name, field)
        except Exception as e:
            logger.warning(f"Upstash hget exception: {e}")
            return None

    async def hset(self, name: str, field: str, value: str) -> bool:
        """Set a hash field in Upstash Redis."""
        try:
            result = await self._execute("HSET", name, field, value)
            return result is not None
        except Exception as e:
            logger.warning(f"Upstash hset exception: {e}")
            return False

    async def ping(self) -> bool:
        """Check if Upstash Redis is reachable."""
        try:
            result = await self._execute("PING")
            return result == "PONG"
        except Exception:
            return False

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


def create_shared_cache(settings: Optional[Settings] = None) -> SharedCache | None:
    """Build the shared cache client configured in settings.

    Valkey is preferred when a URL is configured, Upstash otherwise.

    Returns:
        A cache client, or None when no backend is configured.
    """
    settings = settings or get_settings()

    if settings.valkey_url:
        logger.info("Valkey client initialized")
        return ValkeyClient(url=settings.valkey_url)

    if settings.upstash_redis_rest_url and settings.upstash_redis_rest_token:
        logger.info("Upstash Redis client initialized")
        return UpstashRedisClient(
            rest_url=settings.upstash_redis_rest_url,
            rest_token=settings.upstash_redis_rest_token.get_secret_value(),
        )

    logger.debug("No shared cache configured - route cache runs local-only")
    return None
