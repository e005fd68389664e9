"""Services module for external key-value cache backends."""

from routing_core.services.cache import (
    SharedCache,
    UpstashRedisClient,
    ValkeyClient,
    create_shared_cache,
)

__all__ = [
    "SharedCache",
    "UpstashRedisClient",
    "ValkeyClient",
    "create_shared_cache",
]
