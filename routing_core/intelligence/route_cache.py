"""
Route Cache - two-tier cache of routing decisions.

Identical or near-identical requests reuse a recent decision instead of
re-running intent detection, the LLM fallback and skill resolution.

Keys:
- exact: first 16 hex chars of sha256("{org}:{normalized request}")
- fuzzy: "f:" + first 16 hex chars of sha256("{org}:{sorted content tokens}")

Tiers:
- L1: process-local dict, insertion-ordered, oldest 20% evicted when full
- L2: shared key-value cache (Valkey or Upstash), TTL-bound

Usage:
    ```python
    cache = RouteCache(RouteCacheConfig(), shared_cache=ValkeyClient(url))

    await cache.cache_route("org-1", "create a task", "create", ["linear"], 0.9, "pattern")
    route = await cache.get_cached_route("org-1", "please create the task")
    ```
"""

import hashlib
import json
import math
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from prometheus_client import Counter

from routing_core.config import Settings
from routing_core.services.cache import SharedCache

logger = structlog.get_logger(__name__)


ROUTE_CACHE_HITS = Counter(
    "routing_route_cache_hits_total",
    "Route cache hits by tier and key kind",
    ["tier", "kind"],
)

ROUTE_CACHE_MISSES = Counter(
    "routing_route_cache_misses_total",
    "Route cache lookups that found nothing",
)


STOP_WORDS = frozenset({
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "can", "shall", "to", "of", "in", "for",
    "on", "with", "at", "by", "from", "as", "into", "through", "during",
    "before", "after", "above", "below", "between", "and", "but", "or",
    "not", "no", "nor", "so", "yet", "both", "either", "neither",
    "this", "that", "these", "those", "it", "its", "i", "me", "my",
    "we", "our", "you", "your", "he", "she", "they", "them", "their",
    "please", "just", "also", "very", "really", "좀", "그", "이", "저",
})

EVICTION_FRACTION = 0.2

_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w\s]")


@dataclass
class CachedRoute:
    """A cached routing decision."""

    category: str
    skills: list[str]
    confidence: float
    method: str
    cached_at: str
    hit_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CachedRoute":
        return cls(
            category=data["category"],
            skills=[str(s) for s in data.get("skills", [])],
            confidence=float(data["confidence"]),
            method=data.get("method", "unknown"),
            cached_at=data.get("cached_at", ""),
            hit_count=int(data.get("hit_count", 0)),
        )


@dataclass
class RouteCacheConfig:
    """Route cache tuning."""

    ttl_seconds: int = 300
    max_memory_entries: int = 500
    min_confidence_to_cache: float = 0.6
    use_shared: bool = True
    key_prefix: str = "route_cache:"

    @classmethod
    def from_settings(cls, settings: Settings) -> "RouteCacheConfig":
        return cls(
            ttl_seconds=settings.route_cache_ttl_seconds,
            max_memory_entries=settings.route_cache_max_memory_entries,
            min_confidence_to_cache=settings.route_cache_min_confidence,
            use_shared=settings.route_cache_use_shared,
            key_prefix=settings.route_cache_key_prefix,
        )


def compute_exact_key(organization_id: str, request: str) -> str:
    """Hash of the org and the whitespace/case-normalized request."""
    normalized = _WHITESPACE_RE.sub(" ", request.strip().lower())
    digest = hashlib.sha256(f"{organization_id}:{normalized}".encode()).hexdigest()
    return digest[:16]


def fuzzy_tokens(request: str) -> list[str]:
    """Sorted content tokens: punctuation, one-char tokens and stop words removed."""
    cleaned = _NON_WORD_RE.sub("", request.lower())
    return sorted(t for t in cleaned.split() if len(t) > 1 and t not in STOP_WORDS)


def compute_fuzzy_key(organization_id: str, request: str) -> str | None:
    """Order- and stop-word-insensitive key for near-identical requests.

    Returns None when the request has no content tokens, so requests made
    only of stop words never share an entry.
    """
    tokens = fuzzy_tokens(request)
    if not tokens:
        return None
    joined = f"{organization_id}:{':'.join(tokens)}"
    return "f:" + hashlib.sha256(joined.encode()).hexdigest()[:16]


class RouteCache:
    """Two-tier cache of routing decisions.

    The shared tier is optional. Its failures are logged and swallowed so an
    unavailable cache only costs latency.
    """

    def __init__(
        self,
        config: Optional[RouteCacheConfig] = None,
        shared_cache: Optional[SharedCache] = None,
    ):
        self.config = config or RouteCacheConfig()
        self.shared_cache = shared_cache if self.config.use_shared else None
        self._memory: dict[str, CachedRoute] = {}
        self._log = logger.bind(component="route_cache")

    def _shared_key(self, key: str) -> str:
        return f"{self.config.key_prefix}{key}"

    def _evict_if_needed(self) -> None:
        if len(self._memory) < self.config.max_memory_entries:
            return

        to_evict = math.ceil(self.config.max_memory_entries * EVICTION_FRACTION)
        for key in list(self._memory)[:to_evict]:
            del self._memory[key]
        self._log.debug("Route cache evicted oldest entries", evicted=to_evict)

    def _remember(self, key: str, route: CachedRoute) -> None:
        self._evict_if_needed()
        self._memory[key] = route

    async def _shared_get(self, key: str) -> CachedRoute | None:
        raw = await self.shared_cache.get(self._shared_key(key))
        if not raw:
            return None
        return CachedRoute.from_dict(json.loads(raw))

    async def get_cached_route(self, organization_id: str, request: str) -> CachedRoute | None:
        """Look up a cached decision: local exact, local fuzzy, shared exact, shared fuzzy.

        Args:
            organization_id: Organization the request belongs to
            request: Raw request text

        Returns:
            CachedRoute with its hit count incremented, or None on miss
        """
        keys = [("exact", compute_exact_key(organization_id, request))]
        fuzzy_key = compute_fuzzy_key(organization_id, request)
        if fuzzy_key is not None:
            keys.append(("fuzzy", fuzzy_key))

        for kind, key in keys:
            route = self._memory.get(key)
            if route is not None:
                route.hit_count += 1
                ROUTE_CACHE_HITS.labels(tier="memory", kind=kind).inc()
                self._log.debug("Route cache hit", tier="memory", kind=kind, category=route.category)
                return route

        if self.shared_cache is not None:
            try:
                for kind, key in keys:
                    route = await self._shared_get(key)
                    if route is not None:
                        route.hit_count += 1
                        self._remember(key, route)
                        ROUTE_CACHE_HITS.labels(tier="shared", kind=kind).inc()
                        self._log.debug("Route cache hit", tier="shared", kind=kind, category=route.category)
                        return route
            except Exception as e:
                self._log.warning("Route cache shared lookup failed", error=str(e))

        ROUTE_CACHE_MISSES.inc()
        return None

    async def cache_route(
        self,
        organization_id: str,
        request: str,
        category: str,
        skills: list[str],
        confidence: float,
        method: str,
    ) -> bool:
        """Store a routing decision under both keys in both tiers.

        Returns:
            True if the route was cached, False if its confidence was too low
        """
        if confidence < self.config.min_confidence_to_cache:
            self._log.debug(
                "Route not cached (low confidence)",
                confidence=confidence,
                threshold=self.config.min_confidence_to_cache,
            )
            return False

        exact_key = compute_exact_key(organization_id, request)
        fuzzy_key = compute_fuzzy_key(organization_id, request)
        entry = CachedRoute(
            category=category,
            skills=[str(s) for s in skills],
            confidence=confidence,
            method=method,
            cached_at=datetime.now(timezone.utc).isoformat(),
        )

        self._remember(exact_key, entry)
        if fuzzy_key is not None:
            self._remember(fuzzy_key, CachedRoute(**entry.to_dict()))

        if self.shared_cache is not None:
            try:
                serialized = json.dumps(entry.to_dict(), ensure_ascii=False)
                await self.shared_cache.set(self._shared_key(exact_key), serialized, ex=self.config.ttl_seconds)
                if fuzzy_key is not None:
                    await self.shared_cache.set(self._shared_key(fuzzy_key), serialized, ex=self.config.ttl_seconds)
            except Exception as e:
                self._log.warning("Route cache shared write failed", error=str(e))

        self._log.debug("Route cached", exact_key=exact_key, fuzzy_key=fuzzy_key, category=category)
        return True

    async def invalidate_org_routes(self, organization_id: str) -> int:
        """Drop cached routes after an organization's routing config changes.

        Keys are hashes, so entries cannot be attributed to an organization:
        the whole local tier is cleared and every shared key under the prefix
        is deleted.

        Returns:
            Number of entries removed across both tiers
        """
        count = len(self._memory)
        self._memory.clear()

        if self.shared_cache is not None:
            try:
                count += await self.shared_cache.scan_delete(f"{self.config.key_prefix}*")
            except Exception as e:
                self._log.warning("Route cache shared invalidation failed", error=str(e))

        self._log.info("Route cache invalidated", organization_id=organization_id, entries_cleared=count)
        return count

    def get_stats(self) -> dict[str, Any]:
        """Local tier size, configuration and the ten most-hit entries."""
        top_hits = sorted(
            (
                {"key": key, "category": route.category, "hit_count": route.hit_count}
                for key, route in self._memory.items()
            ),
            key=lambda item: item["hit_count"],
            reverse=True,
        )[:10]

        return {
            "memory_entries": len(self._memory),
            "max_memory_entries": self.config.max_memory_entries,
            "ttl_seconds": self.config.ttl_seconds,
            "shared_enabled": self.shared_cache is not None,
            "top_hits": top_hits,
        }

    def clear(self) -> None:
        self._memory.clear()
