"""
Redis cache service, keyed per salon.
Cache failures never break a request: reads fall back to the loader.
"""

import logging
import json
from typing import Any, Optional, Callable, Dict
from datetime import datetime, date
from decimal import Decimal

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask

logger = logging.getLogger(__name__)


class CacheService:
    """
    Redis-backed cache with one namespace per tenant.

    Keys pattern: {prefix}:tenant:{tenant_id}:{module}:{key}
    """

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self._enabled: bool = False
        self._prefix: str = 'salonhub'
        self._default_ttl: int = 60

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Connect to Redis using the app config. Disables itself when unreachable."""
        self._enabled = app.config.get('CACHE_ENABLED', True)
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'salonhub')
        self._default_ttl = app.config.get('CACHE_DEFAULT_TTL', 60)
        redis_url = app.config.get('REDIS_URL', 'redis://localhost:6379/0')

        if not self._enabled:
            logger.info("[CACHE] Cache is disabled via config")
            return

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[CACHE] Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[CACHE] Redis connection failed: {e}. Cache disabled.")
            self._enabled = False
            self.client = None

    @property
    def enabled(self) -> bool:
        return self._enabled and self.client is not None

    def _build_key(self, tenant_id: int, module: str, key: str) -> str:
        return f"{self._prefix}:tenant:{tenant_id}:{module}:{key}"

    def _serialize(self, value: Any) -> str:
        def default_handler(obj: Any) -> Any:
            if isinstance(obj, (datetime, date)):
                return obj.isoformat()
            if isinstance(obj, Decimal):
                return {'__decimal__': str(obj)}
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
        return json.dumps(value, default=default_handler)

    def _deserialize(self, value: str) -> Any:
        def object_hook(dct: Dict[str, Any]) -> Any:
            if '__decimal__' in dct:
                return Decimal(dct['__decimal__'])
            return dct
        return json.loads(value, object_hook=object_hook)

    def get(self, tenant_id: int, module: str, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            value = self.client.get(self._build_key(tenant_id, module, key))
            if value is None:
                return None
            return self._deserialize(value)
        except (RedisError, json.JSONDecodeError) as e:
            logger.warning(f"[CACHE] Get error: {e}")
            return None

    def set(self, tenant_id: int, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.setex(
                self._build_key(tenant_id, module, key),
                ttl or self._default_ttl,
                self._serialize(value)
            )
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Set error: {e}")
            return False

    def invalidate_module(self, tenant_id: int, module: str) -> int:
        """Delete every cached key of a tenant module."""
        if not self.enabled:
            return 0
        pattern = self._build_key(tenant_id, module, '*')
        try:
            deleted = 0
            for key in self.client.scan_iter(match=pattern, count=100):
                deleted += self.client.delete(key)
            if deleted:
                logger.info(f"[CACHE] INVALIDATE: {pattern} ({deleted} keys)")
            return deleted
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate error: {e}")
            return 0

    def memoize(self, tenant_id: int, module: str, key: str, loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Cache-aside: return the cached value or load, store and return it."""
        cached = self.get(tenant_id, module, key)
        if cached is not None:
            return cached
        value = loader_fn()
        self.set(tenant_id, module, key, value, ttl)
        return value


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> CacheService:
    """Initialize the cache service for the app."""
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service
    return _cache_service


def get_cache() -> Optional[CacheService]:
    """Cache service of the running app, or None before init_cache."""
    return _cache_service
