"""
GroupLedger - Cache Service

Redis-based cache for resolved FX rates shared across requests.

Cache failures never fail the caller: every operation logs a warning and
degrades to a cache miss.
"""

import json
import logging
import uuid
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Dict

import redis.asyncio as redis

from groupledger.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class CacheService:
    """Redis-based caching service."""

    # Cache key prefixes
    PREFIX_FX_RATE = "fx:rate"

    def __init__(self, redis_url: Optional[str] = None, ttl: Optional[int] = None):
        self.redis_url = redis_url or settings.redis_url
        self.ttl_fx_rate = ttl or settings.fx_cache_ttl_seconds
        self._client: Optional[redis.Redis] = None

    async def get_client(self) -> redis.Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def close(self):
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # GENERIC CACHE OPERATIONS
    # =========================================================================

    async def get(self, key: str) -> Optional[str]:
        """Get a value from cache."""
        try:
            client = await self.get_client()
            return await client.get(key)
        except Exception as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None

    async def set(
        self,
        key: str,
        value: str,
        ttl: Optional[int] = None,
    ) -> bool:
        """Set a value in cache with optional TTL."""
        try:
            client = await self.get_client()
            if ttl:
                await client.setex(key, ttl, value)
            else:
                await client.set(key, value)
            return True
        except Exception as e:
            logger.warning(f"Cache set failed for {key}: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a pattern."""
        try:
            client = await self.get_client()
            keys = []
            async for key in client.scan_iter(match=pattern):
                keys.append(key)
            if keys:
                return await client.delete(*keys)
            return 0
        except Exception as e:
            logger.warning(f"Cache delete_pattern failed for {pattern}: {e}")
            return 0

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Get a JSON value from cache."""
        value = await self.get(key)
        if value:
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON in cache for {key}")
        return None

    async def set_json(
        self,
        key: str,
        value: Dict[str, Any],
        ttl: Optional[int] = None,
    ) -> bool:
        """Set a JSON value in cache."""
        return await self.set(key, json.dumps(value, default=str), ttl)

    # =========================================================================
    # FX RATE CACHING
    # =========================================================================

    def _fx_rate_key(
        self,
        tenant_id: uuid.UUID,
        from_currency: str,
        to_currency: str,
        rate_date: date,
        preferred_type: str,
    ) -> str:
        """Generate cache key for a resolved FX rate."""
        return (
            f"{self.PREFIX_FX_RATE}:{tenant_id}:{from_currency}:{to_currency}:"
            f"{rate_date.isoformat()}:{preferred_type}"
        )

    async def get_fx_rate(
        self,
        tenant_id: uuid.UUID,
        from_currency: str,
        to_currency: str,
        rate_date: date,
        preferred_type: str,
    ) -> Optional[Dict[str, Any]]:
        """
        Get a cached resolution.

        Returns {"rate": Decimal, "rate_type": str, "rate_date": date} or None
        on a miss.
        """
        key = self._fx_rate_key(tenant_id, from_currency, to_currency, rate_date, preferred_type)
        data = await self.get_json(key)
        if not data:
            return None
        try:
            return {
                "rate": Decimal(data["rate"]),
                "rate_type": data["rate_type"],
                "rate_date": date.fromisoformat(data["rate_date"]),
            }
        except (KeyError, ValueError, InvalidOperation):
            logger.warning(f"Discarding malformed FX cache entry {key}")
            return None

    async def set_fx_rate(
        self,
        tenant_id: uuid.UUID,
        from_currency: str,
        to_currency: str,
        rate_date: date,
        preferred_type: str,
        rate: Decimal,
        rate_type: str,
        resolved_date: date,
    ) -> bool:
        """Cache a resolved FX rate."""
        key = self._fx_rate_key(tenant_id, from_currency, to_currency, rate_date, preferred_type)
        payload = {"rate": str(rate), "rate_type": rate_type, "rate_date": resolved_date.isoformat()}
        return await self.set_json(key, payload, self.ttl_fx_rate)

    async def invalidate_fx_rates(self, tenant_id: Optional[uuid.UUID] = None) -> int:
        """Invalidate cached FX rates for one tenant, or for everyone."""
        if tenant_id:
            pattern = f"{self.PREFIX_FX_RATE}:{tenant_id}:*"
        else:
            pattern = f"{self.PREFIX_FX_RATE}:*"
        return await self.delete_pattern(pattern)

    # =========================================================================
    # HEALTH
    # =========================================================================

    async def health_check(self) -> Dict[str, Any]:
        """Check Redis connectivity."""
        try:
            client = await self.get_client()
            await client.ping()
            return {"status": "healthy", "url": self.redis_url}
        except Exception as e:
            logger.warning(f"Cache health check failed: {e}")
            return {"status": "unhealthy", "error": str(e)}


# Global cache service instance
_cache_service: Optional[CacheService] = None


def get_cache_service() -> CacheService:
    """Get global cache service instance."""
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService()
    return _cache_service


async def close_cache_service():
    """Close global cache service."""
    global _cache_service
    if _cache_service:
        await _cache_service.close()
        _cache_service = None
