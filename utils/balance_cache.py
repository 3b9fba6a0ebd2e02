"""
Read cache for balance snapshots
"""
import logging
import time
from typing import Dict, Optional, Tuple

import redis

from config.settings import settings
from models.ledger import BalanceSnapshot

logger = logging.getLogger(__name__)


def cache_key(user_id: str) -> str:
    return f"balance:{user_id}"


class BalanceCache:
    """
    Snapshot cache keyed by user id.

    Backed by Redis when REDIS_URL is set, otherwise by an in-process dict.
    Entries expire after ttl_seconds and are deleted by the ledger after
    every committed balance write. Redis failures degrade to a cache miss.

    Invalidation reaches only this process and the shared Redis keys: a
    snapshot another process read before a write committed can be served
    until its TTL runs out.
    """

    def __init__(self, redis_url: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds or settings.balance_cache_ttl_seconds
        self._local: Dict[str, Tuple[float, str]] = {}
        self._next_sweep = 0.0
        self._redis = None
        if redis_url:
            # Parse Redis URL (supports redis:// and redis://:password@host:port)
            self._redis = redis.from_url(redis_url, decode_responses=True)
            logger.info("Balance cache using Redis")
        else:
            logger.info("REDIS_URL not set. Balance cache is in-process.")

    @classmethod
    def from_settings(cls) -> "BalanceCache":
        return cls(redis_url=settings.redis_url, ttl_seconds=settings.balance_cache_ttl_seconds)

    def get(self, user_id: str) -> Optional[BalanceSnapshot]:
        key = cache_key(user_id)
        raw = None
        if self._redis is not None:
            try:
                raw = self._redis.get(key)
            except redis.RedisError as e:
                logger.warning(f"Redis cache get failed for key '{key}': {e}")
                return None
        else:
            entry = self._local.get(key)
            if entry is not None:
                expires_at, raw = entry
                if expires_at <= time.monotonic():
                    self._local.pop(key, None)
                    raw = None
        if raw is None:
            return None
        return BalanceSnapshot.model_validate_json(raw)

    def set(self, snapshot: BalanceSnapshot) -> None:
        key = cache_key(snapshot.user_id)
        value = snapshot.model_dump_json()
        if self._redis is not None:
            try:
                self._redis.setex(key, self.ttl_seconds, value)
            except redis.RedisError as e:
                logger.warning(f"Redis cache set failed for key '{key}': {e}. Result not cached.")
            return
        now = time.monotonic()
        if now >= self._next_sweep:
            self._sweep(now)
        self._local[key] = (now + self.ttl_seconds, value)

    def _sweep(self, now: float) -> None:
        """Drop expired in-process entries; runs at most once per TTL."""
        expired = [key for key, (expires_at, _) in self._local.items() if expires_at <= now]
        for key in expired:
            del self._local[key]
        self._next_sweep = now + self.ttl_seconds

    def invalidate(self, user_id: str) -> None:
        key = cache_key(user_id)
        if self._redis is not None:
            try:
                self._redis.delete(key)
            except redis.RedisError as e:
                logger.warning(f"Redis cache delete failed for key '{key}': {e}")
            return
        self._local.pop(key, None)

    def clear(self) -> None:
        """Drop every in-process entry."""
        self._local.clear()
