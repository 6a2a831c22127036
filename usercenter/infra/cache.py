# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""缓存：本地开发用进程内实现，线上配置 REDIS_URL 走 Redis

值统一 JSON 序列化；ttl 单位秒，None 表示不过期。
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any, Dict, Optional, Protocol, Tuple

import redis

from usercenter.infra.config import Settings
from usercenter.infra.ylogger import cache_logger


class CacheBackend(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def exists(self, key: str) -> bool: ...

    def expire(self, key: str, ttl: int) -> bool: ...

    def incr(self, key: str, amount: int = 1) -> int: ...


class InMemoryCache:
    """进程内缓存（线程安全，过期惰性清理）"""

    def __init__(self) -> None:
        self._store: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    def _alive(self, key: str) -> Optional[Tuple[Any, Optional[float]]]:
        entry = self._store.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            self._store.pop(key, None)
            return None
        return entry

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._alive(key)
            return None if entry is None else json.loads(entry[0])

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        with self._lock:
            self._store[key] = (json.dumps(value), expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._alive(key) is not None

    def expire(self, key: str, ttl: int) -> bool:
        with self._lock:
            entry = self._alive(key)
            if entry is None:
                return False
            self._store[key] = (entry[0], time.monotonic() + ttl)
            return True

    def incr(self, key: str, amount: int = 1) -> int:
        with self._lock:
            entry = self._alive(key)
            current, expires_at = (0, None) if entry is None else (int(json.loads(entry[0])), entry[1])
            current += amount
            self._store[key] = (json.dumps(current), expires_at)
            return current

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


class RedisCache:
    def __init__(self, url: str, prefix: str = "") -> None:
        self._client = redis.Redis.from_url(url, decode_responses=True)
        self._prefix = prefix

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Any:
        raw = self._client.get(self._k(key))
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self._client.set(self._k(key), json.dumps(value), ex=ttl or None)

    def delete(self, key: str) -> None:
        self._client.delete(self._k(key))

    def exists(self, key: str) -> bool:
        return bool(self._client.exists(self._k(key)))

    def expire(self, key: str, ttl: int) -> bool:
        return bool(self._client.expire(self._k(key), ttl))

    def incr(self, key: str, amount: int = 1) -> int:
        return int(self._client.incrby(self._k(key), amount))


def build_cache(settings: Settings) -> CacheBackend:
    if settings.REDIS_URL:
        cache_logger().info("using redis cache", url=settings.REDIS_URL.split("@")[-1])
        return RedisCache(settings.REDIS_URL, prefix=f"{settings.APP_NAME}:")
    cache_logger().info("using in-memory cache")
    return InMemoryCache()
