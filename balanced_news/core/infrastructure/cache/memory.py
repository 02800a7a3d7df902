"""进程内 LRU 缓存（快速层）。"""

from __future__ import annotations

import fnmatch
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from balanced_news.core.config import settings


@dataclass(frozen=True)
class CacheEntry:
    """单条缓存记录。"""

    key: str
    value: str
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class MemoryCache:
    """Thread-safe in-memory cache with TTL and LRU eviction.

    - get 命中时把条目移动到最近使用位置
    - set 在容量已满时先淘汰最久未使用的条目
    - 过期条目在查询时惰性删除，`cleanup()` 主动清理
    """

    def __init__(
        self,
        max_size: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size or settings.MEMORY_CACHE_MAX_SIZE
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: str, value: str, ttl_sec: int | None = None) -> None:
        expires_at = self._clock() + ttl_sec if ttl_sec else None
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_matching(self, pattern: str) -> int:
        """删除匹配 glob 模式的条目。"""
        with self._lock:
            matched = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
            for key in matched:
                del self._entries[key]
            return len(matched)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def cleanup(self) -> int:
        """清理所有已过期条目，返回清理数量。"""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def keys(self) -> list[str]:
        """按从最久未使用到最近使用的顺序返回 key。"""
        with self._lock:
            return list(self._entries.keys())

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        with self._lock:
            expired = sum(1 for e in self._entries.values() if e.is_expired(now))
            total = len(self._entries)
        return {
            "total": total,
            "active": total - expired,
            "expired": expired,
            "max_size": self.max_size,
        }
