"""Tests for the in-process LRU cache."""

from balanced_news.core.infrastructure.cache import MemoryCache


def test_get_returns_stored_value() -> None:
    cache = MemoryCache(max_size=3)
    cache.set("a", "1")
    assert cache.get("a") == "1"
    assert cache.get("missing") is None


def test_full_cache_evicts_least_recently_used(fake_clock) -> None:
    cache = MemoryCache(max_size=2, clock=fake_clock)
    cache.set("a", "1")
    cache.set("b", "2")
    # 访问 a 之后 b 成为最久未使用
    assert cache.get("a") == "1"

    cache.set("c", "3")

    assert cache.get("b") is None
    assert cache.get("a") == "1"
    assert cache.get("c") == "3"
    assert cache.size() == 2


def test_overwrite_does_not_evict_and_refreshes_recency() -> None:
    cache = MemoryCache(max_size=2)
    cache.set("a", "1")
    cache.set("b", "2")
    cache.set("a", "updated")

    assert cache.keys() == ["b", "a"]
    cache.set("c", "3")
    assert cache.keys() == ["a", "c"]
    assert cache.get("a") == "updated"


def test_entries_expire_after_ttl(fake_clock) -> None:
    cache = MemoryCache(max_size=10, clock=fake_clock)
    cache.set("short", "x", ttl_sec=10)
    cache.set("forever", "y")

    fake_clock.advance(9)
    assert cache.get("short") == "x"

    fake_clock.advance(1)
    assert cache.get("short") is None
    assert cache.get("forever") == "y"


def test_cleanup_and_stats(fake_clock) -> None:
    cache = MemoryCache(max_size=10, clock=fake_clock)
    cache.set("a", "1", ttl_sec=5)
    cache.set("b", "2", ttl_sec=5)
    cache.set("c", "3", ttl_sec=60)
    fake_clock.advance(6)

    assert cache.stats() == {"total": 3, "active": 1, "expired": 2, "max_size": 10}
    assert cache.cleanup() == 2
    assert cache.keys() == ["c"]


def test_delete_matching_and_clear() -> None:
    cache = MemoryCache(max_size=10)
    cache.set("feed:0.100:0.200", "a")
    cache.set("feed:-0.500:0.000", "b")
    cache.set("article:x", "c")

    assert cache.delete_matching("feed:*") == 2
    assert cache.keys() == ["article:x"]
    assert cache.delete("article:x") is True
    assert cache.delete("article:x") is False

    cache.set("k", "v")
    assert cache.clear() == 1
    assert cache.size() == 0
