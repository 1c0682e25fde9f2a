from datetime import timedelta

import pytest

from conftest import FakeClock
from studynotes.cache import ChapterCache
from studynotes.models import Request


def make_request(chapter: str, depth: str = "intermediate") -> Request:
    return Request(board="FBISE", class_level=11, subject="Physics", chapter_name=chapter, depth_level=depth)


def test_cache_key_is_case_and_whitespace_normalized():
    first = Request("FBISE", 11, "Physics", "Vectors and  Equilibrium")
    second = Request("fbise", 11, "PHYSICS", "vectors and equilibrium")
    assert first.cache_key == second.cache_key
    assert first.cache_key != make_request("Vectors and Equilibrium", depth="basic").cache_key


def test_insert_beyond_capacity_evicts_least_recently_accessed():
    clock = FakeClock()
    cache = ChapterCache(max_entries=3, clock=clock)
    for chapter in ("A", "B", "C"):
        cache.set(make_request(chapter), chapter.lower())
        clock.advance(seconds=1)
    assert cache.get(make_request("A")) == "a"
    clock.advance(seconds=1)

    cache.set(make_request("D"), "d")

    assert len(cache) == 3
    assert not cache.contains(make_request("B"))
    assert cache.contains(make_request("A"))
    assert cache.contains(make_request("D"))


def test_resetting_existing_key_at_capacity_does_not_evict():
    clock = FakeClock()
    cache = ChapterCache(max_entries=2, clock=clock)
    cache.set(make_request("A"), 1)
    cache.set(make_request("B"), 2)
    cache.set(make_request("A"), 3)
    assert len(cache) == 2
    assert cache.get(make_request("A")) == 3
    assert cache.get(make_request("B")) == 2


def test_get_after_expiry_returns_none_and_removes_entry():
    clock = FakeClock()
    cache = ChapterCache(max_entries=5, ttl=timedelta(hours=24), clock=clock)
    cache.set(make_request("A"), "payload")
    clock.advance(hours=24)
    assert cache.get(make_request("A")) is None
    assert len(cache) == 0
    assert cache.misses == 1


def test_hit_updates_access_statistics():
    clock = FakeClock()
    cache = ChapterCache(clock=clock)
    cache.set(make_request("A"), "a")
    cache.set(make_request("B"), "b")
    cache.get(make_request("B"))
    cache.get(make_request("B"))
    cache.get(make_request("missing"))

    stats = cache.stats()
    assert stats["count"] == 2
    assert stats["hits"] == 2
    assert stats["misses"] == 1
    assert stats["most_accessed_key"] == make_request("B").cache_key
    assert stats["oldest_key"] == make_request("A").cache_key
    assert stats["approx_size_bytes"] > 0


def test_purge_expired_removes_only_expired_entries():
    clock = FakeClock()
    cache = ChapterCache(ttl=timedelta(hours=1), clock=clock)
    cache.set(make_request("old"), 1)
    clock.advance(minutes=45)
    cache.set(make_request("new"), 2)
    clock.advance(minutes=30)
    assert cache.purge_expired() == 1
    assert cache.keys() == [make_request("new").cache_key]


def test_remove_clear_and_configure():
    clock = FakeClock()
    cache = ChapterCache(max_entries=4, clock=clock)
    for chapter in ("A", "B", "C", "D"):
        cache.set(make_request(chapter), chapter)
        clock.advance(seconds=1)
    assert cache.remove(make_request("A")) is True
    assert cache.remove(make_request("A")) is False

    cache.configure(max_entries=2)
    assert sorted(cache.keys()) == sorted([make_request("C").cache_key, make_request("D").cache_key])
    assert cache.clear() == 2
    assert cache.stats()["count"] == 0
    with pytest.raises(ValueError):
        cache.configure(max_entries=0)
