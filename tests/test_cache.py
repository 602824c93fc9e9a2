"""Tests for the filesystem response cache."""

import json

import pytest

from feedlyclient.cache import DEFAULT_TTL, ResponseCache, cache_key, ttl_for

PATH = "/v3/entities/nlp%2Ff%2Fentity%2Fgz%3Avuln%3Acve-2026-0001"


@pytest.fixture
def cache(tmp_path, clock):
    return ResponseCache(tmp_path / "cache", clock)


def test_key_depends_on_path_and_body():
    assert len(cache_key(PATH)) == 16
    assert cache_key(PATH) == cache_key(PATH, None)
    assert cache_key(PATH) != cache_key(PATH, '{"query": "x"}')
    assert cache_key("/v3/a") != cache_key("/v3/b")


def test_ttl_by_category():
    assert ttl_for("search").total_seconds() == 30 * 60
    assert ttl_for("threat-actor").days == 7
    assert ttl_for("not-a-category") == DEFAULT_TTL


class TestGetAndSet:
    def test_entry_is_written_under_category(self, cache, tmp_path):
        cache.set("cve-entity", PATH, {"id": "CVE-2026-0001"})
        entry_path = tmp_path / "cache" / "cve-entity" / f"{cache_key(PATH)}.json"
        entry = json.loads(entry_path.read_text())
        assert entry["data"] == {"id": "CVE-2026-0001"}
        assert entry["endpoint"] == PATH
        assert entry["expires_at"].startswith("2026-03-15T10:30:00")

    def test_live_until_ttl_passes(self, cache, clock):
        cache.set("trending", PATH, [1, 2])
        clock.advance(minutes=60)
        assert cache.get("trending", PATH) == [1, 2]
        clock.advance(seconds=1)
        assert cache.get("trending", PATH) is None

    def test_stale_survives_expiry(self, cache, clock):
        cache.set("search", PATH, {"hits": 3})
        clock.advance(hours=5)
        assert cache.get("search", PATH) is None
        assert cache.get_stale("search", PATH) == {"hits": 3}

    def test_miss_returns_none(self, cache):
        assert cache.get("trending", PATH) is None
        assert cache.get_stale("trending", PATH) is None

    def test_corrupt_entry_is_dropped(self, cache, tmp_path):
        entry_path = tmp_path / "cache" / "trending" / f"{cache_key(PATH)}.json"
        entry_path.parent.mkdir(parents=True)
        entry_path.write_text("{not json")
        assert cache.get_stale("trending", PATH) is None
        assert not entry_path.exists()


class TestMaintenance:
    def test_stats_counts_without_deleting(self, cache, clock):
        cache.set("search", "/v3/search?q=a", {})
        clock.advance(hours=1)
        cache.set("trending", PATH, {})
        cache.set("cve-entity", PATH, {})

        stats = cache.stats()
        assert stats.total_entries == 3
        assert stats.expired == 1
        assert stats.live == 2
        assert stats.by_category == {"cve-entity": 1, "search": 1, "trending": 1}
        assert cache.get_stale("search", "/v3/search?q=a") == {}

    def test_purge_removes_expired_and_corrupt(self, cache, clock, tmp_path):
        cache.set("search", "/v3/search?q=a", {})
        clock.advance(hours=1)
        cache.set("trending", PATH, {})
        (tmp_path / "cache" / "trending" / "broken.json").write_text("[")

        result = cache.purge_expired()
        assert result.purged == 2
        assert result.remaining == 1
        assert cache.get_stale("search", "/v3/search?q=a") is None
        assert cache.get("trending", PATH) == {}

    def test_empty_cache_dir(self, cache):
        assert cache.purge_expired().purged == 0
        assert cache.stats().total_entries == 0
