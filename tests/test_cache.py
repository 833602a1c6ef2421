"""Tests for the content-addressed cache."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from depsync.cache import CacheKey, ContentCache, hash_string
from depsync.settings import Settings


@pytest.fixture
def key():
    """Cache key for a package build."""
    return CacheKey("dplyr", "1.1.4", hash_string("dplyr-1.1.4"))


class TestHashString:
    """Test content hashing."""

    def test_sha256_hex(self):
        """Hashes are 64 lowercase hex characters and stable."""
        digest = hash_string("abc")
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        assert hash_string("abc") == digest


class TestContentCache:
    """Test ContentCache fetch deduplication."""

    def test_fetch_then_hit(self, tmp_path, key):
        """The first request fetches; later requests reuse the entry."""
        cache = ContentCache(tmp_path)
        calls = []

        def fetch(k, target):
            calls.append(k)
            target.mkdir()
            (target / "DESCRIPTION").write_text("Package: dplyr\n", encoding="utf-8")

        first = cache.get_or_fetch(key, fetch)
        second = cache.get_or_fetch(key, fetch)

        assert first == second == cache.path_for(key)
        assert cache.contains(key)
        assert len(calls) == 1
        assert cache.stats()["hits"] == 1
        assert cache.stats()["fetches"] == 1

    def test_concurrent_requests_share_one_fetch(self, tmp_path, key):
        """Simultaneous requests for the same key run the fetch once."""
        cache = ContentCache(tmp_path)
        started = threading.Event()
        release = threading.Event()
        calls = []

        def fetch(k, target):
            calls.append(k)
            started.set()
            release.wait(5)
            target.write_text("built", encoding="utf-8")

        with ThreadPoolExecutor(max_workers=4) as pool:
            owner = pool.submit(cache.get_or_fetch, key, fetch)
            assert started.wait(5)
            waiters = [pool.submit(cache.get_or_fetch, key, fetch) for _ in range(3)]
            while cache.stats()["waits"] < 3:
                threading.Event().wait(0.005)
            release.set()
            paths = {owner.result()} | {w.result() for w in waiters}

        assert len(calls) == 1
        assert paths == {cache.path_for(key)}
        assert cache.stats()["in_flight"] == 0

    def test_failed_fetch_not_cached(self, tmp_path, key):
        """A failing fetch leaves nothing behind and can be retried."""
        cache = ContentCache(tmp_path)

        def broken(k, target):
            target.write_text("partial", encoding="utf-8")
            raise OSError("download interrupted")

        with pytest.raises(OSError):
            cache.get_or_fetch(key, broken)
        assert not cache.contains(key)

        def working(k, target):
            target.write_text("ok", encoding="utf-8")

        path = cache.get_or_fetch(key, working)
        assert path.read_text(encoding="utf-8") == "ok"

    def test_distinct_hashes_are_distinct_entries(self, tmp_path, key):
        """Same name and version with another hash is another entry."""
        cache = ContentCache(tmp_path)
        other = CacheKey(key.name, key.version, hash_string("rebuilt"))
        assert cache.path_for(key) != cache.path_for(other)

    def test_relocated_entry_is_reused(self, tmp_path, key):
        """A path returned by fetch is served again without refetching."""
        cache = ContentCache(tmp_path / "cache")
        elsewhere = tmp_path / "store" / "dplyr"
        calls = []

        def fetch(k, target):
            calls.append(k)
            elsewhere.mkdir(parents=True)
            return str(elsewhere)

        assert cache.get_or_fetch(key, fetch) == elsewhere
        assert cache.get_or_fetch(key, fetch) == elsewhere
        assert cache.contains(key)
        assert len(calls) == 1
        assert not cache.path_for(key).exists()

    def test_from_settings_uses_cache_dir(self, tmp_path):
        """The cache root comes from the configured cache directory."""
        cache = ContentCache.from_settings(Settings(cache_dir=str(tmp_path / "pkgcache")))
        assert cache.root == tmp_path / "pkgcache"
