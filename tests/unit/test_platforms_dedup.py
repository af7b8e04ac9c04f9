"""Unit tests for the dedup cache."""

import pytest

from inkbridge.platforms.dedup import DEFAULT_CAPACITY, DedupCache


class TestDedupCache:
    """Tests for DedupCache."""

    def test_first_sighting_is_new(self):
        """Test that an unseen ID is recorded and reported as new."""
        cache = DedupCache()

        assert cache.seen("m1") is False
        assert "m1" in cache
        assert len(cache) == 1

    def test_second_sighting_is_duplicate(self):
        """Test that a repeated ID is reported and not recorded twice."""
        cache = DedupCache()
        cache.seen("m1")

        assert cache.seen("m1") is True
        assert len(cache) == 1

    def test_default_capacity(self):
        """Test the default ceiling."""
        assert DedupCache().capacity == DEFAULT_CAPACITY == 2000

    def test_evicts_oldest_insertion(self):
        """Test that the oldest ID is evicted once capacity is exceeded."""
        cache = DedupCache(capacity=3)
        for message_id in ("a", "b", "c", "d"):
            cache.seen(message_id)

        assert len(cache) == 3
        assert "a" not in cache
        assert all(m in cache for m in ("b", "c", "d"))

    def test_repeat_does_not_refresh_position(self):
        """Test that seeing an ID again does not protect it from eviction."""
        cache = DedupCache(capacity=2)
        cache.seen("a")
        cache.seen("b")
        cache.seen("a")
        cache.seen("c")

        assert "a" not in cache
        assert cache.seen("a") is False

    def test_clear(self):
        """Test forgetting all IDs."""
        cache = DedupCache()
        cache.seen("a")
        cache.clear()

        assert len(cache) == 0
        assert cache.seen("a") is False

    def test_invalid_capacity(self):
        """Test that a capacity below one is rejected."""
        with pytest.raises(ValueError):
            DedupCache(capacity=0)
