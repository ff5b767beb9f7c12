"""Unit tests for AggregateCache."""

from unittest.mock import patch

from poster.src.AggregateCache import AggregateCache
from poster.src.Observation import AggregateEntry


def entry(value: float, computed_at: float, key: str = "X") -> AggregateEntry:
    return AggregateEntry(key=key, value=value, computed_at=computed_at, source_record_count=2)


class TestAggregateCache:
    """Test cache reads and writes."""

    def test_empty(self) -> None:
        """Unknown keys return None."""
        cache = AggregateCache()
        assert cache.get("X") is None
        assert cache.age("X") is None
        assert cache.keys() == []

    def test_put_get(self) -> None:
        """A stored entry is returned as-is."""
        cache = AggregateCache()
        assert cache.put("X", entry(105.0, 100.0)) is True
        assert cache.get("X") == entry(105.0, 100.0)

    def test_put_replaces_whole_entry(self) -> None:
        """A newer entry replaces the previous one entirely."""
        cache = AggregateCache()
        cache.put("X", entry(105.0, 100.0))
        newer = AggregateEntry(key="X", value=110.0, computed_at=200.0, source_record_count=1)
        cache.put("X", newer)
        assert cache.get("X") == newer

    def test_computed_at_never_decreases(self) -> None:
        """Entries older than the cached one are refused."""
        cache = AggregateCache()
        cache.put("X", entry(105.0, 200.0))
        assert cache.put("X", entry(99.0, 100.0)) is False
        assert cache.get("X").value == 105.0

    def test_equal_computed_at_accepted(self) -> None:
        """An entry computed at the same time replaces the cached one."""
        cache = AggregateCache()
        cache.put("X", entry(105.0, 100.0))
        assert cache.put("X", entry(106.0, 100.0)) is True

    def test_keys_independent(self) -> None:
        """Keys do not affect each other."""
        cache = AggregateCache()
        cache.put("X", entry(1.0, 100.0, key="X"))
        cache.put("Y", entry(2.0, 50.0, key="Y"))
        assert sorted(cache.keys()) == ["X", "Y"]
        assert cache.snapshot()["Y"].value == 2.0

    def test_snapshot_is_copy(self) -> None:
        """Mutating a snapshot does not touch the cache."""
        cache = AggregateCache()
        cache.put("X", entry(1.0, 100.0))
        cache.snapshot().clear()
        assert cache.get("X") is not None

    @patch("poster.src.AggregateCache.time.time")
    def test_age(self, mock_time) -> None:
        """Age is measured from computed_at."""
        mock_time.return_value = 160.0
        cache = AggregateCache()
        cache.put("X", entry(1.0, 100.0))
        assert cache.age("X") == 60.0
        assert cache.age("X", now=130.0) == 30.0
