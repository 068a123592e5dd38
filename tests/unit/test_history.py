"""Unit tests for the health history store."""
from __future__ import annotations

import pytest

from position_guardian.engines.history import HealthHistoryStore


class TestHealthHistoryStore:
    def test_record_and_get(self) -> None:
        store = HealthHistoryStore(window_size=5)
        store.record("w1", "kamino", 1.5, 100.0)
        store.record("w1", "kamino", 1.4, 160.0)
        samples = store.get("w1", "kamino")
        assert [s.health_factor for s in samples] == [1.5, 1.4]
        assert samples[-1].timestamp == 160.0

    def test_unknown_key_is_empty(self) -> None:
        assert HealthHistoryStore().get("nobody", "kamino") == []

    def test_get_returns_copy(self) -> None:
        store = HealthHistoryStore()
        store.record("w1", "kamino", 1.5, 0.0)
        store.get("w1", "kamino").clear()
        assert len(store.get("w1", "kamino")) == 1

    def test_trims_past_twice_window(self) -> None:
        store = HealthHistoryStore(window_size=3)
        for i in range(6):
            store.record("w1", "kamino", 2.0 - i * 0.1, float(i))
        assert len(store.get("w1", "kamino")) == 6

        store.record("w1", "kamino", 1.0, 6.0)
        samples = store.get("w1", "kamino")
        assert len(samples) == 3
        assert samples[-1].health_factor == 1.0

    def test_recent_limited_to_window(self) -> None:
        store = HealthHistoryStore(window_size=2)
        for i in range(4):
            store.record("w1", "kamino", 1.0 + i, float(i))
        assert [s.health_factor for s in store.recent("w1", "kamino")] == [3.0, 4.0]

    def test_keys_are_per_protocol(self) -> None:
        store = HealthHistoryStore()
        store.record("w1", "kamino", 1.5, 0.0)
        store.record("w1", "solend", 1.5, 0.0)
        assert sorted(store.keys()) == [("w1", "kamino"), ("w1", "solend")]

    def test_clear_one_wallet(self) -> None:
        store = HealthHistoryStore()
        store.record("w1", "kamino", 1.5, 0.0)
        store.record("w1", "marginfi", 1.5, 0.0)
        store.record("w2", "kamino", 1.5, 0.0)
        store.clear("w1")
        assert store.keys() == [("w2", "kamino")]

    def test_clear_all(self) -> None:
        store = HealthHistoryStore()
        store.record("w1", "kamino", 1.5, 0.0)
        store.clear()
        assert store.keys() == []

    def test_invalid_window(self) -> None:
        with pytest.raises(ValueError):
            HealthHistoryStore(window_size=0)
