"""Per-(wallet, protocol) health factor history used for trend detection."""
from __future__ import annotations

import threading

from ..models import HealthSnapshot

HistoryKey = tuple[str, str]


class _KeyHistory:
    """Bounded sample buffer for one key, guarded by its own lock."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.samples: list[HealthSnapshot] = []


class HealthHistoryStore:
    """Append-only health samples, one bounded buffer per (wallet, protocol).

    A buffer may grow to twice ``window_size``; the next append past that
    trims it back to the newest ``window_size`` samples.
    """

    def __init__(self, window_size: int = 20) -> None:
        if window_size < 1:
            raise ValueError("window_size must be positive")
        self._window = window_size
        self._buffers: dict[HistoryKey, _KeyHistory] = {}
        self._map_lock = threading.Lock()

    @property
    def window_size(self) -> int:
        return self._window

    def _buffer(self, key: HistoryKey) -> _KeyHistory:
        with self._map_lock:
            buf = self._buffers.get(key)
            if buf is None:
                buf = self._buffers[key] = _KeyHistory()
            return buf

    def record(self, wallet: str, protocol: str, health_factor: float, timestamp: float) -> None:
        buf = self._buffer((wallet, protocol))
        with buf.lock:
            buf.samples.append(HealthSnapshot(health_factor=health_factor, timestamp=timestamp))
            if len(buf.samples) > self._window * 2:
                buf.samples = buf.samples[-self._window :]

    def get(self, wallet: str, protocol: str) -> list[HealthSnapshot]:
        with self._map_lock:
            buf = self._buffers.get((wallet, protocol))
        if buf is None:
            return []
        with buf.lock:
            return list(buf.samples)

    def recent(self, wallet: str, protocol: str) -> list[HealthSnapshot]:
        """The newest ``window_size`` samples."""
        return self.get(wallet, protocol)[-self._window :]

    def clear(self, wallet: str | None = None) -> None:
        """Drop history for one wallet, or for everything when ``wallet`` is None."""
        with self._map_lock:
            if wallet is None:
                self._buffers.clear()
                return
            for key in [k for k in self._buffers if k[0] == wallet]:
                del self._buffers[key]

    def keys(self) -> list[HistoryKey]:
        with self._map_lock:
            return list(self._buffers)
