"""Thread-safe counters describing relay activity."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from threading import Lock
from typing import Dict


@dataclass
class RelayCounters:
    packets_received: int = 0
    read_errors: int = 0
    reports_ignored: int = 0
    decode_errors: int = 0
    points_delivered: int = 0
    delivery_failures: int = 0
    deliveries_skipped: int = 0
    faults: int = 0


class RelayStats:

    def __init__(self) -> None:
        self._counters = RelayCounters()
        self._lock = Lock()

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self._counters, name, getattr(self._counters, name) + amount)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return asdict(self._counters)
