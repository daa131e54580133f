from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Iterator, List


class BufferPool:
    """Thread-safe pool of fixed-size receive buffers.

    Callers must not keep a reference to a buffer after releasing it.
    """

    def __init__(self, size: int, max_idle: int = 64) -> None:
        if size <= 0:
            raise ValueError("Buffer size must be greater than 0.")
        self.size = size
        self.max_idle = max_idle
        self._idle: List[bytearray] = []
        self._lock = Lock()

    def acquire(self) -> bytearray:
        with self._lock:
            if self._idle:
                return self._idle.pop()
        return bytearray(self.size)

    def release(self, buffer: bytearray) -> None:
        if len(buffer) != self.size:
            raise ValueError(
                f"Buffer of {len(buffer)} bytes does not belong to a pool of {self.size}-byte buffers."
            )
        with self._lock:
            if len(self._idle) < self.max_idle:
                self._idle.append(buffer)

    @contextmanager
    def borrow(self) -> Iterator[bytearray]:
        buffer = self.acquire()
        try:
            yield buffer
        finally:
            self.release(buffer)

    def idle_count(self) -> int:
        with self._lock:
            return len(self._idle)
