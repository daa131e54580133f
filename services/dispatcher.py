"""Per-packet decode and delivery, isolated on a worker pool."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from threading import Lock
from typing import Optional, Set

from services.decoder import DecodeError, ReportDecoder
from services.delivery import DeliveryClient
from services.stats import RelayStats
from settings import Settings

DEFAULT_BACKLOG_WARNING = 1000


class PacketDispatcher:
    """Runs each datagram's decode-and-deliver unit as an independent task.

    Nothing raised inside a unit reaches the caller of :meth:`submit` or any
    other unit. The executor queue is unbounded: when InfluxDB stalls, units
    wait up to ``http_timeout`` each and the backlog grows. A warning is
    logged each time the backlog rises to ``backlog_warning``.
    """

    def __init__(
        self,
        settings: Settings,
        decoder: ReportDecoder,
        delivery: DeliveryClient,
        stats: RelayStats,
        logger: Optional[logging.Logger] = None,
        backlog_warning: int = DEFAULT_BACKLOG_WARNING,
    ) -> None:
        self.settings = settings
        self.decoder = decoder
        self.delivery = delivery
        self.stats = stats
        self.backlog_warning = backlog_warning
        self._logger = logger or logging.getLogger(__name__)
        self.executor = ThreadPoolExecutor(
            max_workers=settings.dispatch_workers,
            thread_name_prefix="dispatch",
        )
        self._futures: Set[Future[None]] = set()
        self._futures_lock = Lock()
        self._backlog_warned = False

    def submit(self, payload: bytes, remote_addr: Optional[str] = None) -> Future[None]:
        """Schedule one dispatch unit and return without waiting for it."""
        future = self.executor.submit(self._process_packet, payload, remote_addr)
        with self._futures_lock:
            self._futures.add(future)
            backlog = len(self._futures)
            crossed = backlog >= self.backlog_warning and not self._backlog_warned
            if crossed:
                self._backlog_warned = True
        if crossed:
            self._logger.warning(
                "Dispatch backlog reached %d units; InfluxDB may be slow or unreachable",
                backlog,
                extra={"remote_addr": remote_addr},
            )
        future.add_done_callback(self._clear_future)
        return future

    def in_flight(self) -> int:
        with self._futures_lock:
            return sum(1 for future in self._futures if not future.done())

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every scheduled unit has finished or ``timeout`` expires."""
        with self._futures_lock:
            pending = set(self._futures)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = False) -> None:
        """Stop accepting work; units already scheduled still run."""
        self.executor.shutdown(wait=wait_for_pending)

    def _clear_future(self, future: Future[None]) -> None:
        with self._futures_lock:
            self._futures.discard(future)
            # Re-arm once the backlog has drained to half the threshold.
            if len(self._futures) <= self.backlog_warning // 2:
                self._backlog_warned = False

    def _process_packet(self, payload: bytes, remote_addr: Optional[str]) -> None:
        try:
            self._decode_and_deliver(payload, remote_addr)
        except Exception:
            self.stats.increment("faults")
            self._logger.exception(
                "Recovered from fault in packet processing",
                extra={"remote_addr": remote_addr, "bytes": len(payload)},
            )

    def _decode_and_deliver(self, payload: bytes, remote_addr: Optional[str]) -> None:
        try:
            point = self.decoder.decode(payload, remote_addr)
        except DecodeError as exc:
            self.stats.increment("decode_errors")
            self._logger.error(
                "Dropping undecodable report: %s",
                exc,
                extra={"remote_addr": remote_addr, "bytes": len(payload)},
            )
            return

        if point is None or not point.is_deliverable:
            self.stats.increment("reports_ignored")
            return

        if self.settings.debug:
            self._logger.debug(
                "Processing data point",
                extra={
                    "measurement": point.name,
                    "timestamp": point.timestamp,
                    "bucket": point.bucket,
                },
            )

        if self.settings.noop:
            self.stats.increment("deliveries_skipped")
            self._logger.info(
                "NOOP mode - not posting to InfluxDB: %s",
                point.marshal(),
                extra={"url": str(self.delivery.url_for(point.bucket))},
            )
            return

        if self.delivery.write(point):
            self.stats.increment("points_delivered")
        else:
            self.stats.increment("delivery_failures")
