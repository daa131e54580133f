"""UDP receive loop and its cancellation lifecycle."""

from __future__ import annotations

import logging
import socket
import sys
from functools import lru_cache
from threading import Event, Lock, Thread
from typing import Optional, TextIO, Tuple

import httpx

from services.decoder import ReportDecoder
from services.delivery import DeliveryClient
from services.dispatcher import PacketDispatcher
from services.stats import RelayStats
from settings import Settings, get_settings
from storage.buffer_pool import BufferPool

DEFAULT_READ_TIMEOUT = 1.0


class RelayStartupError(RuntimeError):
    """Raised when the relay cannot be constructed (bad address, bind failure)."""


class CancellationToken:
    """Shared stop signal; the first reason given wins."""

    def __init__(self) -> None:
        self._event = Event()
        self._lock = Lock()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self._reason is None:
                self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        with self._lock:
            return self._reason

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


def parse_listen_address(value: str) -> Tuple[str, int]:
    """Split ``host:port``, ``:port`` or ``[v6]:port`` into its parts."""
    host, sep, port_text = value.rpartition(":")
    if not sep:
        raise ValueError(f"listen address {value!r} is missing a port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(f"listen address {value!r} has too many colons")
    try:
        port = int(port_text)
    except ValueError as exc:
        raise ValueError(f"listen address {value!r} has an invalid port") from exc
    if not 0 <= port <= 65535:
        raise ValueError(f"listen address {value!r} has an out-of-range port")
    return host, port


def _format_addr(addr: object) -> Optional[str]:
    if isinstance(addr, tuple) and len(addr) >= 2:
        host = addr[0]
        return f"[{host}]:{addr[1]}" if ":" in str(host) else f"{host}:{addr[1]}"
    return None


class RelayService:
    """Owns the UDP socket and hands every datagram to the dispatcher."""

    def __init__(
        self,
        settings: Settings,
        logger: Optional[logging.Logger] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        raw_sink: Optional[TextIO] = None,
    ) -> None:
        self.settings = settings
        self._logger = logger or logging.getLogger(__name__)
        self._raw_sink = raw_sink
        self.read_timeout = read_timeout

        self._sock = self._bind(settings.listen_address)
        try:
            self.delivery = DeliveryClient(settings, transport=transport, logger=logger)
        except httpx.InvalidURL as exc:
            self._sock.close()
            raise RelayStartupError(f"invalid InfluxDB URL: {exc}") from exc

        self.buffers = BufferPool(settings.buffer_size)
        self.stats = RelayStats()
        self.decoder = ReportDecoder(settings, logger=logger)
        self.dispatcher = PacketDispatcher(
            settings,
            decoder=self.decoder,
            delivery=self.delivery,
            stats=self.stats,
            logger=logger,
        )
        self._running = Event()
        self.stop_reason: Optional[str] = None

    @property
    def address(self) -> Tuple[str, int]:
        host, port = self._sock.getsockname()[:2]
        return host, port

    @property
    def running(self) -> bool:
        return self._running.is_set()

    def _bind(self, listen_address: str) -> socket.socket:
        try:
            host, port = parse_listen_address(listen_address)
        except ValueError as exc:
            raise RelayStartupError(str(exc)) from exc

        try:
            if host:
                family, _, _, _, sockaddr = socket.getaddrinfo(
                    host, port, type=socket.SOCK_DGRAM
                )[0]
            else:
                family, sockaddr = socket.AF_INET, ("", port)
            sock = socket.socket(family, socket.SOCK_DGRAM)
        except OSError as exc:
            raise RelayStartupError(f"could not resolve {listen_address!r}: {exc}") from exc

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(sockaddr)
        except OSError as exc:
            sock.close()
            raise RelayStartupError(f"could not listen on {listen_address!r}: {exc}") from exc
        sock.settimeout(self.read_timeout)
        return sock

    def run(self, token: CancellationToken) -> Optional[str]:
        """Receive until ``token`` is cancelled and return its reason.

        In-flight dispatch units are not interrupted.
        """
        self._running.set()
        self._logger.info(
            "Weather relay listening on %s", _format_addr(self._sock.getsockname())
        )
        try:
            while not token.cancelled:
                received = self._receive()
                if received is None:
                    continue
                payload, remote_addr = received
                self.stats.increment("packets_received")
                self._trace(payload, remote_addr)
                self.dispatcher.submit(payload, remote_addr)
            self._logger.info("Weather relay shutting down", extra={"reason": token.reason})
            self.stop_reason = token.reason
            return self.stop_reason
        finally:
            self._running.clear()
            self.close()

    def close(self) -> None:
        """Release the socket now and the HTTP pool once in-flight units finish."""
        self._sock.close()
        self.dispatcher.shutdown(wait_for_pending=False)
        Thread(target=self._release_delivery, name="relay-drain", daemon=True).start()

    def _release_delivery(self) -> None:
        self.dispatcher.shutdown(wait_for_pending=True)
        self.delivery.close()

    def _receive(self) -> Optional[Tuple[bytes, Optional[str]]]:
        with self.buffers.borrow() as buffer:
            try:
                size, addr = self._sock.recvfrom_into(buffer)
            except socket.timeout:
                return None
            except OSError as exc:
                if self._sock.fileno() == -1:
                    raise
                self.stats.increment("read_errors")
                self._logger.error(
                    "Could not receive UDP packet",
                    extra={"error": repr(exc)},
                )
                return None
            # Copy out so the pooled buffer can be reused immediately.
            payload = bytes(buffer[:size])
        return payload, _format_addr(addr)

    def _trace(self, payload: bytes, remote_addr: Optional[str]) -> None:
        if self.settings.debug:
            self._logger.debug(
                "Received UDP packet: %s",
                payload.decode("utf-8", errors="replace"),
                extra={"remote_addr": remote_addr, "bytes": len(payload)},
            )
        if self.settings.raw_udp:
            sink = self._raw_sink or sys.stdout
            sink.write(f"RAW UDP: {len(payload)} bytes from {remote_addr}: {payload.hex()}\n")
            sink.flush()


@lru_cache
def build_default_relay() -> RelayService:
    """Factory that wires the relay from validated environment settings."""
    return RelayService(get_settings().validate())
